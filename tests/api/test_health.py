from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from app.api import health


def test_health_returns_ok(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    # Neither store is configured in tests
    assert data["checks"] == {"database": "not_configured", "redis": "not_configured"}


def test_ready_returns_200(client: TestClient) -> None:
    assert client.get("/ready").status_code == 200


def test_health_reports_degraded_database(
    client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    async def degraded() -> str:
        return "degraded"

    monkeypatch.setattr(health, "_check_database", degraded)

    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "degraded"
    assert client.get("/ready").status_code == 503


def test_degraded_redis_does_not_fail_readiness(
    client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    async def degraded() -> str:
        return "degraded"

    monkeypatch.setattr(health, "_check_redis", degraded)

    assert client.get("/health").json()["checks"]["redis"] == "degraded"
    assert client.get("/ready").status_code == 200
