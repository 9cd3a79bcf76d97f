"""Tests for the request context middleware and its log filter."""

from __future__ import annotations

import logging
import uuid

import pytest
from fastapi.testclient import TestClient

from app.middleware.request_context import (
    _RequestContextFilter,
    actor_id_var,
    request_id_var,
)
from tests.conftest import add_test_member, auth, create_test_org, mint_token


def test_request_id_generated_when_not_provided(client: TestClient) -> None:
    resp = client.get("/health")
    uuid.UUID(resp.headers["x-request-id"])


def test_request_id_echoed_when_provided(client: TestClient) -> None:
    resp = client.get("/health", headers={"X-Request-ID": "my-custom-request-id-123"})
    assert resp.headers.get("x-request-id") == "my-custom-request-id-123"


@pytest.mark.parametrize(
    "path,expected_status",
    [("/v1/orgs/members-only/members", 401), ("/v1/orgs/missing-org", 404)],
    ids=["unauthenticated", "not-found"],
)
def test_request_id_present_on_error_responses(
    client: TestClient, path: str, expected_status: int
) -> None:
    create_test_org("members-only")
    resp = client.get(path)
    assert resp.status_code == expected_status
    assert resp.headers.get("x-request-id") is not None


def test_denial_log_carries_request_and_actor(
    client: TestClient, caplog: pytest.LogCaptureFixture
) -> None:
    org = create_test_org("log-org")
    member = add_test_member(org)
    caplog.handler.addFilter(_RequestContextFilter())

    with caplog.at_level(logging.WARNING, logger="app.services.access_gate"):
        client.get(
            "/v1/orgs/log-org/members",
            headers={**auth(mint_token(member)), "X-Request-ID": "trace-me"},
        )

    denials = [r for r in caplog.records if "Access denied" in r.getMessage()]
    assert denials
    assert denials[0].request_id == "trace-me"  # type: ignore[attr-defined]
    assert denials[0].actor_id == str(member)  # type: ignore[attr-defined]


def test_filter_defaults_outside_a_request() -> None:
    record = logging.LogRecord("x", logging.INFO, "x.py", 1, "msg", (), None)
    assert request_id_var.get() == "-"
    assert actor_id_var.get() is None
    _RequestContextFilter().filter(record)
    assert record.request_id == "-"  # type: ignore[attr-defined]
    assert record.actor_id is None  # type: ignore[attr-defined]
