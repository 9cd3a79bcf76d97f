"""Tests for the Prometheus metrics middleware.

prometheus-client keeps one global registry and counters only go up, so
every test reads the value before and after and asserts on the delta.
"""

from __future__ import annotations

from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from tests.conftest import create_test_org


def _get_sample(name: str, labels: dict | None = None) -> float:
    value = REGISTRY.get_sample_value(name, labels=labels or {})
    return value if value is not None else 0.0


def _requests(endpoint: str, status_code: str, method: str = "GET") -> float:
    return _get_sample(
        "http_requests_total",
        {"method": method, "endpoint": endpoint, "status_code": status_code},
    )


def test_request_counter_increments(client: TestClient) -> None:
    before = _requests("/health", "200")
    client.get("/health")
    assert _requests("/health", "200") - before == 1


def test_org_routes_labelled_by_template(client: TestClient) -> None:
    create_test_org("metric-org-a")
    create_test_org("metric-org-b")
    before = _requests("/v1/orgs/{slug}", "200")

    client.get("/v1/orgs/metric-org-a")
    client.get("/v1/orgs/metric-org-b")

    assert _requests("/v1/orgs/{slug}", "200") - before == 2
    assert _requests("/v1/orgs/metric-org-a", "200") == 0


def test_unknown_path_labelled_unmatched(client: TestClient) -> None:
    before = _requests("unmatched", "404")
    client.get("/no/such/route")
    assert _requests("unmatched", "404") - before == 1


def test_request_duration_histogram_observes(client: TestClient) -> None:
    labels = {"method": "GET", "endpoint": "/health"}
    before = _get_sample("http_request_duration_seconds_count", labels)
    client.get("/health")
    assert _get_sample("http_request_duration_seconds_count", labels) - before == 1


def test_metrics_endpoint_exposes_domain_metrics(client: TestClient) -> None:
    create_test_org("metric-org")
    client.get("/v1/orgs/metric-org")
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "http_requests_total" in resp.text
    assert "access_decisions_total" in resp.text
    assert "application_transitions_total" in resp.text


def test_metrics_endpoint_not_self_instrumented(client: TestClient) -> None:
    before = _requests("/metrics", "200")
    client.get("/metrics")
    client.get("/metrics")
    assert _requests("/metrics", "200") == before
