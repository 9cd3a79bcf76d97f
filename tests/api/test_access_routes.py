"""Table-driven route guard tests.

Runs the fixture table from tests/gate_cases.py against the HTTP
routes: allow -> the route's success status, unauthenticated -> 401,
guest_denied and forbidden -> 403 with the matching reason.
"""

from __future__ import annotations

from collections.abc import Callable
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from tests.conftest import auth
from tests.gate_cases import GATE_CASES, GATE_SLUG, GateWorld, build_gate_world, case_id

_ORG_PATH = f"/v1/orgs/{GATE_SLUG}"

# capability -> (method, path, body factory, success status)
_ROUTES: dict[str, tuple[str, Callable[[GateWorld], str], Callable[[GateWorld], dict | None], int]] = {
    "view_org": ("GET", lambda w: _ORG_PATH, lambda w: None, 200),
    "apply": (
        "POST",
        lambda w: f"{_ORG_PATH}/applications",
        lambda w: {"tier_id": str(w.tier.id)},
        201,
    ),
    "view_members": ("GET", lambda w: f"{_ORG_PATH}/members", lambda w: None, 200),
    "edit_group": (
        "PATCH",
        lambda w: f"{_ORG_PATH}/slug",
        lambda w: {"slug": GATE_SLUG},
        200,
    ),
    "assign_role": (
        "POST",
        lambda w: f"{_ORG_PATH}/roles/{w.role.id}/users",
        lambda w: {"user_id": str(uuid4())},
        200,
    ),
}


@pytest.mark.parametrize(
    "capability,actor,expected",
    GATE_CASES,
    ids=[case_id(c) for c in GATE_CASES],
)
def test_route_guard_table(
    client: TestClient, capability: str, actor: str, expected: str
) -> None:
    world = build_gate_world()
    method, path, body, success = _ROUTES[capability]

    resp = client.request(
        method, path(world), json=body(world), headers=auth(world.tokens[actor])
    )

    if expected == "allow":
        assert resp.status_code == success, resp.text
        return

    error = resp.json()["error"]
    assert error["reason"] == expected
    if expected == "unauthenticated":
        assert resp.status_code == 401
        assert resp.headers["www-authenticate"] == "Bearer"
        assert error["redirect_to"] == f"/{GATE_SLUG}"
    elif expected == "guest_denied":
        assert resp.status_code == 403
        assert error["redirect_to"] == f"/{GATE_SLUG}"
    else:
        assert resp.status_code == 403
        assert "redirect_to" not in error


def test_unknown_org_is_404_even_for_anonymous(client: TestClient) -> None:
    resp = client.get("/v1/orgs/no-such-org/members")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "not_found"


def test_session_cookie_is_accepted_as_identity(client: TestClient) -> None:
    world = build_gate_world()
    client.cookies.set("session", world.tokens["viewer"])  # type: ignore[arg-type]
    resp = client.get(f"{_ORG_PATH}/members")
    assert resp.status_code == 200


def test_invalid_token_is_treated_as_guest(client: TestClient) -> None:
    build_gate_world()
    resp = client.get(_ORG_PATH, headers=auth("not-a-jwt"))
    assert resp.status_code == 200

    resp = client.get(f"{_ORG_PATH}/members", headers=auth("not-a-jwt"))
    assert resp.status_code == 401


def test_capability_flags_match_route_guards(client: TestClient) -> None:
    world = build_gate_world()
    for actor in ("anon", "non_member", "member", "viewer", "owner"):
        resp = client.get(f"{_ORG_PATH}/access", headers=auth(world.tokens[actor]))
        assert resp.status_code == 200
        flags = resp.json()["capabilities"]
        for capability, case_actor, expected in GATE_CASES:
            if case_actor == actor:
                assert flags[capability] is (expected == "allow"), (capability, actor)
