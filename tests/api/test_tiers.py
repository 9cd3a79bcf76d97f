from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from app.core.permissions import MEMBERSHIPS_MANAGE
from app.models.tier import ActivationType
from tests.conftest import add_test_member, add_test_tier, auth, create_test_org, mint_token, owner_of


def test_tiers_are_public(client: TestClient) -> None:
    org = create_test_org("tier-org")
    add_test_tier(org, ActivationType.PAYMENT_REQUIRED, price=2000, name="Supporter")
    add_test_tier(org, name="Friend")

    resp = client.get("/v1/orgs/tier-org/tiers")
    assert resp.status_code == 200
    tiers = resp.json()
    assert [t["name"] for t in tiers] == ["Friend", "Supporter"]
    assert [t["requires_payment"] for t in tiers] == [False, True]


def test_manager_creates_tier(client: TestClient) -> None:
    org = create_test_org("tier-org")
    manager = add_test_member(org, [MEMBERSHIPS_MANAGE])
    resp = client.post(
        "/v1/orgs/tier-org/tiers",
        json={"name": "Annual", "activation_type": "manual", "price": 0},
        headers=auth(mint_token(manager)),
    )
    assert resp.status_code == 201
    assert resp.json()["activation_type"] == "manual"


def test_plain_member_cannot_create_tier(client: TestClient) -> None:
    org = create_test_org("tier-org")
    member = add_test_member(org)
    resp = client.post(
        "/v1/orgs/tier-org/tiers",
        json={"name": "Annual", "activation_type": "manual"},
        headers=auth(mint_token(member)),
    )
    assert resp.status_code == 403


@pytest.mark.parametrize(
    "activation_type,price",
    [("payment_required", 0), ("review_then_payment", 0), ("immediate", 1000)],
    ids=["free-requires-payment", "free-review-then-payment", "paid-immediate"],
)
def test_contradictory_policy_is_422(client: TestClient, activation_type: str, price: int) -> None:
    org = create_test_org("tier-org")
    resp = client.post(
        "/v1/orgs/tier-org/tiers",
        json={"name": "Broken", "activation_type": activation_type, "price": price},
        headers=auth(mint_token(owner_of(org))),
    )
    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "validation_error"


def test_unknown_activation_type_is_422(client: TestClient) -> None:
    org = create_test_org("tier-org")
    resp = client.post(
        "/v1/orgs/tier-org/tiers",
        json={"name": "Odd", "activation_type": "lottery"},
        headers=auth(mint_token(owner_of(org))),
    )
    assert resp.status_code == 422
    assert resp.json()["error"]["fields"]
