"""Session tokens and webhook signatures must never reach log output."""

from __future__ import annotations

import dataclasses
import logging

import pytest
from fastapi.testclient import TestClient

from app.api import webhooks
from app.core.config import SETTINGS
from app.models.tier import ActivationType
from tests.conftest import add_test_member, add_test_tier, auth, create_test_org, mint_token


def test_session_token_not_logged(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    org = create_test_org("quiet-org")
    token = mint_token(add_test_member(org))
    garbage = "not.a.realtoken"

    with caplog.at_level(logging.DEBUG):
        client.get("/v1/orgs/quiet-org/members", headers=auth(token))
        client.get("/v1/orgs/quiet-org/members", headers=auth(garbage))
        client.get("/v1/orgs/quiet-org/access", cookies={"session": token})

    text = " ".join(caplog.messages)
    assert token not in text
    assert garbage not in text


def test_client_secret_not_logged(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    org = create_test_org("quiet-org")
    tier = add_test_tier(org, ActivationType.PAYMENT_REQUIRED, price=700)

    with caplog.at_level(logging.DEBUG):
        resp = client.post(
            "/v1/orgs/quiet-org/applications",
            json={"tier_id": str(tier.id)},
            headers=auth(mint_token()),
        )

    secret = resp.json()["payment"]["client_secret"]
    assert secret not in " ".join(caplog.messages)


def test_webhook_signature_not_logged(
    client: TestClient, caplog: pytest.LogCaptureFixture, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(
        webhooks, "SETTINGS", dataclasses.replace(SETTINGS, payment_webhook_secret="whsec_x")
    )
    header = "t=1,v1=" + "ab" * 32

    with caplog.at_level(logging.DEBUG):
        client.post(
            "/v1/webhooks/payments",
            content=b'{"type": "payment.succeeded"}',
            headers={"Content-Type": "application/json", "Stripe-Signature": header},
        )

    text = " ".join(caplog.messages)
    assert "ab" * 32 not in text
    assert "whsec_x" not in text
