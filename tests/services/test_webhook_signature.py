from __future__ import annotations

import pytest

from app.services.webhook_signature import (
    SignatureError,
    compute_signature,
    verify_signature,
)

SECRET = "whsec_test"
BODY = b'{"type":"payment.succeeded","order_id":"o-1"}'
NOW = 1_700_000_000


def _header(timestamp: int = NOW, secret: str = SECRET, body: bytes = BODY) -> str:
    return f"t={timestamp},v1={compute_signature(secret, timestamp, body)}"


def test_valid_signature_passes() -> None:
    verify_signature(BODY, _header(), SECRET, now=NOW)


def test_any_matching_v1_entry_passes_during_rotation() -> None:
    header = f"t={NOW},v1=deadbeef,v1={compute_signature(SECRET, NOW, BODY)}"
    verify_signature(BODY, header, SECRET, now=NOW)


@pytest.mark.parametrize(
    "header,match",
    [
        (None, "missing"),
        ("", "missing"),
        (f"v1={'0' * 64}", "missing t or v1"),
        (f"t={NOW}", "missing t or v1"),
        ("t=soon,v1=abc", "malformed timestamp"),
        (_header(secret="other"), "no matching signature"),
        (_header(body=b"{}"), "no matching signature"),
        (_header(timestamp=NOW - 301), "outside tolerance"),
        (_header(timestamp=NOW + 301), "outside tolerance"),
    ],
    ids=[
        "none",
        "empty",
        "no-timestamp",
        "no-signature",
        "bad-timestamp",
        "wrong-secret",
        "tampered-body",
        "too-old",
        "too-new",
    ],
)
def test_invalid_signatures_rejected(header: str | None, match: str) -> None:
    with pytest.raises(SignatureError, match=match):
        verify_signature(BODY, header, SECRET, now=NOW)


def test_tolerance_is_configurable() -> None:
    verify_signature(BODY, _header(timestamp=NOW - 500), SECRET, tolerance_seconds=600, now=NOW)
