from __future__ import annotations

import hashlib
import hmac
import time

# Payment webhook authentication.  The provider signs each delivery with
# a shared secret and sends a header of the form
#
#   Stripe-Signature: t=1700000000,v1=<hex hmac-sha256>,v1=<...>
#
# where the signed payload is f"{t}.{raw_body}".  Several v1 entries may
# be present while a secret is being rolled.


class SignatureError(ValueError):
    pass


def compute_signature(secret: str, timestamp: int, payload: bytes) -> str:
    signed = f"{timestamp}.".encode() + payload
    return hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()


def _parse_header(header: str) -> tuple[int, list[str]]:
    timestamp: int | None = None
    signatures: list[str] = []
    for part in header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                raise SignatureError("malformed timestamp") from None
        elif key == "v1" and value:
            signatures.append(value)
    if timestamp is None or not signatures:
        raise SignatureError("signature header missing t or v1")
    return timestamp, signatures


def verify_signature(
    payload: bytes,
    header: str | None,
    secret: str,
    *,
    tolerance_seconds: int = 300,
    now: float | None = None,
) -> None:
    """Raise SignatureError unless ``header`` authenticates ``payload``.

    Uses constant-time comparison.  Deliveries older (or newer) than
    ``tolerance_seconds`` are refused to limit replay of captured requests.
    """
    if not header:
        raise SignatureError("missing signature header")
    timestamp, signatures = _parse_header(header)

    current = time.time() if now is None else now
    if abs(current - timestamp) > tolerance_seconds:
        raise SignatureError("timestamp outside tolerance")

    expected = compute_signature(secret, timestamp, payload)
    if not any(hmac.compare_digest(expected, sig) for sig in signatures):
        raise SignatureError("no matching signature")
