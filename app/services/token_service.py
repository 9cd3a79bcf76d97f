"""Session token validation (ES256): the service's identity source.

Identities are issued elsewhere; this service only needs to turn a
session token into an Identity or decide there is none.  Token minting
lives here too so dev tooling and tests can produce tokens signed with
the same key.
"""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime, timedelta
from uuid import UUID

import jwt
from cryptography.hazmat.primitives.asymmetric import ec

from app.models.identity import Identity

logger = logging.getLogger(__name__)

# Dev/test: an ephemeral EC key pair generated on import.
# TODO: load the verification key from SESSION_PUBLIC_KEY_PEM once the
# identity provider publishes one.
_private_key = ec.generate_private_key(ec.SECP256R1())
_public_key = _private_key.public_key()

ALGORITHM = "ES256"
ISSUER = "cohort-identity"
AUDIENCE = "cohort-session"
SESSION_TTL_MIN = 30


def create_session_token(
    *, sub: str, email: str = "", ttl: timedelta | None = None
) -> str:
    """Build and sign a session JWT carrying the identity id and email."""
    now = datetime.now(UTC)
    payload = {
        "sub": sub,
        "email": email,
        "iss": ISSUER,
        "aud": AUDIENCE,
        "exp": now + (ttl if ttl is not None else timedelta(minutes=SESSION_TTL_MIN)),
        "iat": now,
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, _private_key, algorithm=ALGORITHM)


def decode_session_token(token: str) -> dict:
    """Verify signature and claims, return the payload.

    Pins the algorithm to ES256 to rule out alg:none and alg switching.
    Raises jwt.ExpiredSignatureError, jwt.InvalidTokenError on failure.
    """
    return jwt.decode(
        token,
        _public_key,
        algorithms=[ALGORITHM],
        issuer=ISSUER,
        audience=AUDIENCE,
        options={"require": ["sub", "exp", "iat", "jti"]},
    )


def identity_from_token(token: str | None) -> Identity | None:
    """Return the Identity behind a session token, or None.

    Any failure (missing, expired, forged, malformed subject) means
    "no identity".  The caller treats that as a guest, never as an error.
    """
    if not token:
        return None
    try:
        claims = decode_session_token(token)
        return Identity(id=UUID(claims["sub"]), email=claims.get("email", ""))
    except jwt.ExpiredSignatureError:
        logger.debug("Expired session token treated as guest")
        return None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid session token treated as guest: %s", e)
        return None
    except ValueError:
        logger.warning("Session token subject is not a UUID, treated as guest")
        return None
