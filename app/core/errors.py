"""Error taxonomy for the access-control and membership lifecycle core.

Services raise these; only the HTTP layer (app/api/error_handlers.py)
turns them into status codes.  Each class carries a stable ``code`` so
clients can branch on it without parsing messages.

  NotFoundError           org / application / order / tier absent
  UnauthenticatedError    no identity where one is required
  ForbiddenError          identity present but not allowed
  InvalidTransitionError  no state machine edge for the requested action
  ConflictError           a concurrent transition won the race
  UpstreamPaymentError    payment provider call failed (retryable)
  PaymentLinkageError     order exists but its application does not
  DomainValidationError   input violates a business rule
"""

from __future__ import annotations

from typing import Any


class CohortError(Exception):
    code = "error"
    http_status = 500

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_response(self) -> dict[str, Any]:
        body: dict[str, Any] = {"code": self.code, "message": self.message}
        body.update({k: v for k, v in self.details.items() if v is not None})
        return {"error": body}


class NotFoundError(CohortError):
    code = "not_found"
    http_status = 404


class UnauthenticatedError(CohortError):
    code = "unauthenticated"
    http_status = 401


class ForbiddenError(CohortError):
    code = "forbidden"
    http_status = 403


class InvalidTransitionError(CohortError):
    code = "invalid_transition"
    http_status = 409


class ConflictError(CohortError):
    """The other side of a concurrent transition won.

    ``current`` holds the record as observed after losing, so callers
    can present the winner's outcome instead of a hard failure.
    """

    code = "conflict"
    http_status = 409

    def __init__(self, message: str, *, current: Any = None, **details: Any) -> None:
        super().__init__(message, **details)
        self.current = current


class UpstreamPaymentError(CohortError):
    code = "payment_provider_unavailable"
    http_status = 502

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message, retryable=True, **details)


class PaymentLinkageError(CohortError):
    code = "payment_linkage_broken"
    http_status = 500


class DomainValidationError(CohortError, ValueError):
    code = "validation_error"
    http_status = 422
