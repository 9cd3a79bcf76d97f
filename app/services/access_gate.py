"""Access gate: one decision function for every org-scoped check.

Route guards, per-action capability flags and service-level checks all
go through decide(), so the UI and the server can never disagree about
what a caller may do.  evaluate() is decide() plus the metric and the
denial log line; flag queries skip those.

Precedence, first match wins:

  1. require_auth and the actor is anonymous  -> Deny(unauthenticated)
  2. guest of the org and guests not allowed  -> Deny(guest_denied)
  3. required_permissions and none are held   -> Deny(forbidden)
  4. otherwise                                -> Allow

Denials of kinds 1 and 2 carry a redirect to the org's landing page.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Union

from app.core.errors import ForbiddenError, UnauthenticatedError
from app.core.metrics import ACCESS_DECISIONS
from app.models.access import AccessContext

logger = logging.getLogger(__name__)


class DenyReason(StrEnum):
    UNAUTHENTICATED = "unauthenticated"
    GUEST_DENIED = "guest_denied"
    FORBIDDEN = "forbidden"


@dataclass(frozen=True, slots=True)
class AccessRequirement:
    """What an operation demands of its caller.

    ``required_permissions`` is any-of: holding one of them is enough.
    ``allow_guest`` and ``allow_non_member`` both admit callers without an
    active membership; pair either with ``require_auth`` to keep anonymous
    callers out (applying to join needs an identity, not a membership).
    """

    require_auth: bool = False
    allow_guest: bool = False
    allow_non_member: bool = False
    required_permissions: frozenset[str] = frozenset()


@dataclass(frozen=True, slots=True)
class Allow:
    allowed = True


@dataclass(frozen=True, slots=True)
class Deny:
    reason: DenyReason
    redirect_to: str | None = None
    allowed = False


Decision = Union[Allow, Deny]

PUBLIC = AccessRequirement(allow_guest=True, allow_non_member=True)


def decide(context: AccessContext, requirement: AccessRequirement) -> Decision:
    landing = context.organization.landing_path

    if requirement.require_auth and not context.is_authenticated:
        decision: Decision = Deny(DenyReason.UNAUTHENTICATED, redirect_to=landing)
    elif context.is_guest and not _guest_admitted(requirement):
        decision = Deny(DenyReason.GUEST_DENIED, redirect_to=landing)
    elif requirement.required_permissions and not context.has_any_permission(
        requirement.required_permissions
    ):
        decision = Deny(DenyReason.FORBIDDEN)
    else:
        decision = Allow()
    return decision


def evaluate(context: AccessContext, requirement: AccessRequirement) -> Decision:
    decision = decide(context, requirement)
    if isinstance(decision, Deny):
        ACCESS_DECISIONS.labels(decision="deny", reason=decision.reason.value).inc()
        logger.warning(
            "Access denied org=%s actor=%s reason=%s",
            context.organization.slug,
            context.actor_id or "anonymous",
            decision.reason,
        )
    else:
        ACCESS_DECISIONS.labels(decision="allow", reason="none").inc()
    return decision


def _guest_admitted(requirement: AccessRequirement) -> bool:
    return requirement.allow_guest or requirement.allow_non_member


def can(context: AccessContext, *permissions: str) -> bool:
    """Fine-grained check: does the caller hold any of ``permissions``?"""
    requirement = AccessRequirement(
        require_auth=True, required_permissions=frozenset(permissions)
    )
    return decide(context, requirement).allowed


def enforce(context: AccessContext, requirement: AccessRequirement) -> AccessContext:
    """Raise the matching domain error on denial; return the context on allow."""
    decision = evaluate(context, requirement)
    if isinstance(decision, Allow):
        return context
    if decision.reason is DenyReason.UNAUTHENTICATED:
        raise UnauthenticatedError(
            "authentication required",
            reason=decision.reason.value,
            redirect_to=decision.redirect_to,
        )
    if decision.reason is DenyReason.GUEST_DENIED:
        raise ForbiddenError(
            "members only",
            reason=decision.reason.value,
            redirect_to=decision.redirect_to,
        )
    raise ForbiddenError("insufficient permissions", reason=decision.reason.value)
