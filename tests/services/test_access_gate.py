"""Access gate decisions, evaluated directly against resolved contexts.

The same fixture table drives tests/api/test_access_routes.py, so a
mismatch between the gate and what the routes enforce shows up as a
failure in exactly one of the two files.
"""

from __future__ import annotations

from uuid import uuid4

import pytest
from prometheus_client import REGISTRY

from app.api.requirements import CAPABILITIES
from app.core import permissions as p
from app.core.errors import ForbiddenError, UnauthenticatedError
from app.models.access import AccessContext
from app.models.identity import ANONYMOUS, Identity
from app.models.organization import Organization
from app.repos.storage import memory_storage
from app.services.access_context import AccessContextResolver
from app.services.access_gate import (
    PUBLIC,
    AccessRequirement,
    Allow,
    Deny,
    DenyReason,
    can,
    decide,
    enforce,
    evaluate,
)
from tests.conftest import run
from tests.gate_cases import GATE_CASES, GATE_SLUG, build_gate_world, case_id


def _get_sample(name: str, labels: dict | None = None) -> float:
    value = REGISTRY.get_sample_value(name, labels=labels or {})
    return value if value is not None else 0.0


@pytest.mark.parametrize(
    "capability,actor,expected",
    GATE_CASES,
    ids=[case_id(c) for c in GATE_CASES],
)
def test_gate_decision_table(capability: str, actor: str, expected: str) -> None:
    world = build_gate_world()
    context = run(
        AccessContextResolver(memory_storage).resolve(world.tokens[actor], GATE_SLUG)
    )

    decision = evaluate(context, CAPABILITIES[capability])

    if expected == "allow":
        assert isinstance(decision, Allow)
    else:
        assert isinstance(decision, Deny)
        assert decision.reason == expected


# ---- precedence and redirect hints ----

_ORG = Organization.new(name="Hikers", slug="hikers")
_ME = Identity(id=uuid4())


def _context(*, actor=ANONYMOUS, perms: frozenset[str] = frozenset(), guest: bool = True):
    return AccessContext(
        actor=actor,
        organization=_ORG,
        effective_permissions=perms,
        is_guest=guest,
    )


def test_unauthenticated_wins_over_guest_and_permissions() -> None:
    req = AccessRequirement(require_auth=True, required_permissions=frozenset({p.MEMBERS_VIEW}))
    decision = decide(_context(), req)
    assert decision == Deny(DenyReason.UNAUTHENTICATED, redirect_to="/hikers")


def test_guest_denied_redirects_to_landing_page() -> None:
    decision = decide(_context(actor=_ME), AccessRequirement(require_auth=True))
    assert decision == Deny(DenyReason.GUEST_DENIED, redirect_to="/hikers")


def test_forbidden_has_no_redirect() -> None:
    req = AccessRequirement(required_permissions=frozenset({p.GROUP_EDIT}))
    decision = decide(_context(actor=_ME, guest=False), req)
    assert decision == Deny(DenyReason.FORBIDDEN)
    assert decision.redirect_to is None


def test_required_permissions_are_any_of() -> None:
    req = AccessRequirement(
        required_permissions=frozenset({p.ROLES_EDIT, p.PERMISSIONS_ASSIGN})
    )
    ctx = _context(actor=_ME, guest=False, perms=frozenset({p.PERMISSIONS_ASSIGN}))
    assert isinstance(decide(ctx, req), Allow)


def test_default_requirement_admits_members_only() -> None:
    assert isinstance(decide(_context(actor=_ME, guest=False), AccessRequirement()), Allow)
    assert isinstance(decide(_context(), AccessRequirement()), Deny)


def test_public_requirement_admits_anonymous() -> None:
    assert isinstance(decide(_context(), PUBLIC), Allow)


def test_allow_guest_without_auth_admits_anonymous_caller() -> None:
    req = AccessRequirement(allow_guest=True)
    assert isinstance(decide(_context(), req), Allow)


# ---- can / enforce ----


def test_can_requires_identity_and_permission() -> None:
    member = _context(actor=_ME, guest=False, perms=frozenset({p.ROLES_VIEW}))
    assert can(member, p.ROLES_VIEW) is True
    assert can(member, p.ROLES_CREATE) is False
    assert can(member, p.ROLES_CREATE, p.ROLES_VIEW) is True
    assert can(_context(perms=frozenset({p.ROLES_VIEW})), p.ROLES_VIEW) is False


def test_enforce_returns_context_on_allow() -> None:
    ctx = _context(actor=_ME, guest=False)
    assert enforce(ctx, AccessRequirement(require_auth=True)) is ctx


def test_enforce_raises_unauthenticated_with_redirect() -> None:
    with pytest.raises(UnauthenticatedError) as exc_info:
        enforce(_context(), AccessRequirement(require_auth=True))
    assert exc_info.value.details["redirect_to"] == "/hikers"
    assert exc_info.value.details["reason"] == "unauthenticated"


def test_enforce_raises_forbidden_for_guest() -> None:
    with pytest.raises(ForbiddenError) as exc_info:
        enforce(_context(actor=_ME), AccessRequirement(require_auth=True))
    assert exc_info.value.details["reason"] == "guest_denied"
    assert exc_info.value.details["redirect_to"] == "/hikers"


def test_enforce_raises_forbidden_for_missing_permission() -> None:
    req = AccessRequirement(required_permissions=frozenset({p.GROUP_EDIT}))
    with pytest.raises(ForbiddenError) as exc_info:
        enforce(_context(actor=_ME, guest=False), req)
    assert exc_info.value.details["reason"] == "forbidden"
    assert "redirect_to" not in exc_info.value.details


# ---- metrics ----


def test_evaluate_counts_denials_by_reason() -> None:
    labels = {"decision": "deny", "reason": "guest_denied"}
    before = _get_sample("access_decisions_total", labels)
    evaluate(_context(actor=_ME), AccessRequirement(require_auth=True))
    assert _get_sample("access_decisions_total", labels) - before == 1


def test_decide_records_nothing() -> None:
    labels = {"decision": "deny", "reason": "unauthenticated"}
    before = _get_sample("access_decisions_total", labels)
    decide(_context(), AccessRequirement(require_auth=True))
    assert _get_sample("access_decisions_total", labels) == before
