from __future__ import annotations

from datetime import timedelta
from uuid import uuid4

import pytest

from app.core.errors import NotFoundError
from app.models.identity import ANONYMOUS
from app.repos.storage import memory_storage
from app.services import token_service
from app.services.access_context import AccessContextResolver, RequestAccess
from tests.conftest import add_test_member, create_test_org, mint_token, run


@pytest.fixture
def resolver() -> AccessContextResolver:
    return AccessContextResolver(memory_storage)


def test_unknown_org_raises_not_found(resolver: AccessContextResolver) -> None:
    with pytest.raises(NotFoundError):
        run(resolver.resolve(None, "nowhere"))


def test_no_token_resolves_to_anonymous_guest(resolver: AccessContextResolver) -> None:
    create_test_org()
    ctx = run(resolver.resolve(None, "test-org"))
    assert ctx.actor is ANONYMOUS
    assert ctx.is_guest is True
    assert ctx.effective_permissions == frozenset()


def test_expired_token_resolves_to_guest(resolver: AccessContextResolver) -> None:
    create_test_org()
    token = token_service.create_session_token(sub=str(uuid4()), ttl=timedelta(seconds=-5))
    ctx = run(resolver.resolve(token, "test-org"))
    assert ctx.is_authenticated is False


def test_non_member_is_authenticated_guest(resolver: AccessContextResolver) -> None:
    create_test_org()
    user = uuid4()
    ctx = run(resolver.resolve(mint_token(user), "test-org"))
    assert ctx.is_authenticated is True
    assert ctx.actor_id == user
    assert ctx.is_guest is True
    assert ctx.membership is None


def test_inactive_membership_grants_nothing(resolver: AccessContextResolver) -> None:
    org = create_test_org()
    user = add_test_member(org, {"members.view"}, active=False)
    ctx = run(resolver.resolve(mint_token(user), "test-org"))
    assert ctx.is_guest is True
    assert ctx.membership is not None
    assert ctx.roles == frozenset()
    assert ctx.effective_permissions == frozenset()


def test_active_member_gets_union_of_role_permissions(resolver: AccessContextResolver) -> None:
    org = create_test_org()
    user = add_test_member(org, {"members.view"})
    ctx = run(resolver.resolve(mint_token(user), "TEST-ORG"))
    assert ctx.is_guest is False
    assert ctx.effective_permissions == {"members.view"}
    assert len(ctx.roles) == 1


def test_membership_in_other_org_does_not_leak(resolver: AccessContextResolver) -> None:
    home = create_test_org("home-org")
    create_test_org("away-org")
    user = add_test_member(home, {"group.edit"})
    ctx = run(resolver.resolve(mint_token(user), "away-org"))
    assert ctx.is_guest is True
    assert ctx.effective_permissions == frozenset()


def test_request_access_memoizes_per_slug() -> None:
    create_test_org()
    calls: list[str] = []

    class CountingResolver(AccessContextResolver):
        async def resolve(self, session_token, org_slug):
            calls.append(org_slug)
            return await super().resolve(session_token, org_slug)

    access = RequestAccess(CountingResolver(memory_storage), None)

    async def _twice():
        first = await access.context_for("test-org")
        second = await access.context_for("Test-Org")
        return first, second

    first, second = run(_twice())
    assert first is second
    assert calls == ["test-org"]


def test_request_access_is_not_shared_between_requests() -> None:
    org = create_test_org()
    user = add_test_member(org, active=False)
    token = mint_token(user)

    before = run(RequestAccess(AccessContextResolver(memory_storage), token).context_for("test-org"))
    run(memory_storage.memberships.activate(before.membership.id, None))  # type: ignore[union-attr]
    after = run(RequestAccess(AccessContextResolver(memory_storage), token).context_for("test-org"))

    assert before.is_guest is True
    assert after.is_guest is False
