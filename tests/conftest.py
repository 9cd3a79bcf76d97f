from __future__ import annotations

import asyncio
import sys
from collections.abc import Coroutine, Iterable
from pathlib import Path
from typing import Any, TypeVar
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

# Ensure repo root is on sys.path so `import app` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.main import app  # noqa: E402
from app.models.identity import Identity  # noqa: E402
from app.models.organization import Membership, Organization  # noqa: E402
from app.models.tier import ActivationType, MembershipTier  # noqa: E402
from app.repos.storage import memory_storage  # noqa: E402
from app.services import token_service  # noqa: E402
from app.services.org_service import OrgService  # noqa: E402
from app.services.payment_provider import (  # noqa: E402
    InMemoryPaymentProvider,
    payment_provider,
)
from app.services.role_store import RolePermissionStore  # noqa: E402
from app.services.task_queue import task_queue  # noqa: E402

T = TypeVar("T")


def run(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)


@pytest.fixture(autouse=True)
def reset_storage() -> None:
    """Empty every in-memory repository between tests."""
    for repo in (
        memory_storage.orgs,
        memory_storage.memberships,
        memory_storage.roles,
        memory_storage.tiers,
        memory_storage.applications,
        memory_storage.orders,
        memory_storage.manual_payments,
    ):
        for collection in vars(repo).values():
            collection.clear()


@pytest.fixture(autouse=True)
def reset_task_queue() -> None:
    """Clear task queues between tests."""
    if hasattr(task_queue, "_queues"):
        task_queue._queues.clear()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def reset_payment_provider() -> None:
    if isinstance(payment_provider, InMemoryPaymentProvider):
        payment_provider.intents.clear()
        payment_provider.requests.clear()
        payment_provider.fail = False


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def provider() -> InMemoryPaymentProvider:
    assert isinstance(payment_provider, InMemoryPaymentProvider)
    return payment_provider


def mint_token(user_id: UUID | None = None, email: str = "") -> str:
    """Create a valid ES256 session token for testing."""
    return token_service.create_session_token(sub=str(user_id or uuid4()), email=email)


def auth(token: str | None) -> dict[str, str]:
    if token is None:
        return {}
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Seed helpers (write straight to the in-memory storage)
# ---------------------------------------------------------------------------


def create_test_org(slug: str = "test-org", owner_id: UUID | None = None) -> Organization:
    """Create an org through OrgService; the owner holds every permission."""
    owner = Identity(id=owner_id or uuid4(), email="owner@example.com")
    return run(
        OrgService(memory_storage).create_org(
            owner, name=slug.replace("-", " ").title(), slug=slug
        )
    )


def owner_of(org: Organization) -> UUID:
    assert org.created_by is not None
    return org.created_by


def add_test_member(
    org: Organization,
    permissions: Iterable[str] = (),
    *,
    user_id: UUID | None = None,
    active: bool = True,
) -> UUID:
    """Add a membership, plus a role holding ``permissions`` when any are given."""
    user_id = user_id or uuid4()

    async def _seed() -> None:
        await memory_storage.memberships.add(
            Membership.new(org_id=org.id, user_id=user_id, is_active=active)
        )
        perms = frozenset(permissions)
        if perms:
            store = RolePermissionStore(memory_storage)
            role = await store.create_role(
                org, name=f"role-{uuid4().hex[:8]}", permissions=perms
            )
            await store.assign_role(org, role.id, user_id)

    run(_seed())
    return user_id


def add_test_tier(
    org: Organization,
    activation_type: ActivationType = ActivationType.IMMEDIATE,
    price: int = 0,
    **kwargs: Any,
) -> MembershipTier:
    return run(
        OrgService(memory_storage).create_tier(
            org,
            name=kwargs.pop("name", f"{activation_type.value}-tier"),
            activation_type=activation_type,
            price=price,
            **kwargs,
        )
    )
