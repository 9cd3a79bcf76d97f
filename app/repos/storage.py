"""Repository bundle handed to services.

Services never construct repositories themselves; they receive a
Storage.  With DATABASE_URL set, open_storage() yields PostgreSQL repos
that share one AsyncSession (one transaction per unit of work).  Without
it, every caller shares the process-wide in-memory bundle.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.engine import async_session_factory
from app.repos.application_repo import ApplicationRepo, InMemoryApplicationRepo
from app.repos.manual_payment_repo import InMemoryManualPaymentRepo, ManualPaymentRepo
from app.repos.membership_repo import InMemoryMembershipRepo, MembershipRepo
from app.repos.order_repo import InMemoryOrderRepo, OrderRepo
from app.repos.org_repo import InMemoryOrgRepo, OrgRepo
from app.repos.pg_application_repo import (
    PgApplicationRepo,
    PgManualPaymentRepo,
    PgOrderRepo,
)
from app.repos.pg_org_repo import PgMembershipRepo, PgOrgRepo
from app.repos.pg_role_repo import PgRoleRepo, PgTierRepo
from app.repos.role_repo import InMemoryRoleRepo, RoleRepo
from app.repos.tier_repo import InMemoryTierRepo, TierRepo


@dataclass(frozen=True, slots=True)
class Storage:
    orgs: OrgRepo
    memberships: MembershipRepo
    roles: RoleRepo
    tiers: TierRepo
    applications: ApplicationRepo
    orders: OrderRepo
    manual_payments: ManualPaymentRepo


def in_memory_storage() -> Storage:
    return Storage(
        orgs=InMemoryOrgRepo(),
        memberships=InMemoryMembershipRepo(),
        roles=InMemoryRoleRepo(),
        tiers=InMemoryTierRepo(),
        applications=InMemoryApplicationRepo(),
        orders=InMemoryOrderRepo(),
        manual_payments=InMemoryManualPaymentRepo(),
    )


def pg_storage(session: AsyncSession) -> Storage:
    return Storage(
        orgs=PgOrgRepo(session),
        memberships=PgMembershipRepo(session),
        roles=PgRoleRepo(session),
        tiers=PgTierRepo(session),
        applications=PgApplicationRepo(session),
        orders=PgOrderRepo(session),
        manual_payments=PgManualPaymentRepo(session),
    )


# Shared by the API and, in single-process dev/test runs, the worker.
memory_storage = in_memory_storage()


@asynccontextmanager
async def open_storage() -> AsyncIterator[Storage]:
    """Yield a Storage for one unit of work.

    PostgreSQL: commits on success, rolls back on exception.
    In-memory: yields the shared bundle; there is nothing to commit.
    """
    if async_session_factory is None:
        yield memory_storage
        return

    async with async_session_factory() as session:
        try:
            yield pg_storage(session)
            await session.commit()
        except Exception:
            await session.rollback()
            raise

