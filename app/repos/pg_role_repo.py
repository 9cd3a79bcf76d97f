"""PostgreSQL implementations of RoleRepo and TierRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import MembershipTierRow, RoleAssignmentRow, RoleRow
from app.models.role import Role
from app.models.tier import ActivationType, MembershipTier


class PgRoleRepo:
    """Satisfies the RoleRepo Protocol using PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, role_id: UUID) -> Role | None:
        row = await self._session.get(RoleRow, role_id)
        return _row_to_role(row) if row is not None else None

    async def get_by_name(self, org_id: UUID, name: str) -> Role | None:
        stmt = select(RoleRow).where(RoleRow.org_id == org_id, RoleRow.name == name)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_role(row) if row is not None else None

    async def add(self, role: Role) -> None:
        self._session.add(
            RoleRow(
                id=role.id,
                org_id=role.org_id,
                name=role.name,
                description=role.description,
                permissions=sorted(role.permissions),
                created_by=role.created_by,
                created_at=role.created_at,
            )
        )
        await self._session.flush()

    async def list_by_org(self, org_id: UUID) -> list[Role]:
        stmt = select(RoleRow).where(RoleRow.org_id == org_id).order_by(RoleRow.name)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_role(r) for r in rows]

    async def assign(self, role_id: UUID, user_id: UUID) -> bool:
        stmt = (
            insert(RoleAssignmentRow)
            .values(role_id=role_id, user_id=user_id)
            .on_conflict_do_nothing()
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def list_for_user(self, org_id: UUID, user_id: UUID) -> list[Role]:
        stmt = (
            select(RoleRow)
            .join(RoleAssignmentRow, RoleAssignmentRow.role_id == RoleRow.id)
            .where(RoleRow.org_id == org_id, RoleAssignmentRow.user_id == user_id)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_role(r) for r in rows]


class PgTierRepo:
    """Satisfies the TierRepo Protocol using PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, tier_id: UUID) -> MembershipTier | None:
        row = await self._session.get(MembershipTierRow, tier_id)
        return _row_to_tier(row) if row is not None else None

    async def add(self, tier: MembershipTier) -> None:
        self._session.add(
            MembershipTierRow(
                id=tier.id,
                org_id=tier.org_id,
                name=tier.name,
                description=tier.description,
                price=tier.price,
                currency=tier.currency,
                duration_months=tier.duration_months,
                activation_type=tier.activation_type.value,
                granted_role_id=tier.granted_role_id,
                member_id_format=tier.member_id_format,
                is_active=tier.is_active,
                created_at=tier.created_at,
            )
        )
        await self._session.flush()

    async def list_by_org(self, org_id: UUID) -> list[MembershipTier]:
        stmt = (
            select(MembershipTierRow)
            .where(MembershipTierRow.org_id == org_id)
            .order_by(MembershipTierRow.price)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_tier(r) for r in rows]


def _row_to_role(row: RoleRow) -> Role:
    return Role(
        id=row.id,
        org_id=row.org_id,
        name=row.name,
        permissions=frozenset(row.permissions or ()),
        description=row.description or "",
        created_by=row.created_by,
        created_at=row.created_at,
    )


def _row_to_tier(row: MembershipTierRow) -> MembershipTier:
    return MembershipTier(
        id=row.id,
        org_id=row.org_id,
        name=row.name,
        activation_type=ActivationType(row.activation_type),
        price=row.price,
        currency=row.currency,
        duration_months=row.duration_months,
        description=row.description or "",
        granted_role_id=row.granted_role_id,
        member_id_format=row.member_id_format,
        is_active=row.is_active,
        created_at=row.created_at,
    )
