"""PostgreSQL implementations of OrgRepo and MembershipRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import MembershipRow, OrganizationRow
from app.models.organization import Membership, Organization


class PgOrgRepo:
    """Satisfies the OrgRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, org_id: UUID) -> Organization | None:
        row = await self._session.get(OrganizationRow, org_id)
        return _row_to_org(row) if row is not None else None

    async def get_by_slug(self, slug: str) -> Organization | None:
        stmt = select(OrganizationRow).where(OrganizationRow.slug == slug)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_org(row) if row is not None else None

    async def add(self, org: Organization) -> None:
        if await self.get_by_slug(org.slug) is not None:
            raise ValueError("slug already exists")
        self._session.add(
            OrganizationRow(
                id=org.id,
                slug=org.slug,
                name=org.name,
                alternate_name=org.alternate_name,
                description=org.description,
                type=org.type,
                parent_id=org.parent_id,
                created_by=org.created_by,
                created_at=org.created_at,
                deleted_at=org.deleted_at,
            )
        )
        await self._session.flush()

    async def update_slug(self, org_id: UUID, new_slug: str) -> Organization | None:
        taken = await self.get_by_slug(new_slug)
        if taken is not None and taken.id != org_id:
            raise ValueError("slug already exists")
        stmt = (
            update(OrganizationRow)
            .where(OrganizationRow.id == org_id)
            .values(slug=new_slug)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            return None
        return await self.get_by_id(org_id)


class PgMembershipRepo:
    """Satisfies the MembershipRepo Protocol using PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, org_id: UUID, user_id: UUID) -> Membership | None:
        stmt = select(MembershipRow).where(
            MembershipRow.org_id == org_id, MembershipRow.user_id == user_id
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_membership(row) if row is not None else None

    async def get_by_id(self, membership_id: UUID) -> Membership | None:
        row = await self._session.get(MembershipRow, membership_id)
        return _row_to_membership(row) if row is not None else None

    async def add(self, membership: Membership) -> None:
        self._session.add(
            MembershipRow(
                id=membership.id,
                org_id=membership.org_id,
                user_id=membership.user_id,
                is_active=membership.is_active,
                member_id=membership.member_id,
                created_by=membership.created_by,
                created_at=membership.created_at,
            )
        )
        await self._session.flush()

    async def activate(
        self, membership_id: UUID, member_id: str | None = None
    ) -> Membership | None:
        stmt = (
            update(MembershipRow)
            .where(MembershipRow.id == membership_id)
            .values(is_active=True)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            return None
        if member_id is not None:
            await self._session.execute(
                update(MembershipRow)
                .where(
                    MembershipRow.id == membership_id,
                    MembershipRow.member_id.is_(None),
                )
                .values(member_id=member_id)
            )
        return await self.get_by_id(membership_id)

    async def list_by_org(self, org_id: UUID) -> list[Membership]:
        stmt = select(MembershipRow).where(MembershipRow.org_id == org_id)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_membership(r) for r in rows]

    async def list_member_ids(self, org_id: UUID) -> list[str]:
        stmt = select(MembershipRow.member_id).where(
            MembershipRow.org_id == org_id, MembershipRow.member_id.is_not(None)
        )
        return list((await self._session.execute(stmt)).scalars().all())


def _row_to_org(row: OrganizationRow) -> Organization:
    return Organization(
        id=row.id,
        slug=row.slug,
        name=row.name,
        created_by=row.created_by,
        alternate_name=row.alternate_name or "",
        description=row.description or "",
        type=row.type,
        parent_id=row.parent_id,
        created_at=row.created_at,
        deleted_at=row.deleted_at,
    )


def _row_to_membership(row: MembershipRow) -> Membership:
    return Membership(
        id=row.id,
        org_id=row.org_id,
        user_id=row.user_id,
        is_active=row.is_active,
        member_id=row.member_id,
        created_by=row.created_by,
        created_at=row.created_at,
    )
