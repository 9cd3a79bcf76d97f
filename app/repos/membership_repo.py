from __future__ import annotations

from dataclasses import replace
from typing import Protocol
from uuid import UUID

from app.models.organization import Membership


class MembershipRepo(Protocol):
    async def get(self, org_id: UUID, user_id: UUID) -> Membership | None: ...
    async def get_by_id(self, membership_id: UUID) -> Membership | None: ...
    async def add(self, membership: Membership) -> None: ...
    async def activate(
        self, membership_id: UUID, member_id: str | None = None
    ) -> Membership | None: ...
    async def list_by_org(self, org_id: UUID) -> list[Membership]: ...
    async def list_member_ids(self, org_id: UUID) -> list[str]: ...


class InMemoryMembershipRepo:
    def __init__(self) -> None:
        self._store: dict[tuple[UUID, UUID], Membership] = {}

    async def get(self, org_id: UUID, user_id: UUID) -> Membership | None:
        return self._store.get((org_id, user_id))

    async def get_by_id(self, membership_id: UUID) -> Membership | None:
        for m in self._store.values():
            if m.id == membership_id:
                return m
        return None

    async def add(self, membership: Membership) -> None:
        key = (membership.org_id, membership.user_id)
        if key in self._store:
            raise ValueError("membership already exists")
        self._store[key] = membership

    async def activate(
        self, membership_id: UUID, member_id: str | None = None
    ) -> Membership | None:
        existing = await self.get_by_id(membership_id)
        if existing is None:
            return None
        # A member id, once issued, is never replaced.
        updated = replace(
            existing,
            is_active=True,
            member_id=existing.member_id or member_id,
        )
        self._store[(existing.org_id, existing.user_id)] = updated
        return updated

    async def list_by_org(self, org_id: UUID) -> list[Membership]:
        return [m for m in self._store.values() if m.org_id == org_id]

    async def list_member_ids(self, org_id: UUID) -> list[str]:
        return [
            m.member_id
            for m in self._store.values()
            if m.org_id == org_id and m.member_id is not None
        ]
