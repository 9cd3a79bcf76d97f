from __future__ import annotations

from typing import Protocol
from uuid import UUID

from app.models.tier import MembershipTier


class TierRepo(Protocol):
    async def get(self, tier_id: UUID) -> MembershipTier | None: ...
    async def add(self, tier: MembershipTier) -> None: ...
    async def list_by_org(self, org_id: UUID) -> list[MembershipTier]: ...


class InMemoryTierRepo:
    def __init__(self) -> None:
        self._store: dict[UUID, MembershipTier] = {}

    async def get(self, tier_id: UUID) -> MembershipTier | None:
        return self._store.get(tier_id)

    async def add(self, tier: MembershipTier) -> None:
        if tier.id in self._store:
            raise ValueError("tier already exists")
        self._store[tier.id] = tier

    async def list_by_org(self, org_id: UUID) -> list[MembershipTier]:
        return [t for t in self._store.values() if t.org_id == org_id]
