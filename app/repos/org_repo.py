from __future__ import annotations

from dataclasses import replace
from typing import Protocol
from uuid import UUID

from app.models.organization import Organization


class OrgRepo(Protocol):
    async def get_by_id(self, org_id: UUID) -> Organization | None: ...
    async def get_by_slug(self, slug: str) -> Organization | None: ...
    async def add(self, org: Organization) -> None: ...
    async def update_slug(self, org_id: UUID, new_slug: str) -> Organization | None: ...


class InMemoryOrgRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Organization] = {}
        self._by_slug: dict[str, Organization] = {}

    async def get_by_id(self, org_id: UUID) -> Organization | None:
        return self._by_id.get(org_id)

    async def get_by_slug(self, slug: str) -> Organization | None:
        return self._by_slug.get(slug)

    async def add(self, org: Organization) -> None:
        if org.slug in self._by_slug:
            raise ValueError("slug already exists")
        self._by_id[org.id] = org
        self._by_slug[org.slug] = org

    async def update_slug(self, org_id: UUID, new_slug: str) -> Organization | None:
        existing = self._by_id.get(org_id)
        if existing is None:
            return None
        if new_slug in self._by_slug and self._by_slug[new_slug].id != org_id:
            raise ValueError("slug already exists")
        updated = replace(existing, slug=new_slug)
        del self._by_slug[existing.slug]
        self._by_slug[new_slug] = updated
        self._by_id[org_id] = updated
        return updated
