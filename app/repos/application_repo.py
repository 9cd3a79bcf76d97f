from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime
from typing import Any, Protocol
from uuid import UUID

from app.models.application import Application, ApplicationStatus


class ApplicationRepo(Protocol):
    async def get(self, application_id: UUID) -> Application | None: ...
    async def add(self, application: Application) -> None: ...
    async def find_open(
        self, membership_id: UUID, tier_id: UUID
    ) -> Application | None: ...
    async def list_by_org(
        self, org_id: UUID, status: ApplicationStatus | None = None
    ) -> list[Application]: ...
    async def transition(
        self,
        application_id: UUID,
        expected: ApplicationStatus,
        **changes: Any,
    ) -> Application | None: ...


class InMemoryApplicationRepo:
    def __init__(self) -> None:
        self._store: dict[UUID, Application] = {}

    async def get(self, application_id: UUID) -> Application | None:
        return self._store.get(application_id)

    async def add(self, application: Application) -> None:
        if application.id in self._store:
            raise ValueError("application already exists")
        self._store[application.id] = application

    async def find_open(self, membership_id: UUID, tier_id: UUID) -> Application | None:
        for a in self._store.values():
            if a.membership_id == membership_id and a.tier_id == tier_id and a.is_open:
                return a
        return None

    async def list_by_org(
        self, org_id: UUID, status: ApplicationStatus | None = None
    ) -> list[Application]:
        found = [
            a
            for a in self._store.values()
            if a.org_id == org_id and (status is None or a.status == status)
        ]
        return sorted(
            found,
            key=lambda a: a.created_at or datetime.min.replace(tzinfo=UTC),
            reverse=True,
        )

    async def transition(
        self,
        application_id: UUID,
        expected: ApplicationStatus,
        **changes: Any,
    ) -> Application | None:
        """Compare-and-swap: apply ``changes`` only if status is still ``expected``.

        Returns the updated row, or None when the row is missing or another
        writer moved it first.  There is no await between the check and the
        write, so concurrent coroutines cannot interleave here.
        """
        current = self._store.get(application_id)
        if current is None or current.status != expected:
            return None
        updated = replace(current, updated_at=datetime.now(UTC), **changes)
        self._store[application_id] = updated
        return updated
