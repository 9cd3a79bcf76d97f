from __future__ import annotations

from typing import Protocol
from uuid import UUID

from app.models.role import Role, RoleAssignment


class RoleRepo(Protocol):
    async def get(self, role_id: UUID) -> Role | None: ...
    async def get_by_name(self, org_id: UUID, name: str) -> Role | None: ...
    async def add(self, role: Role) -> None: ...
    async def list_by_org(self, org_id: UUID) -> list[Role]: ...
    async def assign(self, role_id: UUID, user_id: UUID) -> bool: ...
    async def list_for_user(self, org_id: UUID, user_id: UUID) -> list[Role]: ...


class InMemoryRoleRepo:
    def __init__(self) -> None:
        self._roles: dict[UUID, Role] = {}
        self._assignments: set[RoleAssignment] = set()

    async def get(self, role_id: UUID) -> Role | None:
        return self._roles.get(role_id)

    async def get_by_name(self, org_id: UUID, name: str) -> Role | None:
        for role in self._roles.values():
            if role.org_id == org_id and role.name == name:
                return role
        return None

    async def add(self, role: Role) -> None:
        if role.id in self._roles:
            raise ValueError("role already exists")
        self._roles[role.id] = role

    async def list_by_org(self, org_id: UUID) -> list[Role]:
        return [r for r in self._roles.values() if r.org_id == org_id]

    async def assign(self, role_id: UUID, user_id: UUID) -> bool:
        """Grant a role.  Returns False when the grant already existed."""
        assignment = RoleAssignment(role_id=role_id, user_id=user_id)
        if assignment in self._assignments:
            return False
        self._assignments.add(assignment)
        return True

    async def list_for_user(self, org_id: UUID, user_id: UUID) -> list[Role]:
        return [
            self._roles[a.role_id]
            for a in self._assignments
            if a.user_id == user_id
            and a.role_id in self._roles
            and self._roles[a.role_id].org_id == org_id
        ]
