"""Role-permission store.

Roles are org-scoped bundles of catalog permission strings.  Effective
permissions are the plain union of an identity's role permissions in
one organization: no negation, no inheritance, no hierarchy.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from uuid import UUID

from app.core.errors import ConflictError, DomainValidationError, NotFoundError
from app.core.permissions import unknown_permissions
from app.models.organization import Organization
from app.models.role import Role
from app.repos.storage import Storage

logger = logging.getLogger(__name__)


def effective_permissions(roles: Iterable[Role]) -> frozenset[str]:
    perms: set[str] = set()
    for role in roles:
        perms |= role.permissions
    return frozenset(perms)


class RolePermissionStore:
    def __init__(self, storage: Storage) -> None:
        self._storage = storage

    async def get_roles_for_identity(
        self, identity_id: UUID, org_id: UUID
    ) -> frozenset[Role]:
        """Roles held by ``identity_id`` in ``org_id``; empty when none.

        Raises NotFoundError when the organization itself does not exist.
        """
        org = await self._storage.orgs.get_by_id(org_id)
        if org is None or org.is_deleted:
            raise NotFoundError("organization not found", org_id=str(org_id))
        roles = await self._storage.roles.list_for_user(org_id, identity_id)
        return frozenset(roles)

    async def create_role(
        self,
        org: Organization,
        *,
        name: str,
        permissions: Iterable[str],
        description: str = "",
        created_by: UUID | None = None,
    ) -> Role:
        name = name.strip()
        if not name:
            raise DomainValidationError("role name must not be empty")
        perms = frozenset(permissions)
        unknown = unknown_permissions(perms)
        if unknown:
            raise DomainValidationError(
                "unknown permissions", permissions=sorted(unknown)
            )
        if await self._storage.roles.get_by_name(org.id, name) is not None:
            raise ConflictError(f"role {name!r} already exists", org_slug=org.slug)

        role = Role.new(
            org_id=org.id,
            name=name,
            permissions=perms,
            description=description,
            created_by=created_by,
        )
        await self._storage.roles.add(role)
        logger.info(
            "Role created org=%s role=%s permissions=%d",
            org.slug,
            role.name,
            len(role.permissions),
        )
        return role

    async def assign_role(self, org: Organization, role_id: UUID, user_id: UUID) -> Role:
        """Grant a role to a user.  Granting an already-held role is a no-op."""
        role = await self._storage.roles.get(role_id)
        if role is None or role.org_id != org.id:
            raise NotFoundError("role not found", role_id=str(role_id))
        created = await self._storage.roles.assign(role_id, user_id)
        if created:
            logger.info("Role granted org=%s role=%s user=%s", org.slug, role.name, user_id)
        return role

    async def list_roles(self, org: Organization) -> list[Role]:
        roles = await self._storage.roles.list_by_org(org.id)
        return sorted(roles, key=lambda r: r.name)
