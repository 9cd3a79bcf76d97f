"""Organization administration: creation, slug changes, tiers, members."""

from __future__ import annotations

import logging
from uuid import UUID

from app.core.errors import ConflictError, DomainValidationError
from app.core.permissions import ALL_PERMISSIONS
from app.models.access import AccessContext
from app.models.identity import Identity
from app.models.organization import (
    Membership,
    Organization,
    is_valid_slug,
    normalize_slug,
)
from app.models.tier import ActivationType, MembershipTier
from app.repos.storage import Storage
from app.services.role_store import RolePermissionStore

logger = logging.getLogger(__name__)

OWNER_ROLE_NAME = "Owner"


def _checked_slug(raw: str) -> str:
    slug = normalize_slug(raw)
    if not is_valid_slug(slug):
        raise DomainValidationError(
            "slug must be 3-64 lowercase letters, digits or single hyphens",
            slug=raw,
        )
    return slug


class OrgService:
    def __init__(self, storage: Storage) -> None:
        self._storage = storage
        self._roles = RolePermissionStore(storage)

    async def create_org(
        self,
        creator: Identity,
        *,
        name: str,
        slug: str,
        alternate_name: str = "",
        description: str = "",
        type: str = "community",
        parent_id: UUID | None = None,
    ) -> Organization:
        """Create an org; the creator becomes an active member holding the Owner role."""
        slug = _checked_slug(slug)
        if not name.strip():
            raise DomainValidationError("name must not be empty")
        if await self._storage.orgs.get_by_slug(slug) is not None:
            raise ConflictError("slug already taken", slug=slug)

        org = Organization.new(
            name=name.strip(),
            slug=slug,
            created_by=creator.id,
            alternate_name=alternate_name,
            description=description,
            type=type,
            parent_id=parent_id,
        )
        try:
            await self._storage.orgs.add(org)
        except ValueError:
            raise ConflictError("slug already taken", slug=slug) from None

        await self._storage.memberships.add(
            Membership.new(org_id=org.id, user_id=creator.id, is_active=True)
        )
        owner = await self._roles.create_role(
            org,
            name=OWNER_ROLE_NAME,
            permissions=ALL_PERMISSIONS,
            description="Full control of the organization",
            created_by=creator.id,
        )
        await self._roles.assign_role(org, owner.id, creator.id)

        logger.info(
            "Organization created slug=%s creator=%s",
            org.slug,
            creator.id,
            extra={"org_slug": org.slug},
        )
        return org

    async def update_slug(
        self, context: AccessContext, new_slug: str, *, confirm: bool = False
    ) -> Organization:
        """Rename the org's slug.

        Every previously shared URL stops working, so the caller must
        pass ``confirm=True``; the route gates this on ``group.edit``.
        """
        org = context.organization
        slug = _checked_slug(new_slug)
        if slug == org.slug:
            return org
        if not confirm:
            raise DomainValidationError(
                "changing the slug breaks existing links; resend with confirm=true",
                slug=slug,
            )
        try:
            updated = await self._storage.orgs.update_slug(org.id, slug)
        except ValueError:
            raise ConflictError("slug already taken", slug=slug) from None
        if updated is None:
            raise ConflictError("organization changed concurrently", slug=org.slug)

        logger.warning(
            "Organization slug changed %s -> %s by %s",
            org.slug,
            slug,
            context.actor_id,
            extra={"org_slug": slug},
        )
        return updated

    async def create_tier(
        self,
        org: Organization,
        *,
        name: str,
        activation_type: ActivationType,
        price: int = 0,
        currency: str = "USD",
        duration_months: int = 12,
        description: str = "",
        granted_role_id: UUID | None = None,
        member_id_format: str | None = None,
    ) -> MembershipTier:
        if granted_role_id is not None:
            role = await self._storage.roles.get(granted_role_id)
            if role is None or role.org_id != org.id:
                raise DomainValidationError(
                    "granted role does not belong to this organization",
                    role_id=str(granted_role_id),
                )
        tier = MembershipTier.new(
            org_id=org.id,
            name=name,
            activation_type=activation_type,
            price=price,
            currency=currency,
            duration_months=duration_months,
            description=description,
            granted_role_id=granted_role_id,
            member_id_format=member_id_format,
        )
        await self._storage.tiers.add(tier)
        logger.info(
            "Tier created org=%s tier=%s policy=%s price=%d %s",
            org.slug,
            tier.name,
            tier.activation_type,
            tier.price,
            tier.currency,
            extra={"org_slug": org.slug},
        )
        return tier

    async def list_tiers(self, org: Organization) -> list[MembershipTier]:
        tiers = await self._storage.tiers.list_by_org(org.id)
        return sorted((t for t in tiers if t.is_active), key=lambda t: (t.price, t.name))

    async def list_members(self, org: Organization) -> list[Membership]:
        members = await self._storage.memberships.list_by_org(org.id)
        return [m for m in members if m.is_active]
