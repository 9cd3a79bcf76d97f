from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from app.models.identity import Actor, Identity
from app.models.organization import Membership, Organization
from app.models.role import Role


@dataclass(frozen=True, slots=True)
class AccessContext:
    """What the current actor may do inside one organization.

    Built once per request by AccessContextResolver and passed down
    explicitly.  Never cached beyond the request that produced it.

    is_guest is True for anonymous callers and for authenticated callers
    without an active membership in *this* organization.
    """

    actor: Actor
    organization: Organization
    membership: Membership | None = None
    roles: frozenset[Role] = frozenset()
    effective_permissions: frozenset[str] = frozenset()
    is_guest: bool = True

    @property
    def is_authenticated(self) -> bool:
        return isinstance(self.actor, Identity)

    @property
    def identity(self) -> Identity | None:
        return self.actor if isinstance(self.actor, Identity) else None

    @property
    def actor_id(self) -> UUID | None:
        return self.actor.id if isinstance(self.actor, Identity) else None

    def has_permission(self, permission: str) -> bool:
        return permission in self.effective_permissions

    def has_any_permission(self, permissions: set[str] | frozenset[str]) -> bool:
        return bool(self.effective_permissions & permissions)
