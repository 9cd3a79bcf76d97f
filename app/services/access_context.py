"""Access context resolution.

Answers "who is calling, in which organization, holding what" once per
request.  The result is an immutable AccessContext that the gate and
the lifecycle read; nothing here decides whether an action is allowed.
"""

from __future__ import annotations

import logging

from app.core.errors import NotFoundError
from app.models.access import AccessContext
from app.models.identity import ANONYMOUS, Actor
from app.models.organization import normalize_slug
from app.repos.storage import Storage
from app.services import token_service
from app.services.role_store import RolePermissionStore, effective_permissions

logger = logging.getLogger(__name__)


class AccessContextResolver:
    def __init__(self, storage: Storage) -> None:
        self._storage = storage
        self._roles = RolePermissionStore(storage)

    async def resolve(self, session_token: str | None, org_slug: str) -> AccessContext:
        """Build the AccessContext for ``session_token`` inside ``org_slug``.

        Raises NotFoundError when the org is absent or soft-deleted.  A
        missing or unusable token is not an error: the actor is a guest.
        """
        org = await self._storage.orgs.get_by_slug(normalize_slug(org_slug))
        if org is None or org.is_deleted:
            raise NotFoundError("organization not found", org_slug=org_slug)

        identity = token_service.identity_from_token(session_token)
        actor: Actor = identity if identity is not None else ANONYMOUS
        if identity is None:
            return AccessContext(actor=actor, organization=org)

        membership = await self._storage.memberships.get(org.id, identity.id)
        if membership is None or not membership.is_active:
            # Pending applicants hold an inactive membership; they are
            # still guests of the organization.
            return AccessContext(actor=actor, organization=org, membership=membership)

        roles = await self._roles.get_roles_for_identity(identity.id, org.id)
        context = AccessContext(
            actor=actor,
            organization=org,
            membership=membership,
            roles=roles,
            effective_permissions=effective_permissions(roles),
            is_guest=False,
        )
        logger.debug(
            "Access context resolved org=%s actor=%s roles=%d permissions=%d",
            org.slug,
            identity.id,
            len(roles),
            len(context.effective_permissions),
        )
        return context


class RequestAccess:
    """Per-request memo of resolved contexts, keyed by org slug.

    Created by a FastAPI dependency for each request and discarded with
    it, so a context can never outlive the request that produced it.
    """

    def __init__(self, resolver: AccessContextResolver, session_token: str | None) -> None:
        self._resolver = resolver
        self._session_token = session_token
        self._contexts: dict[str, AccessContext] = {}

    async def context_for(self, org_slug: str) -> AccessContext:
        key = normalize_slug(org_slug)
        if key not in self._contexts:
            self._contexts[key] = await self._resolver.resolve(self._session_token, key)
        return self._contexts[key]
