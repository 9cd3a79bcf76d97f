"""FastAPI dependencies: storage, caller identity, and org-scoped guards.

Per request:

  get_storage         one Storage (one DB transaction) for the request
  get_session_token   bearer header, falling back to the "session" cookie
  get_request_access  RequestAccess memo bound to this request only
  require_org_access  dependency factory: resolve the org context from
                      the {slug} path param and enforce a requirement

Usage::

    @router.get("/{slug}/members")
    async def list_members(
        context: Annotated[AccessContext, Depends(require_org_access(VIEW_MEMBERS))],
    ): ...
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.errors import UnauthenticatedError
from app.middleware.request_context import actor_id_var
from app.models.access import AccessContext
from app.models.identity import Identity
from app.repos.storage import Storage, open_storage
from app.services import token_service
from app.services.access_context import AccessContextResolver, RequestAccess
from app.services.access_gate import AccessRequirement, enforce

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

SESSION_COOKIE = "session"


async def get_storage() -> AsyncIterator[Storage]:
    async with open_storage() as storage:
        yield storage


def get_session_token(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> str | None:
    if credentials is not None and credentials.scheme.lower() == "bearer":
        return credentials.credentials
    return request.cookies.get(SESSION_COOKIE)


def get_request_access(
    storage: Annotated[Storage, Depends(get_storage)],
    session_token: Annotated[str | None, Depends(get_session_token)],
) -> RequestAccess:
    return RequestAccess(AccessContextResolver(storage), session_token)


def require_identity(
    session_token: Annotated[str | None, Depends(get_session_token)],
) -> Identity:
    """Demand an identity for routes that are not scoped to one org."""
    identity = token_service.identity_from_token(session_token)
    if identity is None:
        raise UnauthenticatedError("authentication required")
    actor_id_var.set(str(identity.id))
    return identity


def require_org_access(requirement: AccessRequirement):
    """Dependency factory: the AccessContext for {slug}, once ``requirement`` holds.

    Raises NotFoundError for an unknown org, UnauthenticatedError or
    ForbiddenError (with a redirect hint where the gate gives one) on denial.
    """

    async def _guard(
        slug: str,
        access: Annotated[RequestAccess, Depends(get_request_access)],
    ) -> AccessContext:
        context = await access.context_for(slug)
        if context.actor_id is not None:
            actor_id_var.set(str(context.actor_id))
        return enforce(context, requirement)

    return _guard
