"""Organization endpoints.

The org is addressed by slug in the URL and resolved into an
AccessContext at request time; each route names the requirement it
enforces (see app/api/requirements.py).
"""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from app.api import requirements as req
from app.api.dependencies import get_storage, require_identity, require_org_access
from app.models.access import AccessContext
from app.models.identity import Identity
from app.models.organization import Organization
from app.repos.storage import Storage
from app.services.access_gate import decide
from app.services.org_service import OrgService

router = APIRouter(prefix="/v1/orgs", tags=["orgs"])


# --- Pydantic schemas ---


class OrgCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    slug: str
    alternate_name: str = ""
    description: str = ""
    type: str = "community"
    parent_id: UUID | None = None


class OrgOut(BaseModel):
    id: str
    slug: str
    name: str
    alternate_name: str
    description: str
    type: str
    parent_id: str | None


class SlugUpdateIn(BaseModel):
    slug: str
    confirm: bool = False


class AccessOut(BaseModel):
    org_slug: str
    authenticated: bool
    is_guest: bool
    is_member: bool
    member_id: str | None
    roles: list[str]
    permissions: list[str]
    capabilities: dict[str, bool]


class MemberOut(BaseModel):
    user_id: str
    member_id: str | None
    is_active: bool


def org_out(org: Organization) -> OrgOut:
    return OrgOut(
        id=str(org.id),
        slug=org.slug,
        name=org.name,
        alternate_name=org.alternate_name,
        description=org.description,
        type=org.type,
        parent_id=str(org.parent_id) if org.parent_id else None,
    )


# --- Endpoints ---


@router.post("", response_model=OrgOut, status_code=status.HTTP_201_CREATED)
async def create_org(
    body: OrgCreateIn,
    identity: Annotated[Identity, Depends(require_identity)],
    storage: Annotated[Storage, Depends(get_storage)],
) -> OrgOut:
    """Create an organization.  The creator becomes its first member and Owner."""
    org = await OrgService(storage).create_org(
        identity,
        name=body.name,
        slug=body.slug,
        alternate_name=body.alternate_name,
        description=body.description,
        type=body.type,
        parent_id=body.parent_id,
    )
    return org_out(org)


@router.get("/{slug}", response_model=OrgOut)
async def get_org(
    context: Annotated[AccessContext, Depends(require_org_access(req.VIEW_ORG))],
) -> OrgOut:
    return org_out(context.organization)


@router.get("/{slug}/access", response_model=AccessOut)
async def get_access(
    context: Annotated[AccessContext, Depends(require_org_access(req.VIEW_ORG))],
) -> AccessOut:
    """What the caller may do here, for clients deciding which actions to show."""
    membership = context.membership
    return AccessOut(
        org_slug=context.organization.slug,
        authenticated=context.is_authenticated,
        is_guest=context.is_guest,
        is_member=not context.is_guest,
        member_id=membership.member_id if membership and not context.is_guest else None,
        roles=sorted(r.name for r in context.roles),
        permissions=sorted(context.effective_permissions),
        capabilities={
            name: decide(context, requirement).allowed
            for name, requirement in req.CAPABILITIES.items()
        },
    )


@router.patch("/{slug}/slug", response_model=OrgOut)
async def update_slug(
    body: SlugUpdateIn,
    context: Annotated[AccessContext, Depends(require_org_access(req.EDIT_GROUP))],
    storage: Annotated[Storage, Depends(get_storage)],
) -> OrgOut:
    """Rename the org's URL slug.  Requires ``confirm: true`` since old links break."""
    org = await OrgService(storage).update_slug(context, body.slug, confirm=body.confirm)
    return org_out(org)


@router.get("/{slug}/members", response_model=list[MemberOut])
async def list_members(
    context: Annotated[AccessContext, Depends(require_org_access(req.VIEW_MEMBERS))],
    storage: Annotated[Storage, Depends(get_storage)],
) -> list[MemberOut]:
    members = await OrgService(storage).list_members(context.organization)
    return [
        MemberOut(user_id=str(m.user_id), member_id=m.member_id, is_active=m.is_active)
        for m in members
    ]
