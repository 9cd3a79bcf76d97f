"""Role management within one organization."""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from app.api import requirements as req
from app.api.dependencies import get_storage, require_org_access
from app.models.access import AccessContext
from app.models.role import Role
from app.repos.storage import Storage
from app.services.role_store import RolePermissionStore

router = APIRouter(prefix="/v1/orgs", tags=["roles"])


class RoleCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    permissions: list[str] = []
    description: str = ""


class RoleOut(BaseModel):
    id: str
    name: str
    description: str
    permissions: list[str]


class AssignRoleIn(BaseModel):
    user_id: UUID


def role_out(role: Role) -> RoleOut:
    return RoleOut(
        id=str(role.id),
        name=role.name,
        description=role.description,
        permissions=sorted(role.permissions),
    )


@router.get("/{slug}/roles", response_model=list[RoleOut])
async def list_roles(
    context: Annotated[AccessContext, Depends(require_org_access(req.VIEW_ROLES))],
    storage: Annotated[Storage, Depends(get_storage)],
) -> list[RoleOut]:
    roles = await RolePermissionStore(storage).list_roles(context.organization)
    return [role_out(r) for r in roles]


@router.post("/{slug}/roles", response_model=RoleOut, status_code=status.HTTP_201_CREATED)
async def create_role(
    body: RoleCreateIn,
    context: Annotated[AccessContext, Depends(require_org_access(req.CREATE_ROLE))],
    storage: Annotated[Storage, Depends(get_storage)],
) -> RoleOut:
    """Create a role.  Every permission must come from GET /v1/permissions."""
    role = await RolePermissionStore(storage).create_role(
        context.organization,
        name=body.name,
        permissions=body.permissions,
        description=body.description,
        created_by=context.actor_id,
    )
    return role_out(role)


@router.post("/{slug}/roles/{role_id}/users", response_model=RoleOut)
async def assign_role(
    role_id: UUID,
    body: AssignRoleIn,
    context: Annotated[AccessContext, Depends(require_org_access(req.ASSIGN_ROLE))],
    storage: Annotated[Storage, Depends(get_storage)],
) -> RoleOut:
    role = await RolePermissionStore(storage).assign_role(
        context.organization, role_id, body.user_id
    )
    return role_out(role)
