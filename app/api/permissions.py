from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from app.core.permissions import PERMISSION_CATALOG, flatten

router = APIRouter(prefix="/v1", tags=["permissions"])


class PermissionOptionOut(BaseModel):
    label: str
    value: str


@router.get("/permissions", response_model=list[PermissionOptionOut])
async def list_permissions() -> list[PermissionOptionOut]:
    """Every grantable permission, in catalog order, for role editors."""
    return [
        PermissionOptionOut(label=o.label, value=o.value)
        for o in flatten(PERMISSION_CATALOG)
    ]
