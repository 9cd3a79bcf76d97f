"""Membership tiers: the products an applicant can apply for."""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from app.api import requirements as req
from app.api.dependencies import get_storage, require_org_access
from app.models.access import AccessContext
from app.models.tier import ActivationType, MembershipTier
from app.repos.storage import Storage
from app.services.org_service import OrgService

router = APIRouter(prefix="/v1/orgs", tags=["tiers"])


class TierCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    activation_type: ActivationType
    price: int = Field(default=0, description="Minor units, e.g. cents")
    currency: str = "USD"
    duration_months: int = 12
    description: str = ""
    granted_role_id: UUID | None = None
    member_id_format: str | None = None


class TierOut(BaseModel):
    id: str
    name: str
    activation_type: ActivationType
    price: int
    currency: str
    duration_months: int
    description: str
    requires_payment: bool


def tier_out(tier: MembershipTier) -> TierOut:
    return TierOut(
        id=str(tier.id),
        name=tier.name,
        activation_type=tier.activation_type,
        price=tier.price,
        currency=tier.currency,
        duration_months=tier.duration_months,
        description=tier.description,
        requires_payment=tier.requires_payment,
    )


@router.get("/{slug}/tiers", response_model=list[TierOut])
async def list_tiers(
    context: Annotated[AccessContext, Depends(require_org_access(req.VIEW_TIERS))],
    storage: Annotated[Storage, Depends(get_storage)],
) -> list[TierOut]:
    tiers = await OrgService(storage).list_tiers(context.organization)
    return [tier_out(t) for t in tiers]


@router.post("/{slug}/tiers", response_model=TierOut, status_code=status.HTTP_201_CREATED)
async def create_tier(
    body: TierCreateIn,
    context: Annotated[AccessContext, Depends(require_org_access(req.MANAGE_TIERS))],
    storage: Annotated[Storage, Depends(get_storage)],
) -> TierOut:
    """Create a tier.  Price and activation policy are checked against each other."""
    tier = await OrgService(storage).create_tier(
        context.organization,
        name=body.name,
        activation_type=body.activation_type,
        price=body.price,
        currency=body.currency,
        duration_months=body.duration_months,
        description=body.description,
        granted_role_id=body.granted_role_id,
        member_id_format=body.member_id_format,
    )
    return tier_out(tier)
