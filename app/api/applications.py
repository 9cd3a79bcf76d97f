"""Membership applications: apply, review, pay.

Permission checks happen in the route guards; the lifecycle service
only enforces the state machine.  When the payment provider is down
after a state change was made, the route returns 502 itself rather than
raising, so the request's transaction still commits and the applicant
can retry payment against the stored pending_payment application.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.api import requirements as req
from app.api.dependencies import get_storage, require_org_access
from app.core.errors import UnauthenticatedError
from app.models.access import AccessContext
from app.models.application import Application, ApplicationStatus
from app.models.order import Order
from app.repos.storage import Storage
from app.services.application_lifecycle import ApplicationLifecycle, LifecycleResult
from app.services.payment_provider import PaymentIntent, payment_provider

router = APIRouter(prefix="/v1/orgs", tags=["applications"])


class ApplyIn(BaseModel):
    tier_id: UUID


class OrderOut(BaseModel):
    id: str
    status: str
    amount: int
    currency: str


class PaymentOut(BaseModel):
    intent_id: str
    client_secret: str
    status: str


class ApplicationOut(BaseModel):
    id: str
    user_id: str
    tier_id: str
    status: ApplicationStatus
    order_id: str | None
    approved_at: datetime | None
    rejected_at: datetime | None
    created_at: datetime | None


class ApplicationResultOut(BaseModel):
    application: ApplicationOut
    changed: bool
    message: str | None = None
    order: OrderOut | None = None
    payment: PaymentOut | None = None


def application_out(app: Application) -> ApplicationOut:
    return ApplicationOut(
        id=str(app.id),
        user_id=str(app.user_id),
        tier_id=str(app.tier_id),
        status=app.status,
        order_id=str(app.order_id) if app.order_id else None,
        approved_at=app.approved_at,
        rejected_at=app.rejected_at,
        created_at=app.created_at,
    )


def _order_out(order: Order | None) -> OrderOut | None:
    if order is None:
        return None
    return OrderOut(
        id=str(order.id), status=order.status, amount=order.amount, currency=order.currency
    )


def _payment_out(intent: PaymentIntent | None) -> PaymentOut | None:
    if intent is None:
        return None
    return PaymentOut(
        intent_id=intent.id, client_secret=intent.client_secret, status=intent.status
    )


def result_out(result: LifecycleResult) -> ApplicationResultOut:
    return ApplicationResultOut(
        application=application_out(result.application),
        changed=result.changed,
        message=result.message,
        order=_order_out(result.order),
        payment=_payment_out(result.intent),
    )


def _respond(result: LifecycleResult, response: Response) -> ApplicationResultOut | JSONResponse:
    if result.payment_error is not None:
        body = result.payment_error.to_response()
        body["error"]["application"] = result_out(result).model_dump(mode="json")
        return JSONResponse(status_code=result.payment_error.http_status, content=body)
    if not result.changed:
        response.status_code = status.HTTP_200_OK
    return result_out(result)


def _lifecycle(storage: Storage) -> ApplicationLifecycle:
    return ApplicationLifecycle(storage, payment_provider)


@router.post(
    "/{slug}/applications",
    response_model=ApplicationResultOut,
    status_code=status.HTTP_201_CREATED,
)
async def apply(
    body: ApplyIn,
    response: Response,
    context: Annotated[AccessContext, Depends(require_org_access(req.APPLY))],
    storage: Annotated[Storage, Depends(get_storage)],
):
    """Apply for a tier.  Re-applying while an application is open returns it (200)."""
    result = await _lifecycle(storage).create(context, body.tier_id)
    return _respond(result, response)


@router.get("/{slug}/applications", response_model=list[ApplicationOut])
async def list_applications(
    context: Annotated[AccessContext, Depends(require_org_access(req.VIEW_APPLICATIONS))],
    storage: Annotated[Storage, Depends(get_storage)],
    status_filter: Annotated[ApplicationStatus | None, Query(alias="status")] = None,
) -> list[ApplicationOut]:
    apps = await storage.applications.list_by_org(context.organization.id, status_filter)
    return [application_out(a) for a in apps]


@router.post(
    "/{slug}/applications/{application_id}/approve",
    response_model=ApplicationResultOut,
)
async def approve(
    application_id: UUID,
    context: Annotated[AccessContext, Depends(require_org_access(req.APPROVE_APPLICATION))],
    storage: Annotated[Storage, Depends(get_storage)],
) -> ApplicationResultOut:
    result = await _lifecycle(storage).approve(
        application_id, org_id=context.organization.id
    )
    return result_out(result)


@router.post(
    "/{slug}/applications/{application_id}/reject",
    response_model=ApplicationResultOut,
)
async def reject(
    application_id: UUID,
    context: Annotated[AccessContext, Depends(require_org_access(req.REJECT_APPLICATION))],
    storage: Annotated[Storage, Depends(get_storage)],
) -> ApplicationResultOut:
    result = await _lifecycle(storage).reject(
        application_id, org_id=context.organization.id
    )
    return result_out(result)


@router.post(
    "/{slug}/applications/{application_id}/payment",
    response_model=ApplicationResultOut,
)
async def start_payment(
    application_id: UUID,
    response: Response,
    context: Annotated[AccessContext, Depends(require_org_access(req.PAY))],
    storage: Annotated[Storage, Depends(get_storage)],
):
    """Get a payment intent for the caller's own application.

    After a failed payment this opens a fresh order; the old one is left
    superseded.
    """
    identity = context.identity
    if identity is None:
        raise UnauthenticatedError("authentication required")
    result = await _lifecycle(storage).start_payment(
        application_id, identity, org_id=context.organization.id
    )
    return _respond(result, response)
