"""Manual payments: an applicant reports an offline payment, a reviewer settles it."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field

from app.api import requirements as req
from app.api.applications import ApplicationOut, application_out
from app.api.dependencies import get_storage, require_org_access
from app.core.errors import UnauthenticatedError
from app.models.access import AccessContext
from app.models.identity import Identity
from app.models.manual_payment import ManualPayment, ManualPaymentStatus
from app.repos.storage import Storage
from app.services.application_lifecycle import ApplicationLifecycle
from app.services.manual_payments import ManualPaymentResult, ManualPaymentService
from app.services.payment_provider import payment_provider
from app.services.payment_reconciler import PaymentReconciler

router = APIRouter(prefix="/v1/orgs", tags=["manual-payments"])


class ManualPaymentIn(BaseModel):
    reference: str = Field(default="", max_length=255)
    notes: str = Field(default="", max_length=2000)


class ApproveIn(BaseModel):
    notes: str = Field(default="", max_length=2000)


class RejectIn(BaseModel):
    notes: str = Field(min_length=1, max_length=2000)


class ManualPaymentOut(BaseModel):
    id: str
    order_id: str
    application_id: str
    user_id: str
    amount: int
    currency: str
    reference: str
    notes: str
    status: ManualPaymentStatus
    reviewed_by: str | None
    reviewed_at: datetime | None
    created_at: datetime | None


class ManualPaymentResultOut(BaseModel):
    payment: ManualPaymentOut
    changed: bool
    outcome: str | None = None
    application: ApplicationOut | None = None


def payment_out(payment: ManualPayment) -> ManualPaymentOut:
    return ManualPaymentOut(
        id=str(payment.id),
        order_id=str(payment.order_id),
        application_id=str(payment.application_id),
        user_id=str(payment.user_id),
        amount=payment.amount,
        currency=payment.currency,
        reference=payment.reference,
        notes=payment.notes,
        status=payment.status,
        reviewed_by=str(payment.reviewed_by) if payment.reviewed_by else None,
        reviewed_at=payment.reviewed_at,
        created_at=payment.created_at,
    )


def _result_out(result: ManualPaymentResult) -> ManualPaymentResultOut:
    return ManualPaymentResultOut(
        payment=payment_out(result.payment),
        changed=result.changed,
        outcome=result.outcome.value if result.outcome is not None else None,
        application=application_out(result.application) if result.application else None,
    )


def _service(storage: Storage) -> ManualPaymentService:
    lifecycle = ApplicationLifecycle(storage, payment_provider)
    return ManualPaymentService(storage, PaymentReconciler(storage, lifecycle))


def _caller(context: AccessContext) -> Identity:
    if context.identity is None:
        raise UnauthenticatedError("authentication required")
    return context.identity


@router.post(
    "/{slug}/applications/{application_id}/manual-payments",
    response_model=ManualPaymentResultOut,
    status_code=status.HTTP_201_CREATED,
)
async def submit_manual_payment(
    application_id: UUID,
    body: ManualPaymentIn,
    response: Response,
    context: Annotated[AccessContext, Depends(require_org_access(req.PAY))],
    storage: Annotated[Storage, Depends(get_storage)],
) -> ManualPaymentResultOut:
    """Report an offline payment.  One already awaiting review is returned with 200."""
    result = await _service(storage).submit(
        application_id,
        _caller(context),
        org_id=context.organization.id,
        reference=body.reference,
        notes=body.notes,
    )
    if not result.changed:
        response.status_code = status.HTTP_200_OK
    return _result_out(result)


@router.get("/{slug}/manual-payments", response_model=list[ManualPaymentOut])
async def list_manual_payments(
    context: Annotated[AccessContext, Depends(require_org_access(req.VIEW_PAYMENTS))],
    storage: Annotated[Storage, Depends(get_storage)],
    status_filter: Annotated[ManualPaymentStatus | None, Query(alias="status")] = None,
) -> list[ManualPaymentOut]:
    payments = await _service(storage).list_payments(context.organization.id, status_filter)
    return [payment_out(p) for p in payments]


@router.post(
    "/{slug}/manual-payments/{payment_id}/approve",
    response_model=ManualPaymentResultOut,
)
async def approve_manual_payment(
    payment_id: UUID,
    body: ApproveIn,
    context: Annotated[AccessContext, Depends(require_org_access(req.REVIEW_PAYMENT))],
    storage: Annotated[Storage, Depends(get_storage)],
) -> ManualPaymentResultOut:
    result = await _service(storage).approve(
        payment_id, _caller(context), org_id=context.organization.id, notes=body.notes
    )
    return _result_out(result)


@router.post(
    "/{slug}/manual-payments/{payment_id}/reject",
    response_model=ManualPaymentResultOut,
)
async def reject_manual_payment(
    payment_id: UUID,
    body: RejectIn,
    context: Annotated[AccessContext, Depends(require_org_access(req.REVIEW_PAYMENT))],
    storage: Annotated[Storage, Depends(get_storage)],
) -> ManualPaymentResultOut:
    result = await _service(storage).reject(
        payment_id, _caller(context), org_id=context.organization.id, notes=body.notes
    )
    return _result_out(result)
