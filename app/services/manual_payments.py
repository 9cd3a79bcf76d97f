"""Manual (offline) payments.

An applicant whose application is waiting on payment can report a bank
transfer or cash payment against the application's current order.  A
reviewer then decides:

  pending ──approve──> approved   (order settled through the reconciler)
          ──reject───> rejected   (order and application left as they are)

Approval goes through PaymentReconciler exactly like a provider success
event.  Approving twice, or approving after the card payment already
went through, still ends with one settled order and one approved
application.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from app.core.errors import (
    ConflictError,
    DomainValidationError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    PaymentLinkageError,
)
from app.core.metrics import MANUAL_PAYMENT_REVIEWS
from app.models.application import Application
from app.models.identity import Identity
from app.models.manual_payment import ManualPayment, ManualPaymentStatus
from app.models.order import OrderStatus
from app.repos.storage import Storage
from app.services.payment_reconciler import (
    PAYMENT_DUE,
    PaymentEvent,
    PaymentEventType,
    PaymentReconciler,
    ReconcileOutcome,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ManualPaymentResult:
    payment: ManualPayment
    changed: bool = True
    outcome: ReconcileOutcome | None = None
    application: Application | None = None


def _log_extra(payment: ManualPayment) -> dict[str, str]:
    return {"order_id": str(payment.order_id), "application_id": str(payment.application_id)}


class ManualPaymentService:
    def __init__(self, storage: Storage, reconciler: PaymentReconciler) -> None:
        self._storage = storage
        self._reconciler = reconciler

    async def submit(
        self,
        application_id: UUID,
        identity: Identity,
        *,
        org_id: UUID,
        reference: str = "",
        notes: str = "",
    ) -> ManualPaymentResult:
        """Record an offline payment for the applicant's current order.

        A payment already awaiting review for the same order is returned
        unchanged instead of adding a second one.
        """
        app = await self._storage.applications.get(application_id)
        if app is None or app.org_id != org_id:
            raise NotFoundError("application not found", application_id=str(application_id))
        if app.user_id != identity.id:
            raise ForbiddenError("only the applicant can report a payment")
        if app.status not in PAYMENT_DUE or app.order_id is None:
            raise InvalidTransitionError(
                f"no payment is due for an application in status {app.status}",
                application_id=str(app.id),
                status=app.status.value,
            )

        order = await self._storage.orders.get(app.order_id)
        if order is None:
            raise PaymentLinkageError(
                "application references a missing order",
                application_id=str(app.id),
                order_id=str(app.order_id),
            )
        if order.status is OrderStatus.APPROVED:
            raise InvalidTransitionError(
                "order is already paid", order_id=str(order.id), status=order.status.value
            )

        existing = await self._storage.manual_payments.find_pending(order.id)
        if existing is not None:
            return ManualPaymentResult(existing, changed=False, application=app)

        payment = ManualPayment.new(
            org_id=org_id,
            order_id=order.id,
            application_id=app.id,
            user_id=identity.id,
            amount=order.amount,
            currency=order.currency,
            reference=reference,
            notes=notes,
        )
        await self._storage.manual_payments.add(payment)
        logger.info(
            "Manual payment reported payment=%s amount=%d %s",
            payment.id,
            payment.amount,
            payment.currency,
            extra=_log_extra(payment),
        )
        return ManualPaymentResult(payment, application=app)

    async def approve(
        self, payment_id: UUID, reviewer: Identity, *, org_id: UUID, notes: str = ""
    ) -> ManualPaymentResult:
        payment = await self._load(payment_id, org_id)
        if payment.status is ManualPaymentStatus.APPROVED:
            return ManualPaymentResult(payment, changed=False)
        if payment.status is ManualPaymentStatus.REJECTED:
            raise InvalidTransitionError(
                "cannot approve a rejected payment",
                payment_id=str(payment.id),
                status=payment.status.value,
            )

        moved = await self._review(payment, ManualPaymentStatus.APPROVED, reviewer, notes)
        if moved is None:
            return ManualPaymentResult(
                await self._lost_race(payment_id, org_id, ManualPaymentStatus.APPROVED),
                changed=False,
            )

        outcome = await self._reconciler.reconcile(
            PaymentEvent(
                type=PaymentEventType.SUCCEEDED.value,
                order_id=str(moved.order_id),
                event_id=f"manual:{moved.id}",
            )
        )
        logger.info(
            "Manual payment approved payment=%s reviewer=%s -> %s",
            moved.id,
            reviewer.id,
            outcome,
            extra=_log_extra(moved),
        )
        application = await self._storage.applications.get(moved.application_id)
        return ManualPaymentResult(moved, outcome=outcome, application=application)

    async def reject(
        self, payment_id: UUID, reviewer: Identity, *, org_id: UUID, notes: str
    ) -> ManualPaymentResult:
        """Reject a reported payment.  The applicant may report another or pay online."""
        if not notes.strip():
            raise DomainValidationError("notes are required when rejecting a payment")
        payment = await self._load(payment_id, org_id)
        if payment.status is ManualPaymentStatus.REJECTED:
            return ManualPaymentResult(payment, changed=False)
        if payment.status is ManualPaymentStatus.APPROVED:
            raise InvalidTransitionError(
                "cannot reject an approved payment",
                payment_id=str(payment.id),
                status=payment.status.value,
            )

        moved = await self._review(payment, ManualPaymentStatus.REJECTED, reviewer, notes)
        if moved is None:
            return ManualPaymentResult(
                await self._lost_race(payment_id, org_id, ManualPaymentStatus.REJECTED),
                changed=False,
            )
        logger.info(
            "Manual payment rejected payment=%s reviewer=%s",
            moved.id,
            reviewer.id,
            extra=_log_extra(moved),
        )
        return ManualPaymentResult(moved)

    async def list_payments(
        self, org_id: UUID, status: ManualPaymentStatus | None = None
    ) -> list[ManualPayment]:
        return await self._storage.manual_payments.list_by_org(org_id, status)

    async def _review(
        self,
        payment: ManualPayment,
        to: ManualPaymentStatus,
        reviewer: Identity,
        notes: str,
    ) -> ManualPayment | None:
        moved = await self._storage.manual_payments.transition(
            payment.id,
            ManualPaymentStatus.PENDING,
            status=to,
            reviewed_by=reviewer.id,
            reviewed_at=datetime.now(UTC),
            notes=notes or payment.notes,
        )
        if moved is not None:
            MANUAL_PAYMENT_REVIEWS.labels(decision=to.value).inc()
        return moved

    async def _lost_race(
        self, payment_id: UUID, org_id: UUID, goal: ManualPaymentStatus
    ) -> ManualPayment:
        current = await self._load(payment_id, org_id)
        if current.status is goal:
            return current
        raise ConflictError(
            f"manual payment moved to {current.status} concurrently",
            current=current,
            payment_id=str(current.id),
            status=current.status.value,
        )

    async def _load(self, payment_id: UUID, org_id: UUID) -> ManualPayment:
        payment = await self._storage.manual_payments.get(payment_id)
        if payment is None or payment.org_id != org_id:
            raise NotFoundError("manual payment not found", payment_id=str(payment_id))
        return payment
