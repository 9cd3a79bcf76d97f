"""Payment linkage reconciler.

Applies asynchronous payment-provider events to the order they name and
then to the application that order belongs to.  Providers redeliver
events and event ids are not stable across retries, so nothing here
deduplicates by id: every step is a conditional update that becomes a
no-op once its target state is reached, which makes replays harmless.

  unknown or unsupported event         -> dropped
  order id missing or unknown          -> dropped (not transient, never retried)
  order whose application is missing   -> PaymentLinkageError (data corruption, alert)
  success on a superseded order        -> order settled; an application still waiting
                                          on payment is approved on it and the
                                          newer order cancelled
  failure on a superseded order        -> order ledger updated, application untouched
  otherwise                            -> order settled, lifecycle advanced
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any
from uuid import UUID

from app.core.errors import ConflictError, InvalidTransitionError, PaymentLinkageError
from app.core.metrics import PAYMENT_EVENTS
from app.models.application import Application, ApplicationStatus
from app.models.order import Order, OrderStatus
from app.repos.storage import Storage
from app.services.application_lifecycle import ApplicationLifecycle, LifecycleResult

logger = logging.getLogger(__name__)

PAYMENT_DUE = (ApplicationStatus.PENDING_PAYMENT, ApplicationStatus.PAYMENT_FAILED)
SETTLEABLE = (OrderStatus.PENDING, OrderStatus.REJECTED, OrderStatus.CANCELLED)


class PaymentEventType(StrEnum):
    SUCCEEDED = "payment.succeeded"
    FAILED = "payment.failed"


class ReconcileOutcome(StrEnum):
    APPLIED = "applied"
    NOOP = "noop"
    DROPPED = "dropped"


_EVENT_TYPES: dict[str, PaymentEventType] = {
    "payment.succeeded": PaymentEventType.SUCCEEDED,
    "payment.failed": PaymentEventType.FAILED,
    "payment_intent.succeeded": PaymentEventType.SUCCEEDED,
    "payment_intent.payment_failed": PaymentEventType.FAILED,
}


@dataclass(frozen=True, slots=True)
class PaymentEvent:
    type: str
    order_id: str | None
    event_id: str | None = None

    @property
    def kind(self) -> PaymentEventType | None:
        return _EVENT_TYPES.get(self.type)


def parse_provider_event(payload: dict[str, Any]) -> PaymentEvent:
    """Normalize a provider webhook body into a PaymentEvent.

    Accepts the Stripe event envelope (``data.object.metadata.orderId``)
    and the flat internal shape (``{"type", "order_id"}``).
    """
    obj = (payload.get("data") or {}).get("object") or {}
    metadata = obj.get("metadata") or payload.get("metadata") or {}
    order_id = metadata.get("orderId") or payload.get("order_id")
    return PaymentEvent(
        type=str(payload.get("type", "")),
        order_id=str(order_id) if order_id else None,
        event_id=payload.get("id"),
    )


def event_to_payload(event: PaymentEvent) -> dict[str, Any]:
    """Queue representation; parse_provider_event() reads it back."""
    return {"type": event.type, "order_id": event.order_id, "id": event.event_id}


class PaymentReconciler:
    def __init__(self, storage: Storage, lifecycle: ApplicationLifecycle) -> None:
        self._storage = storage
        self._lifecycle = lifecycle

    async def reconcile(self, event: PaymentEvent) -> ReconcileOutcome:
        label = event.type if event.kind is not None else "unsupported"
        try:
            outcome = await self._reconcile(event)
        except PaymentLinkageError:
            PAYMENT_EVENTS.labels(event_type=label, outcome="error").inc()
            raise
        PAYMENT_EVENTS.labels(event_type=label, outcome=outcome.value).inc()
        return outcome

    async def _reconcile(self, event: PaymentEvent) -> ReconcileOutcome:
        kind = event.kind
        if kind is None:
            logger.info("Ignoring unsupported payment event type=%s", event.type)
            return ReconcileOutcome.DROPPED

        order = await self._find_order(event)
        if order is None:
            return ReconcileOutcome.DROPPED
        extra = {"order_id": str(order.id), "application_id": str(order.application_id)}

        application = await self._storage.applications.get(order.application_id)
        if application is None:
            logger.error(
                "Order %s references missing application %s",
                order.id,
                order.application_id,
                extra=extra,
            )
            raise PaymentLinkageError(
                "order has no linked application",
                order_id=str(order.id),
                application_id=str(order.application_id),
            )

        order_changed = await self._settle_order(order, kind)

        if application.order_id != order.id:
            return await self._reconcile_superseded(order, application, kind, extra)

        if kind is PaymentEventType.SUCCEEDED:
            result = await self._apply(self._lifecycle.confirm_payment(application.id), extra)
        else:
            result = await self._apply(
                self._lifecycle.record_payment_failure(application.id), extra
            )
        if isinstance(result, ReconcileOutcome):
            return result

        rejected = result.application.status is ApplicationStatus.REJECTED
        if kind is PaymentEventType.SUCCEEDED and rejected:
            logger.warning(
                "Payment captured for rejected application %s, refund required",
                application.id,
                extra=extra,
            )
        if result.changed or order_changed:
            return ReconcileOutcome.APPLIED
        return ReconcileOutcome.NOOP

    async def _reconcile_superseded(
        self,
        order: Order,
        application: Application,
        kind: PaymentEventType,
        extra: dict[str, str],
    ) -> ReconcileOutcome:
        """An event for an order the application no longer points at.

        A success still pays for the membership: an application that is
        waiting on payment is approved against this order and the newer
        order is cancelled, so the applicant is not charged twice.
        """
        if kind is PaymentEventType.FAILED or application.status not in PAYMENT_DUE:
            if kind is PaymentEventType.SUCCEEDED:
                logger.warning(
                    "Payment captured on superseded order %s, application already %s, "
                    "refund required",
                    order.id,
                    application.status,
                    extra=extra,
                )
            else:
                logger.info(
                    "Order %s superseded by %s, application left as %s",
                    order.id,
                    application.order_id,
                    application.status,
                    extra=extra,
                )
            return ReconcileOutcome.DROPPED

        newer = application.order_id
        result = await self._apply(
            self._lifecycle.confirm_payment(application.id, order_id=order.id), extra
        )
        if isinstance(result, ReconcileOutcome):
            return result
        if not result.changed:
            logger.warning(
                "Payment captured on superseded order %s after the application was "
                "approved, refund required",
                order.id,
                extra=extra,
            )
            return ReconcileOutcome.NOOP

        if newer is not None:
            cancelled = await self._storage.orders.transition(
                newer, OrderStatus.PENDING, status=OrderStatus.CANCELLED
            )
            if cancelled is not None:
                logger.info("Order %s cancelled, paid by %s", newer, order.id, extra=extra)
        return ReconcileOutcome.APPLIED

    async def _apply(
        self, transition: Awaitable[LifecycleResult], extra: dict[str, str]
    ) -> LifecycleResult | ReconcileOutcome:
        try:
            return await transition
        except ConflictError as e:
            logger.warning(
                "Payment event lost to a concurrent transition, application now %s",
                getattr(e.current, "status", None),
                extra=extra,
            )
            return ReconcileOutcome.NOOP
        except InvalidTransitionError as e:
            logger.warning("Payment event not applicable: %s", e.message, extra=extra)
            return ReconcileOutcome.DROPPED

    async def _find_order(self, event: PaymentEvent) -> Order | None:
        if not event.order_id:
            logger.warning("Payment event without order id type=%s", event.type)
            return None
        try:
            order_id = UUID(event.order_id)
        except ValueError:
            logger.warning("Payment event with malformed order id %r", event.order_id)
            return None
        order = await self._storage.orders.get(order_id)
        if order is None:
            logger.warning(
                "Payment event for unknown order %s dropped",
                order_id,
                extra={"order_id": str(order_id)},
            )
        return order

    async def _settle_order(self, order: Order, kind: PaymentEventType) -> bool:
        if kind is PaymentEventType.SUCCEEDED:
            # A failed or cancelled order can still be paid late.
            if order.status in SETTLEABLE:
                updated = await self._storage.orders.transition(
                    order.id,
                    order.status,
                    status=OrderStatus.APPROVED,
                    completed_at=datetime.now(UTC),
                )
                return updated is not None
            return False
        if order.status is OrderStatus.PENDING:
            updated = await self._storage.orders.transition(
                order.id, OrderStatus.PENDING, status=OrderStatus.REJECTED
            )
            return updated is not None
        return False
