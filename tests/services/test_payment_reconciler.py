from __future__ import annotations

import logging
from uuid import uuid4

import pytest
from prometheus_client import REGISTRY

from app.core.errors import PaymentLinkageError
from app.models.application import ApplicationStatus
from app.models.identity import Identity
from app.models.order import Order, OrderStatus
from app.models.organization import Organization
from app.models.tier import ActivationType
from app.repos.storage import memory_storage
from app.services.access_context import AccessContextResolver
from app.services.application_lifecycle import ApplicationLifecycle, LifecycleResult
from app.services.payment_provider import InMemoryPaymentProvider
from app.services.payment_reconciler import (
    PaymentEvent,
    PaymentEventType,
    PaymentReconciler,
    ReconcileOutcome,
    event_to_payload,
    parse_provider_event,
)
from tests.conftest import add_test_tier, create_test_org, mint_token, run

S = ApplicationStatus
SUCCEEDED = PaymentEventType.SUCCEEDED.value
FAILED = PaymentEventType.FAILED.value


def _get_sample(name: str, labels: dict | None = None) -> float:
    value = REGISTRY.get_sample_value(name, labels=labels or {})
    return value if value is not None else 0.0


@pytest.fixture
def org() -> Organization:
    return create_test_org("pay-org")


@pytest.fixture
def lifecycle(provider: InMemoryPaymentProvider) -> ApplicationLifecycle:
    return ApplicationLifecycle(memory_storage, provider)


@pytest.fixture
def reconciler(lifecycle: ApplicationLifecycle) -> PaymentReconciler:
    return PaymentReconciler(memory_storage, lifecycle)


def _pending_payment(lifecycle: ApplicationLifecycle, org: Organization) -> LifecycleResult:
    tier = add_test_tier(org, ActivationType.PAYMENT_REQUIRED, price=1500)
    ctx = run(AccessContextResolver(memory_storage).resolve(mint_token(uuid4()), org.slug))
    result = run(lifecycle.create(ctx, tier.id))
    assert result.order is not None
    return result


def _event(kind: str, order: Order | None) -> PaymentEvent:
    return PaymentEvent(type=kind, order_id=str(order.id) if order else None)


# ---- parsing ----


def test_parse_stripe_envelope() -> None:
    event = parse_provider_event(
        {
            "id": "evt_1",
            "type": "payment_intent.succeeded",
            "data": {"object": {"id": "pi_1", "metadata": {"orderId": "abc"}}},
        }
    )
    assert event == PaymentEvent(type="payment_intent.succeeded", order_id="abc", event_id="evt_1")
    assert event.kind is PaymentEventType.SUCCEEDED


def test_parse_stripe_failure_type() -> None:
    event = parse_provider_event({"type": "payment_intent.payment_failed", "metadata": {"orderId": "x"}})
    assert event.kind is PaymentEventType.FAILED


def test_parse_flat_payload_roundtrips_through_queue_shape() -> None:
    event = PaymentEvent(type=FAILED, order_id="o-1", event_id="evt_2")
    assert parse_provider_event(event_to_payload(event)) == event


def test_parse_without_order_id() -> None:
    assert parse_provider_event({"type": SUCCEEDED}).order_id is None


# ---- reconcile ----


def test_success_approves_application_and_order(lifecycle, reconciler, org) -> None:
    created = _pending_payment(lifecycle, org)
    labels = {"event_type": SUCCEEDED, "outcome": "applied"}
    before = _get_sample("payment_events_total", labels)

    outcome = run(reconciler.reconcile(_event(SUCCEEDED, created.order)))

    assert outcome is ReconcileOutcome.APPLIED
    app = run(memory_storage.applications.get(created.application.id))
    order = run(memory_storage.orders.get(created.order.id))  # type: ignore[union-attr]
    assert app is not None and app.status is S.APPROVED
    assert order is not None and order.status is OrderStatus.APPROVED
    assert order.completed_at is not None
    assert _get_sample("payment_events_total", labels) - before == 1


def test_replayed_success_is_noop(lifecycle, reconciler, org) -> None:
    created = _pending_payment(lifecycle, org)
    event = _event(SUCCEEDED, created.order)
    run(reconciler.reconcile(event))
    approved_at = run(memory_storage.applications.get(created.application.id)).approved_at  # type: ignore[union-attr]

    assert run(reconciler.reconcile(event)) is ReconcileOutcome.NOOP
    app = run(memory_storage.applications.get(created.application.id))
    assert app is not None and app.approved_at == approved_at


def test_failure_marks_payment_failed_and_order_rejected(lifecycle, reconciler, org) -> None:
    created = _pending_payment(lifecycle, org)

    outcome = run(reconciler.reconcile(_event(FAILED, created.order)))

    assert outcome is ReconcileOutcome.APPLIED
    app = run(memory_storage.applications.get(created.application.id))
    order = run(memory_storage.orders.get(created.order.id))  # type: ignore[union-attr]
    assert app is not None and app.status is S.PAYMENT_FAILED
    assert order is not None and order.status is OrderStatus.REJECTED
    assert run(reconciler.reconcile(_event(FAILED, created.order))) is ReconcileOutcome.NOOP


def test_success_after_failure_on_same_order(lifecycle, reconciler, org) -> None:
    created = _pending_payment(lifecycle, org)
    run(reconciler.reconcile(_event(FAILED, created.order)))

    outcome = run(reconciler.reconcile(_event(SUCCEEDED, created.order)))

    assert outcome is ReconcileOutcome.APPLIED
    app = run(memory_storage.applications.get(created.application.id))
    assert app is not None and app.status is S.APPROVED


def test_unsupported_event_type_dropped(reconciler) -> None:
    event = PaymentEvent(type="charge.refunded", order_id=str(uuid4()))
    assert run(reconciler.reconcile(event)) is ReconcileOutcome.DROPPED


@pytest.mark.parametrize(
    "order_id",
    [None, "not-a-uuid", str(uuid4())],
    ids=["missing", "malformed", "unknown"],
)
def test_unlinkable_order_dropped(reconciler, order_id: str | None) -> None:
    event = PaymentEvent(type=SUCCEEDED, order_id=order_id)
    assert run(reconciler.reconcile(event)) is ReconcileOutcome.DROPPED


def test_order_without_application_raises_linkage_error(reconciler) -> None:
    orphan = Order.new(
        user_id=uuid4(), product_id=uuid4(), application_id=uuid4(), amount=100, currency="USD"
    )
    run(memory_storage.orders.add(orphan))
    labels = {"event_type": SUCCEEDED, "outcome": "error"}
    before = _get_sample("payment_events_total", labels)

    with pytest.raises(PaymentLinkageError):
        run(reconciler.reconcile(_event(SUCCEEDED, orphan)))
    assert _get_sample("payment_events_total", labels) - before == 1


def _failed_then_retried(lifecycle, reconciler, org) -> tuple[LifecycleResult, Order, Order]:
    created = _pending_payment(lifecycle, org)
    first_order = created.order
    assert first_order is not None
    run(reconciler.reconcile(_event(FAILED, first_order)))
    retry = run(
        lifecycle.start_payment(created.application.id, Identity(id=created.application.user_id))
    )
    assert retry.order is not None and retry.order.id != first_order.id
    return created, first_order, retry.order


def test_success_on_superseded_order_approves_waiting_application(
    lifecycle, reconciler, org
) -> None:
    created, first_order, second_order = _failed_then_retried(lifecycle, reconciler, org)

    outcome = run(reconciler.reconcile(_event(SUCCEEDED, first_order)))

    assert outcome is ReconcileOutcome.APPLIED
    app = run(memory_storage.applications.get(created.application.id))
    assert app is not None and app.status is S.APPROVED
    assert app.order_id == first_order.id
    paid = run(memory_storage.orders.get(first_order.id))
    assert paid is not None and paid.status is OrderStatus.APPROVED
    # The retry's order is closed so it cannot be charged a second time.
    newer = run(memory_storage.orders.get(second_order.id))
    assert newer is not None and newer.status is OrderStatus.CANCELLED
    membership = run(memory_storage.memberships.get(org.id, created.application.user_id))
    assert membership is not None and membership.is_active


def test_second_payment_after_approval_is_settled_but_dropped(
    lifecycle, reconciler, org, caplog: pytest.LogCaptureFixture
) -> None:
    created, first_order, second_order = _failed_then_retried(lifecycle, reconciler, org)
    run(reconciler.reconcile(_event(SUCCEEDED, second_order)))

    with caplog.at_level(logging.WARNING, logger="app.services.payment_reconciler"):
        outcome = run(reconciler.reconcile(_event(SUCCEEDED, first_order)))

    assert outcome is ReconcileOutcome.DROPPED
    app = run(memory_storage.applications.get(created.application.id))
    assert app is not None and app.status is S.APPROVED and app.order_id == second_order.id
    old = run(memory_storage.orders.get(first_order.id))
    assert old is not None and old.status is OrderStatus.APPROVED
    assert "refund required" in caplog.text


def test_failure_on_superseded_order_leaves_application(lifecycle, reconciler, org) -> None:
    created, first_order, second_order = _failed_then_retried(lifecycle, reconciler, org)

    outcome = run(reconciler.reconcile(_event(FAILED, first_order)))

    assert outcome is ReconcileOutcome.DROPPED
    app = run(memory_storage.applications.get(created.application.id))
    assert app is not None and app.status is S.PENDING_PAYMENT
    assert app.order_id == second_order.id


def test_success_for_rejected_application_is_noop(lifecycle, reconciler, org) -> None:
    created = _pending_payment(lifecycle, org)
    run(lifecycle.reject(created.application.id))

    outcome = run(reconciler.reconcile(_event(SUCCEEDED, created.order)))

    # The order is settled (money moved); the application stays rejected.
    assert outcome is ReconcileOutcome.APPLIED
    app = run(memory_storage.applications.get(created.application.id))
    assert app is not None and app.status is S.REJECTED
