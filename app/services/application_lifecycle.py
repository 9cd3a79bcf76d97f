"""Membership application lifecycle.

States and edges:

    pending ──create──> approved          (immediate)
            ──create──> pending_review    (manual, review_then_payment)
            ──create──> pending_payment   (payment_required, Order created)

    pending_review  ──approve──> approved          (no payment on the tier)
                    ──approve──> pending_payment   (payment tier, Order created)
    pending_payment ──paid─────> approved
                    ──failed───> payment_failed
    payment_failed  ──retry────> pending_payment   (fresh Order)
                    ──paid─────> approved          (late success, possibly on a superseded
                                                    order, which the application is relinked to)
    any open state  ──reject───> rejected

approved and rejected are terminal.  Re-approving an approved
application and re-rejecting a rejected one are no-op successes.
Rejecting an approved application is an InvalidTransitionError.

Every edge is a compare-and-swap on the stored status
(ApplicationRepo.transition).  The caller that loses a race re-reads
the row: if the winner already reached the loser's goal the loser
reports success, if the winner reached the other terminal state the
loser gets a ConflictError carrying that row, and a non-terminal row is
simply evaluated again.

Permission checks belong to the caller (the access gate at the route);
this module only guards the state machine.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from uuid import UUID

from app.core.errors import (
    ConflictError,
    DomainValidationError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    UnauthenticatedError,
    UpstreamPaymentError,
)
from app.core.metrics import APPLICATION_TRANSITION_CONFLICTS, APPLICATION_TRANSITIONS
from app.models.access import AccessContext
from app.models.application import Application, ApplicationStatus
from app.models.identity import Identity
from app.models.order import Order
from app.models.organization import Membership
from app.models.tier import STATUS_MESSAGES, ActivationType, MembershipTier
from app.repos.storage import Storage
from app.services.member_ids import format_member_id, next_sequence
from app.services.payment_provider import PaymentIntent, PaymentProvider

logger = logging.getLogger(__name__)

Status = ApplicationStatus

MAX_ATTEMPTS = 3


@dataclass(frozen=True, slots=True)
class LifecycleResult:
    """Outcome of one lifecycle operation.

    ``changed`` is False for idempotent no-ops.  ``payment_error`` is set
    when the state change was stored but the provider could not create a
    payment intent; the route commits first and then reports it, so the
    application stays in pending_payment and the applicant can retry.
    """

    application: Application
    changed: bool = True
    order: Order | None = None
    intent: PaymentIntent | None = None
    message: str | None = None
    payment_error: UpstreamPaymentError | None = None


Step = Callable[[Application, MembershipTier], Awaitable[LifecycleResult | None]]


def _now() -> datetime:
    return datetime.now(UTC)


def _log_extra(app: Application) -> dict[str, str]:
    extra = {"application_id": str(app.id)}
    if app.order_id is not None:
        extra["order_id"] = str(app.order_id)
    return extra


class ApplicationLifecycle:
    def __init__(
        self,
        storage: Storage,
        provider: PaymentProvider,
        *,
        max_attempts: int = MAX_ATTEMPTS,
    ) -> None:
        self._storage = storage
        self._provider = provider
        self._max_attempts = max_attempts

    # ------------------------------------------------------------------
    # Applicant operations
    # ------------------------------------------------------------------

    async def create(self, context: AccessContext, tier_id: UUID) -> LifecycleResult:
        """Apply to ``context.organization`` for ``tier_id``.

        Creating twice for the same membership and tier while the first
        application is still open returns the open one unchanged.
        """
        identity = context.identity
        if identity is None:
            raise UnauthenticatedError(
                "sign in to apply", redirect_to=context.organization.landing_path
            )
        org = context.organization

        tier = await self._storage.tiers.get(tier_id)
        if tier is None or tier.org_id != org.id or not tier.is_active:
            raise NotFoundError("membership tier not found", tier_id=str(tier_id))
        # Checked before anything is stored so a broken tier leaves no open row behind.
        if tier.activation_type is ActivationType.PAYMENT_REQUIRED and not tier.requires_payment:
            raise DomainValidationError(
                f"tier {tier.name!r} requires payment but has no price", tier_id=str(tier.id)
            )

        membership = await self._ensure_membership(org.id, identity)

        existing = await self._storage.applications.find_open(membership.id, tier.id)
        if existing is not None:
            logger.info(
                "Open application reused org=%s application=%s status=%s",
                org.slug,
                existing.id,
                existing.status,
                extra=_log_extra(existing),
            )
            order = await self._current_order(existing)
            return LifecycleResult(
                existing,
                changed=False,
                order=order,
                message=STATUS_MESSAGES[tier.activation_type],
            )

        app = Application.new(
            org_id=org.id,
            membership_id=membership.id,
            user_id=identity.id,
            tier_id=tier.id,
        )
        await self._storage.applications.add(app)
        logger.info(
            "Application created org=%s application=%s tier=%s policy=%s",
            org.slug,
            app.id,
            tier.name,
            tier.activation_type,
            extra=_log_extra(app),
        )

        result = await self._run(app.id, Status.APPROVED, self._apply_policy)
        if result.order is not None and result.application.status is Status.PENDING_PAYMENT:
            result = await self._request_intent(result)
        return replace(result, message=STATUS_MESSAGES[tier.activation_type])

    async def start_payment(
        self, application_id: UUID, identity: Identity, *, org_id: UUID | None = None
    ) -> LifecycleResult:
        """Ask the provider for a payment intent, opening a fresh order after a failure."""
        app = await self._load(application_id, org_id=org_id)
        if app.user_id != identity.id:
            raise ForbiddenError("only the applicant can pay for an application")

        result = await self._run(application_id, None, self._reopen_payment)
        return await self._request_intent(result)

    # ------------------------------------------------------------------
    # Reviewer operations
    # ------------------------------------------------------------------

    async def approve(self, application_id: UUID, *, org_id: UUID | None = None) -> LifecycleResult:
        return await self._run(application_id, Status.APPROVED, self._approve_step, org_id=org_id)

    async def reject(self, application_id: UUID, *, org_id: UUID | None = None) -> LifecycleResult:
        return await self._run(application_id, Status.REJECTED, self._reject_step, org_id=org_id)

    # ------------------------------------------------------------------
    # Payment outcomes (driven by the reconciler)
    # ------------------------------------------------------------------

    async def confirm_payment(
        self, application_id: UUID, *, order_id: UUID | None = None
    ) -> LifecycleResult:
        """Activate a paid application.

        ``order_id`` names the order that was paid when it is not the
        application's current one; the application is relinked to it.
        """

        async def paid(app: Application, tier: MembershipTier) -> LifecycleResult | None:
            return await self._paid_step(app, tier, order_id)

        return await self._run(application_id, Status.APPROVED, paid)

    async def record_payment_failure(self, application_id: UUID) -> LifecycleResult:
        return await self._run(application_id, None, self._failed_step)

    # ------------------------------------------------------------------
    # Steps.  Each returns a result, or None when its CAS lost a race.
    # ------------------------------------------------------------------

    async def _apply_policy(self, app: Application, tier: MembershipTier) -> LifecycleResult | None:
        if app.status is not Status.PENDING:
            return LifecycleResult(app, changed=False, order=await self._current_order(app))

        policy = tier.activation_type
        if policy is ActivationType.IMMEDIATE:
            return await self._activate(app, tier)
        if policy.requires_review:
            moved = await self._move(app, Status.PENDING_REVIEW)
            return LifecycleResult(moved) if moved is not None else None
        return await self._open_payment(app, tier)

    async def _approve_step(self, app: Application, tier: MembershipTier) -> LifecycleResult | None:
        status = app.status
        if status is Status.APPROVED:
            return LifecycleResult(app, changed=False)
        if status is Status.PENDING_REVIEW:
            if tier.requires_payment:
                return await self._open_payment(app, tier)
            return await self._activate(app, tier)
        if (
            status in (Status.PENDING_PAYMENT, Status.PAYMENT_FAILED)
            and tier.activation_type is ActivationType.REVIEW_THEN_PAYMENT
        ):
            # Review already happened; only payment is outstanding.
            return LifecycleResult(app, changed=False, order=await self._current_order(app))
        raise InvalidTransitionError(
            f"cannot approve an application in status {status}",
            application_id=str(app.id),
            status=status.value,
        )

    async def _reject_step(self, app: Application, tier: MembershipTier) -> LifecycleResult | None:
        if app.status is Status.REJECTED:
            return LifecycleResult(app, changed=False)
        if app.status is Status.APPROVED:
            raise InvalidTransitionError(
                "cannot reject an approved application",
                application_id=str(app.id),
                status=app.status.value,
            )
        # Any order stays as it is; the rejected application supersedes it.
        moved = await self._move(app, Status.REJECTED, rejected_at=_now())
        return LifecycleResult(moved) if moved is not None else None

    async def _reopen_payment(self, app: Application, tier: MembershipTier) -> LifecycleResult | None:
        if app.status is Status.PENDING_PAYMENT:
            if app.order_id is not None:
                return LifecycleResult(app, changed=False, order=await self._current_order(app))
            return await self._open_payment(app, tier)
        if app.status is Status.PAYMENT_FAILED:
            return await self._open_payment(app, tier)
        raise InvalidTransitionError(
            f"no payment is due for an application in status {app.status}",
            application_id=str(app.id),
            status=app.status.value,
        )

    async def _paid_step(
        self, app: Application, tier: MembershipTier, order_id: UUID | None = None
    ) -> LifecycleResult | None:
        if app.status.is_terminal:
            return LifecycleResult(app, changed=False)
        if app.status in (Status.PENDING_PAYMENT, Status.PAYMENT_FAILED):
            if order_id is not None and order_id != app.order_id:
                return await self._activate(app, tier, order_id=order_id)
            return await self._activate(app, tier)
        raise InvalidTransitionError(
            f"payment confirmed for an application in status {app.status}",
            application_id=str(app.id),
            status=app.status.value,
        )

    async def _failed_step(self, app: Application, tier: MembershipTier) -> LifecycleResult | None:
        if app.status.is_terminal or app.status is Status.PAYMENT_FAILED:
            return LifecycleResult(app, changed=False)
        if app.status is Status.PENDING_PAYMENT:
            moved = await self._move(app, Status.PAYMENT_FAILED)
            return LifecycleResult(moved) if moved is not None else None
        raise InvalidTransitionError(
            f"payment failed for an application in status {app.status}",
            application_id=str(app.id),
            status=app.status.value,
        )

    # ------------------------------------------------------------------
    # Machinery
    # ------------------------------------------------------------------

    async def _run(
        self,
        application_id: UUID,
        goal: ApplicationStatus | None,
        step: Step,
        *,
        org_id: UUID | None = None,
    ) -> LifecycleResult:
        """Evaluate ``step`` against the stored row until it sticks.

        ``goal`` is the terminal status that counts as success when a
        concurrent writer gets there first.
        """
        app = await self._load(application_id, org_id=org_id)
        tier = await self._tier_for(app)
        for _ in range(self._max_attempts):
            result = await step(app, tier)
            if result is not None:
                return result

            app = await self._load(application_id)
            if app.status.is_terminal:
                if app.status == goal:
                    logger.info(
                        "Concurrent transition already reached %s application=%s",
                        goal,
                        app.id,
                        extra=_log_extra(app),
                    )
                    return LifecycleResult(app, changed=False)
                break

        APPLICATION_TRANSITION_CONFLICTS.inc()
        logger.warning(
            "Transition lost to a concurrent writer application=%s now=%s",
            app.id,
            app.status,
            extra=_log_extra(app),
        )
        raise ConflictError(
            f"application moved to {app.status} concurrently",
            current=app,
            application_id=str(app.id),
            status=app.status.value,
        )

    async def _move(
        self, app: Application, to: ApplicationStatus, **changes
    ) -> Application | None:
        moved = await self._storage.applications.transition(
            app.id, app.status, status=to, **changes
        )
        if moved is None:
            return None
        APPLICATION_TRANSITIONS.labels(from_status=app.status.value, to_status=to.value).inc()
        logger.info(
            "Application %s -> %s application=%s",
            app.status,
            to,
            app.id,
            extra=_log_extra(moved),
        )
        return moved

    async def _activate(
        self, app: Application, tier: MembershipTier, **changes
    ) -> LifecycleResult | None:
        moved = await self._move(app, Status.APPROVED, approved_at=_now(), **changes)
        if moved is None:
            return None
        # Only the writer that entered approved gets here, so these run once.
        membership = await self._activate_membership(moved, tier)
        if tier.granted_role_id is not None:
            await self._storage.roles.assign(tier.granted_role_id, moved.user_id)
        logger.info(
            "Membership activated application=%s member_id=%s",
            moved.id,
            membership.member_id if membership is not None else None,
            extra=_log_extra(moved),
        )
        return LifecycleResult(moved, order=await self._current_order(moved))

    async def _activate_membership(
        self, app: Application, tier: MembershipTier
    ) -> Membership | None:
        memberships = self._storage.memberships
        membership = await memberships.get_by_id(app.membership_id)
        member_id = None
        if tier.member_id_format and (membership is None or membership.member_id is None):
            seq = next_sequence(await memberships.list_member_ids(app.org_id))
            member_id = format_member_id(tier.member_id_format, _now(), seq)
        return await memberships.activate(app.membership_id, member_id)

    async def _open_payment(self, app: Application, tier: MembershipTier) -> LifecycleResult | None:
        order = Order.new(
            user_id=app.user_id,
            product_id=tier.id,
            application_id=app.id,
            amount=tier.price,
            currency=tier.currency,
        )
        # Link first, store second: only the writer that wins the CAS creates the order.
        moved = await self._move(app, Status.PENDING_PAYMENT, order_id=order.id)
        if moved is None:
            return None
        await self._storage.orders.add(order)
        logger.info(
            "Order opened application=%s order=%s amount=%d %s",
            app.id,
            order.id,
            order.amount,
            order.currency,
            extra=_log_extra(moved),
        )
        return LifecycleResult(moved, order=order)

    async def _request_intent(self, result: LifecycleResult) -> LifecycleResult:
        if result.order is None:
            return result
        try:
            intent = await self._provider.create_payment_intent(result.order)
        except UpstreamPaymentError as e:
            logger.warning(
                "Payment intent not created application=%s order=%s",
                result.application.id,
                result.order.id,
                extra=_log_extra(result.application),
            )
            return replace(result, payment_error=e)
        if intent.id != result.order.provider_reference:
            order = await self._storage.orders.set_provider_reference(result.order.id, intent.id)
            result = replace(result, order=order or result.order)
        return replace(result, intent=intent)

    async def _ensure_membership(self, org_id: UUID, identity: Identity) -> Membership:
        memberships = self._storage.memberships
        membership = await memberships.get(org_id, identity.id)
        if membership is not None:
            return membership
        membership = Membership.new(org_id=org_id, user_id=identity.id)
        await memberships.add(membership)
        return membership

    async def _current_order(self, app: Application) -> Order | None:
        if app.order_id is None:
            return None
        return await self._storage.orders.get(app.order_id)

    async def _load(self, application_id: UUID, *, org_id: UUID | None = None) -> Application:
        app = await self._storage.applications.get(application_id)
        if app is None or (org_id is not None and app.org_id != org_id):
            raise NotFoundError("application not found", application_id=str(application_id))
        return app

    async def _tier_for(self, app: Application) -> MembershipTier:
        tier = await self._storage.tiers.get(app.tier_id)
        if tier is None:
            raise NotFoundError("membership tier not found", tier_id=str(app.tier_id))
        return tier
