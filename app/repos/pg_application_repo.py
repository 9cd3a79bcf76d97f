"""PostgreSQL implementations of ApplicationRepo, OrderRepo and ManualPaymentRepo.

transition() is the conditional-update primitive the lifecycle relies
on: ``UPDATE ... WHERE id = :id AND status = :expected``.  The database
serializes concurrent writers on the row, so exactly one of two racing
transitions sees rowcount == 1 even when they run in different
processes (reviewer API vs. webhook worker).
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import ApplicationRow, ManualPaymentRow, OrderRow
from app.models.application import OPEN_STATUSES, Application, ApplicationStatus
from app.models.manual_payment import ManualPayment, ManualPaymentStatus
from app.models.order import Order, OrderStatus


def _plain(changes: dict[str, Any]) -> dict[str, Any]:
    # StrEnum members are str already; UUIDs and datetimes pass through.
    return {k: (v.value if hasattr(v, "value") else v) for k, v in changes.items()}


class PgApplicationRepo:
    """Satisfies the ApplicationRepo Protocol using PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, application_id: UUID) -> Application | None:
        stmt = select(ApplicationRow).where(ApplicationRow.id == application_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_application(row) if row is not None else None

    async def add(self, application: Application) -> None:
        self._session.add(
            ApplicationRow(
                id=application.id,
                type=application.type,
                status=application.status.value,
                org_id=application.org_id,
                membership_id=application.membership_id,
                user_id=application.user_id,
                tier_id=application.tier_id,
                order_id=application.order_id,
                approved_at=application.approved_at,
                rejected_at=application.rejected_at,
                created_at=application.created_at,
                updated_at=application.updated_at,
            )
        )
        await self._session.flush()

    async def find_open(self, membership_id: UUID, tier_id: UUID) -> Application | None:
        stmt = (
            select(ApplicationRow)
            .where(
                ApplicationRow.membership_id == membership_id,
                ApplicationRow.tier_id == tier_id,
                ApplicationRow.status.in_([s.value for s in OPEN_STATUSES]),
            )
            .limit(1)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_application(row) if row is not None else None

    async def list_by_org(
        self, org_id: UUID, status: ApplicationStatus | None = None
    ) -> list[Application]:
        stmt = select(ApplicationRow).where(ApplicationRow.org_id == org_id)
        if status is not None:
            stmt = stmt.where(ApplicationRow.status == status.value)
        stmt = stmt.order_by(ApplicationRow.created_at.desc())
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_application(r) for r in rows]

    async def transition(
        self,
        application_id: UUID,
        expected: ApplicationStatus,
        **changes: Any,
    ) -> Application | None:
        stmt = (
            update(ApplicationRow)
            .where(
                ApplicationRow.id == application_id,
                ApplicationRow.status == expected.value,
            )
            .values(updated_at=datetime.now(UTC), **_plain(changes))
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            return None
        self._session.expire_all()
        return await self.get(application_id)


class PgOrderRepo:
    """Satisfies the OrderRepo Protocol using PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, order_id: UUID) -> Order | None:
        stmt = select(OrderRow).where(OrderRow.id == order_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_order(row) if row is not None else None

    async def add(self, order: Order) -> None:
        self._session.add(
            OrderRow(
                id=order.id,
                type=order.type,
                user_id=order.user_id,
                product_id=order.product_id,
                application_id=order.application_id,
                status=order.status.value,
                amount=order.amount,
                currency=order.currency,
                provider_reference=order.provider_reference,
                created_at=order.created_at,
                completed_at=order.completed_at,
            )
        )
        await self._session.flush()

    async def list_by_application(self, application_id: UUID) -> list[Order]:
        stmt = (
            select(OrderRow)
            .where(OrderRow.application_id == application_id)
            .order_by(OrderRow.created_at)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_order(r) for r in rows]

    async def set_provider_reference(self, order_id: UUID, reference: str) -> Order | None:
        stmt = (
            update(OrderRow)
            .where(OrderRow.id == order_id)
            .values(provider_reference=reference)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            return None
        self._session.expire_all()
        return await self.get(order_id)

    async def transition(
        self, order_id: UUID, expected: OrderStatus, **changes: Any
    ) -> Order | None:
        stmt = (
            update(OrderRow)
            .where(OrderRow.id == order_id, OrderRow.status == expected.value)
            .values(**_plain(changes))
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            return None
        self._session.expire_all()
        return await self.get(order_id)


class PgManualPaymentRepo:
    """Satisfies the ManualPaymentRepo Protocol using PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, payment_id: UUID) -> ManualPayment | None:
        row = await self._session.get(ManualPaymentRow, payment_id)
        return _row_to_manual_payment(row) if row is not None else None

    async def add(self, payment: ManualPayment) -> None:
        self._session.add(
            ManualPaymentRow(
                id=payment.id,
                org_id=payment.org_id,
                order_id=payment.order_id,
                application_id=payment.application_id,
                user_id=payment.user_id,
                amount=payment.amount,
                currency=payment.currency,
                reference=payment.reference,
                notes=payment.notes,
                status=payment.status.value,
                reviewed_by=payment.reviewed_by,
                reviewed_at=payment.reviewed_at,
                created_at=payment.created_at,
            )
        )
        await self._session.flush()

    async def find_pending(self, order_id: UUID) -> ManualPayment | None:
        stmt = (
            select(ManualPaymentRow)
            .where(
                ManualPaymentRow.order_id == order_id,
                ManualPaymentRow.status == ManualPaymentStatus.PENDING.value,
            )
            .limit(1)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_manual_payment(row) if row is not None else None

    async def list_by_org(
        self, org_id: UUID, status: ManualPaymentStatus | None = None
    ) -> list[ManualPayment]:
        stmt = select(ManualPaymentRow).where(ManualPaymentRow.org_id == org_id)
        if status is not None:
            stmt = stmt.where(ManualPaymentRow.status == status.value)
        stmt = stmt.order_by(ManualPaymentRow.created_at.desc())
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_manual_payment(r) for r in rows]

    async def transition(
        self, payment_id: UUID, expected: ManualPaymentStatus, **changes: Any
    ) -> ManualPayment | None:
        stmt = (
            update(ManualPaymentRow)
            .where(
                ManualPaymentRow.id == payment_id,
                ManualPaymentRow.status == expected.value,
            )
            .values(**_plain(changes))
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            return None
        self._session.expire_all()
        return await self.get(payment_id)


def _row_to_application(row: ApplicationRow) -> Application:
    return Application(
        id=row.id,
        org_id=row.org_id,
        membership_id=row.membership_id,
        user_id=row.user_id,
        tier_id=row.tier_id,
        status=ApplicationStatus(row.status),
        type=row.type,
        order_id=row.order_id,
        approved_at=row.approved_at,
        rejected_at=row.rejected_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_order(row: OrderRow) -> Order:
    return Order(
        id=row.id,
        user_id=row.user_id,
        product_id=row.product_id,
        application_id=row.application_id,
        amount=row.amount,
        currency=row.currency,
        type=row.type,
        status=OrderStatus(row.status),
        provider_reference=row.provider_reference,
        created_at=row.created_at,
        completed_at=row.completed_at,
    )


def _row_to_manual_payment(row: ManualPaymentRow) -> ManualPayment:
    return ManualPayment(
        id=row.id,
        org_id=row.org_id,
        order_id=row.order_id,
        application_id=row.application_id,
        user_id=row.user_id,
        amount=row.amount,
        currency=row.currency,
        reference=row.reference,
        notes=row.notes,
        status=ManualPaymentStatus(row.status),
        reviewed_by=row.reviewed_by,
        reviewed_at=row.reviewed_at,
        created_at=row.created_at,
    )
