from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime
from typing import Any, Protocol
from uuid import UUID

from app.models.manual_payment import ManualPayment, ManualPaymentStatus


class ManualPaymentRepo(Protocol):
    async def get(self, payment_id: UUID) -> ManualPayment | None: ...
    async def add(self, payment: ManualPayment) -> None: ...
    async def find_pending(self, order_id: UUID) -> ManualPayment | None: ...
    async def list_by_org(
        self, org_id: UUID, status: ManualPaymentStatus | None = None
    ) -> list[ManualPayment]: ...
    async def transition(
        self, payment_id: UUID, expected: ManualPaymentStatus, **changes: Any
    ) -> ManualPayment | None: ...


class InMemoryManualPaymentRepo:
    def __init__(self) -> None:
        self._store: dict[UUID, ManualPayment] = {}

    async def get(self, payment_id: UUID) -> ManualPayment | None:
        return self._store.get(payment_id)

    async def add(self, payment: ManualPayment) -> None:
        if payment.id in self._store:
            raise ValueError("manual payment already exists")
        self._store[payment.id] = payment

    async def find_pending(self, order_id: UUID) -> ManualPayment | None:
        for p in self._store.values():
            if p.order_id == order_id and p.status is ManualPaymentStatus.PENDING:
                return p
        return None

    async def list_by_org(
        self, org_id: UUID, status: ManualPaymentStatus | None = None
    ) -> list[ManualPayment]:
        found = [
            p
            for p in self._store.values()
            if p.org_id == org_id and (status is None or p.status == status)
        ]
        return sorted(
            found,
            key=lambda p: p.created_at or datetime.min.replace(tzinfo=UTC),
            reverse=True,
        )

    async def transition(
        self, payment_id: UUID, expected: ManualPaymentStatus, **changes: Any
    ) -> ManualPayment | None:
        current = self._store.get(payment_id)
        if current is None or current.status != expected:
            return None
        updated = replace(current, **changes)
        self._store[payment_id] = updated
        return updated
