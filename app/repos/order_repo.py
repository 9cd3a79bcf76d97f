from __future__ import annotations

from dataclasses import replace
from typing import Any, Protocol
from uuid import UUID

from app.models.order import Order, OrderStatus


class OrderRepo(Protocol):
    async def get(self, order_id: UUID) -> Order | None: ...
    async def add(self, order: Order) -> None: ...
    async def list_by_application(self, application_id: UUID) -> list[Order]: ...
    async def set_provider_reference(
        self, order_id: UUID, reference: str
    ) -> Order | None: ...
    async def transition(
        self, order_id: UUID, expected: OrderStatus, **changes: Any
    ) -> Order | None: ...


class InMemoryOrderRepo:
    def __init__(self) -> None:
        self._store: dict[UUID, Order] = {}

    async def get(self, order_id: UUID) -> Order | None:
        return self._store.get(order_id)

    async def add(self, order: Order) -> None:
        if order.id in self._store:
            raise ValueError("order already exists")
        self._store[order.id] = order

    async def list_by_application(self, application_id: UUID) -> list[Order]:
        return [o for o in self._store.values() if o.application_id == application_id]

    async def set_provider_reference(self, order_id: UUID, reference: str) -> Order | None:
        existing = self._store.get(order_id)
        if existing is None:
            return None
        updated = replace(existing, provider_reference=reference)
        self._store[order_id] = updated
        return updated

    async def transition(
        self, order_id: UUID, expected: OrderStatus, **changes: Any
    ) -> Order | None:
        current = self._store.get(order_id)
        if current is None or current.status != expected:
            return None
        updated = replace(current, **changes)
        self._store[order_id] = updated
        return updated
