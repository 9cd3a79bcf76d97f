from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from uuid import UUID, uuid4


class OrderStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"  # payment confirmed
    REJECTED = "rejected"  # payment failed
    CANCELLED = "cancelled"  # superseded by a paid order


@dataclass(frozen=True, slots=True)
class Order:
    """Payment record spawned by exactly one application.

    The application keeps ``order_id`` pointing at its current order; a
    retried payment creates a fresh order, which leaves the old one
    superseded rather than deleted.
    """

    id: UUID
    user_id: UUID
    product_id: UUID
    application_id: UUID
    amount: int  # minor units (cents)
    currency: str
    type: str = "membership"
    status: OrderStatus = OrderStatus.PENDING
    provider_reference: str | None = None
    created_at: datetime | None = None
    completed_at: datetime | None = None

    @staticmethod
    def new(
        *,
        user_id: UUID,
        product_id: UUID,
        application_id: UUID,
        amount: int,
        currency: str,
    ) -> Order:
        return Order(
            id=uuid4(),
            user_id=user_id,
            product_id=product_id,
            application_id=application_id,
            amount=amount,
            currency=currency,
            created_at=datetime.now(UTC),
        )
