from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from uuid import UUID, uuid4


class ManualPaymentStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True, slots=True)
class ManualPayment:
    """An offline payment (bank transfer, cash) the applicant reports against an order.

    Nothing moves until a reviewer approves it; approval settles the order
    the same way a provider's success event does.
    """

    id: UUID
    org_id: UUID
    order_id: UUID
    application_id: UUID
    user_id: UUID
    amount: int  # minor units (cents), copied from the order
    currency: str
    reference: str = ""
    notes: str = ""
    status: ManualPaymentStatus = ManualPaymentStatus.PENDING
    reviewed_by: UUID | None = None
    reviewed_at: datetime | None = None
    created_at: datetime | None = None

    @staticmethod
    def new(
        *,
        org_id: UUID,
        order_id: UUID,
        application_id: UUID,
        user_id: UUID,
        amount: int,
        currency: str,
        reference: str = "",
        notes: str = "",
    ) -> ManualPayment:
        return ManualPayment(
            id=uuid4(),
            org_id=org_id,
            order_id=order_id,
            application_id=application_id,
            user_id=user_id,
            amount=amount,
            currency=currency,
            reference=reference,
            notes=notes,
            created_at=datetime.now(UTC),
        )
