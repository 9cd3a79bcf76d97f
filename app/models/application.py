from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from uuid import UUID, uuid4


class ApplicationStatus(StrEnum):
    PENDING = "pending"
    PENDING_REVIEW = "pending_review"
    PENDING_PAYMENT = "pending_payment"
    PAYMENT_FAILED = "payment_failed"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in (ApplicationStatus.APPROVED, ApplicationStatus.REJECTED)


OPEN_STATUSES = frozenset(s for s in ApplicationStatus if not s.is_terminal)


@dataclass(frozen=True, slots=True)
class Application:
    """An identity's attempt to join (or upgrade within) an organization."""

    id: UUID
    org_id: UUID
    membership_id: UUID
    user_id: UUID
    tier_id: UUID
    status: ApplicationStatus = ApplicationStatus.PENDING
    type: str = "membership"
    order_id: UUID | None = None
    approved_at: datetime | None = None
    rejected_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    @staticmethod
    def new(
        *, org_id: UUID, membership_id: UUID, user_id: UUID, tier_id: UUID
    ) -> Application:
        now = datetime.now(UTC)
        return Application(
            id=uuid4(),
            org_id=org_id,
            membership_id=membership_id,
            user_id=user_id,
            tier_id=tier_id,
            created_at=now,
            updated_at=now,
        )
