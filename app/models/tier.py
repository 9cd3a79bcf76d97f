from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from uuid import UUID, uuid4

from app.core.errors import DomainValidationError

CURRENCIES = ("USD", "EUR", "GBP", "CAD", "AUD")


class ActivationType(StrEnum):
    IMMEDIATE = "immediate"
    MANUAL = "manual"
    PAYMENT_REQUIRED = "payment_required"
    REVIEW_THEN_PAYMENT = "review_then_payment"

    @property
    def requires_review(self) -> bool:
        return self in (ActivationType.MANUAL, ActivationType.REVIEW_THEN_PAYMENT)

    @property
    def requires_payment(self) -> bool:
        return self in (
            ActivationType.PAYMENT_REQUIRED,
            ActivationType.REVIEW_THEN_PAYMENT,
        )


# Shown to the applicant right after they apply.
STATUS_MESSAGES: dict[ActivationType, str] = {
    ActivationType.IMMEDIATE: "Successfully joined the organization",
    ActivationType.MANUAL: "Your membership request is pending review",
    ActivationType.PAYMENT_REQUIRED: "Please complete payment to activate your membership",
    ActivationType.REVIEW_THEN_PAYMENT: (
        "Your membership request is pending review. "
        "Payment will be required after approval"
    ),
}


def validate_activation_policy(price: int, activation_type: ActivationType) -> None:
    """Reject tiers whose price and activation policy contradict each other."""
    if price < 0:
        raise DomainValidationError("price must not be negative")
    if price == 0 and activation_type.requires_payment:
        raise DomainValidationError("Free memberships cannot require payment")
    if price > 0 and activation_type is ActivationType.IMMEDIATE:
        raise DomainValidationError(
            "Paid memberships must require payment, review, or both"
        )


@dataclass(frozen=True, slots=True)
class MembershipTier:
    """Purchasable membership product and the activation policy it enforces.

    A tier is not a role.  When an application for the tier is approved
    the tier may grant ``granted_role_id`` to the applicant.
    """

    id: UUID
    org_id: UUID
    name: str
    activation_type: ActivationType
    price: int = 0  # minor units (cents)
    currency: str = "USD"
    duration_months: int = 12
    description: str = ""
    granted_role_id: UUID | None = None
    member_id_format: str | None = None
    is_active: bool = True
    created_at: datetime | None = None

    @property
    def requires_payment(self) -> bool:
        return self.price > 0 and self.activation_type.requires_payment

    @staticmethod
    def new(
        *,
        org_id: UUID,
        name: str,
        activation_type: ActivationType,
        price: int = 0,
        currency: str = "USD",
        duration_months: int = 12,
        description: str = "",
        granted_role_id: UUID | None = None,
        member_id_format: str | None = None,
    ) -> MembershipTier:
        validate_activation_policy(price, activation_type)
        if currency not in CURRENCIES:
            raise DomainValidationError(f"unsupported currency {currency!r}")
        if duration_months <= 0:
            raise DomainValidationError("duration_months must be positive")
        return MembershipTier(
            id=uuid4(),
            org_id=org_id,
            name=name,
            activation_type=activation_type,
            price=price,
            currency=currency,
            duration_months=duration_months,
            description=description,
            granted_role_id=granted_role_id,
            member_id_format=member_id_format,
            created_at=datetime.now(UTC),
        )
