from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID, uuid4

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
SLUG_MIN_LEN = 3
SLUG_MAX_LEN = 64


def normalize_slug(raw: str) -> str:
    return raw.strip().lower()


def is_valid_slug(slug: str) -> bool:
    return SLUG_MIN_LEN <= len(slug) <= SLUG_MAX_LEN and bool(SLUG_PATTERN.match(slug))


@dataclass(frozen=True, slots=True)
class Organization:
    id: UUID
    slug: str
    name: str
    created_by: UUID | None = None
    alternate_name: str = ""
    description: str = ""
    type: str = "community"
    parent_id: UUID | None = None  # chapter hierarchies
    created_at: datetime | None = None
    deleted_at: datetime | None = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def landing_path(self) -> str:
        return f"/{self.slug}"

    @staticmethod
    def new(
        *,
        name: str,
        slug: str,
        created_by: UUID | None = None,
        alternate_name: str = "",
        description: str = "",
        type: str = "community",
        parent_id: UUID | None = None,
    ) -> Organization:
        return Organization(
            id=uuid4(),
            slug=slug,
            name=name,
            created_by=created_by,
            alternate_name=alternate_name,
            description=description,
            type=type,
            parent_id=parent_id,
            created_at=datetime.now(UTC),
        )


@dataclass(frozen=True, slots=True)
class Membership:
    """An identity belongs to an organization.

    Holding a membership grants nothing by itself; permissions come from
    role assignments.  Memberships start inactive while an application
    is in flight and are activated when it is approved.
    """

    id: UUID
    org_id: UUID
    user_id: UUID
    is_active: bool = False
    member_id: str | None = None
    created_by: UUID | None = None
    created_at: datetime | None = None

    @staticmethod
    def new(
        *, org_id: UUID, user_id: UUID, is_active: bool = False
    ) -> Membership:
        return Membership(
            id=uuid4(),
            org_id=org_id,
            user_id=user_id,
            is_active=is_active,
            created_by=user_id,
            created_at=datetime.now(UTC),
        )
