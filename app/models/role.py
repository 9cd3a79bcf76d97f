from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class Role:
    """Org-scoped bundle of permission strings.  Flat: roles never nest."""

    id: UUID
    org_id: UUID
    name: str
    permissions: frozenset[str] = frozenset()
    description: str = ""
    created_by: UUID | None = None
    created_at: datetime | None = field(default=None, compare=False)

    @staticmethod
    def new(
        *,
        org_id: UUID,
        name: str,
        permissions: frozenset[str] | set[str] = frozenset(),
        description: str = "",
        created_by: UUID | None = None,
    ) -> Role:
        return Role(
            id=uuid4(),
            org_id=org_id,
            name=name,
            permissions=frozenset(permissions),
            description=description,
            created_by=created_by,
            created_at=datetime.now(UTC),
        )


@dataclass(frozen=True, slots=True)
class RoleAssignment:
    role_id: UUID
    user_id: UUID
