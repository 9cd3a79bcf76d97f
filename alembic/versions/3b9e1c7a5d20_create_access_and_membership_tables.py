"""create access and membership tables

Revision ID: 3b9e1c7a5d20
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b9e1c7a5d20"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

UUID = postgresql.UUID(as_uuid=True)


def upgrade() -> None:
    op.create_table(
        "organizations",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("slug", sa.String(length=64), nullable=False, unique=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("alternate_name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("type", sa.String(length=64), nullable=False, server_default="community"),
        sa.Column("parent_id", UUID, sa.ForeignKey("organizations.id"), nullable=True),
        sa.Column("created_by", UUID, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "group_users",
        sa.Column("id", UUID, primary_key=True),
        sa.Column(
            "org_id",
            UUID,
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", UUID, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("member_id", sa.String(length=64), nullable=True),
        sa.Column("created_by", UUID, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.UniqueConstraint("org_id", "user_id"),
    )

    op.create_table(
        "group_roles",
        sa.Column("id", UUID, primary_key=True),
        sa.Column(
            "org_id",
            UUID,
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column(
            "permissions",
            postgresql.ARRAY(sa.String()),
            nullable=False,
            server_default="{}",
        ),
        sa.Column("created_by", UUID, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.UniqueConstraint("org_id", "name"),
    )

    op.create_table(
        "group_role_users",
        sa.Column(
            "role_id",
            UUID,
            sa.ForeignKey("group_roles.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("user_id", UUID, primary_key=True),
    )

    op.create_table(
        "membership_tiers",
        sa.Column("id", UUID, primary_key=True),
        sa.Column(
            "org_id",
            UUID,
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("price", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="USD"),
        sa.Column("duration_months", sa.Integer(), nullable=False, server_default="12"),
        sa.Column("activation_type", sa.String(length=32), nullable=False),
        sa.Column("granted_role_id", UUID, sa.ForeignKey("group_roles.id"), nullable=True),
        sa.Column("member_id_format", sa.String(length=128), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True)),
    )

    op.create_table(
        "applications",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("type", sa.String(length=32), nullable=False, server_default="membership"),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("org_id", UUID, sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("membership_id", UUID, sa.ForeignKey("group_users.id"), nullable=False),
        sa.Column("user_id", UUID, nullable=False),
        sa.Column("tier_id", UUID, nullable=False),
        sa.Column("order_id", UUID, nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_applications_org_status", "applications", ["org_id", "status"])

    op.create_table(
        "orders",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("type", sa.String(length=32), nullable=False, server_default="membership"),
        sa.Column("user_id", UUID, nullable=False),
        sa.Column("product_id", UUID, nullable=False),
        sa.Column("application_id", UUID, nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("provider_reference", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )


def downgrade() -> None:
    op.drop_table("orders")
    op.drop_index("ix_applications_org_status", table_name="applications")
    op.drop_table("applications")
    op.drop_table("membership_tiers")
    op.drop_table("group_role_users")
    op.drop_table("group_roles")
    op.drop_table("group_users")
    op.drop_table("organizations")
