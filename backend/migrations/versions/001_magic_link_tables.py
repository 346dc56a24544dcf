"""Create users and consumed_link_signatures tables.

Revision ID: 001_magic_link_tables
Revises:
Create Date: 2026-10-19

- users: accounts that magic links sign in to.
- consumed_link_signatures: redeemed single-use signatures, kept until the
  token they belong to expires.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "001_magic_link_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # =========================================================================
    # users
    # =========================================================================
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("username", sa.String(60), nullable=True),
        sa.Column(
            "is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False
        ),
        sa.Column(
            "is_admin", sa.Boolean(), server_default=sa.text("false"), nullable=False
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )
    # Partial index: the sender fallback looks up the first active admin
    op.create_index(
        "idx_users_active_admin",
        "users",
        ["id"],
        postgresql_where=sa.text("is_admin AND is_active"),
    )

    # =========================================================================
    # consumed_link_signatures
    # =========================================================================
    op.create_table(
        "consumed_link_signatures",
        sa.Column("signature", sa.String(64), primary_key=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_consumed_link_signatures_expires_at",
        "consumed_link_signatures",
        ["expires_at"],
    )


def downgrade() -> None:
    op.drop_index(
        "ix_consumed_link_signatures_expires_at",
        table_name="consumed_link_signatures",
    )
    op.drop_table("consumed_link_signatures")
    op.drop_index("idx_users_active_admin", table_name="users")
    op.drop_table("users")
