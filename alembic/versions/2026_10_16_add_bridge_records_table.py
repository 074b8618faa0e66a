"""add bridge_records table

Revision ID: 7a1c3e5b9d20
Revises:
Create Date: 2026-10-16

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "7a1c3e5b9d20"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create bridge_records table."""
    op.create_table(
        "bridge_records",
        sa.Column("namespace", sa.String(length=64), nullable=False),
        sa.Column("record_key", sa.String(length=512), nullable=False),
        sa.Column(
            "payload",
            sa.JSON().with_variant(postgresql.JSONB(), "postgresql"),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.PrimaryKeyConstraint("namespace", "record_key"),
    )
    op.create_index(
        "ix_bridge_records_namespace_created",
        "bridge_records",
        ["namespace", "created_at"],
        unique=False,
    )


def downgrade() -> None:
    """Drop bridge_records table."""
    op.drop_index("ix_bridge_records_namespace_created", table_name="bridge_records")
    op.drop_table("bridge_records")
