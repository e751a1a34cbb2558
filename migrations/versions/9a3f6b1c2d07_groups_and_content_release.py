"""groups and content release tracking

Revision ID: 9a3f6b1c2d07
Revises: 5c1e0a7d9b42
Create Date: 2026-10-17 15:40:02.117690

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "9a3f6b1c2d07"
down_revision: Union[str, Sequence[str], None] = "5c1e0a7d9b42"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Add friend groups and record when a message's blob was confirmed deleted."""
    with op.batch_alter_table("message") as batch_op:
        batch_op.add_column(
            sa.Column("content_released_at", sa.DateTime(timezone=True), nullable=True)
        )

    op.create_table(
        "user_group",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=64), nullable=False),
        sa.Column("created_by", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["created_by"], ["user.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_user_group_created_by", "user_group", ["created_by"])

    op.create_table(
        "group_membership",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("group_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["group_id"], ["user_group.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["user.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("group_id", "user_id", name="uq_group_membership_member"),
    )
    op.create_index("ix_group_membership_group_id", "group_membership", ["group_id"])
    op.create_index("ix_group_membership_user_id", "group_membership", ["user_id"])


def downgrade() -> None:
    """Drop groups and the content release column."""
    op.drop_index("ix_group_membership_user_id", table_name="group_membership")
    op.drop_index("ix_group_membership_group_id", table_name="group_membership")
    op.drop_table("group_membership")
    op.drop_index("ix_user_group_created_by", table_name="user_group")
    op.drop_table("user_group")
    with op.batch_alter_table("message") as batch_op:
        batch_op.drop_column("content_released_at")
