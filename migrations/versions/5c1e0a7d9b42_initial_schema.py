"""initial schema

Revision ID: 5c1e0a7d9b42
Revises:
Create Date: 2026-10-17 09:12:44.518203

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "5c1e0a7d9b42"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create users, friendships, messages, deliveries and push tokens."""
    op.create_table(
        "user",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("image", sa.Text(), nullable=True),
        sa.Column("notify_on_messages", sa.Boolean(), nullable=False),
        sa.Column("notify_on_friend_activity", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "friendship",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id_a", sa.String(length=64), nullable=False),
        sa.Column("user_id_b", sa.String(length=64), nullable=False),
        sa.Column("current_streak", sa.Integer(), nullable=False),
        sa.Column("last_activity_a", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_activity_b", sa.DateTime(timezone=True), nullable=True),
        sa.Column("streak_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id_a"], ["user.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id_b"], ["user.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id_a", "user_id_b", name="uq_friendship_pair"),
        sa.CheckConstraint("user_id_a < user_id_b", name="ck_friendship_ordered"),
        sa.CheckConstraint("current_streak >= 0", name="ck_friendship_streak_nonnegative"),
    )
    op.create_index("ix_friendship_user_id_a", "friendship", ["user_id_a"])
    op.create_index("ix_friendship_user_id_b", "friendship", ["user_id_b"])

    op.create_table(
        "friend_request",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("from_user_id", sa.String(length=64), nullable=False),
        sa.Column("to_user_id", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["from_user_id"], ["user.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["to_user_id"], ["user.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_friend_request_to_user_id", "friend_request", ["to_user_id"])

    op.create_table(
        "message",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("sender_id", sa.String(length=64), nullable=False),
        sa.Column("content_ref", sa.Text(), nullable=False),
        sa.Column("content_key", sa.Text(), nullable=True),
        sa.Column("kind", sa.String(length=128), nullable=True),
        sa.Column("thumbhash", sa.Text(), nullable=True),
        sa.Column("annotations", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["sender_id"], ["user.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_message_sender_id", "message", ["sender_id"])
    op.create_index("ix_message_deleted_at", "message", ["deleted_at"])

    op.create_table(
        "message_delivery",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("message_id", sa.String(length=36), nullable=False),
        sa.Column("recipient_id", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["message_id"], ["message.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["recipient_id"], ["user.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("message_id", "recipient_id", name="uq_delivery_message_recipient"),
    )
    op.create_index("ix_message_delivery_message_id", "message_delivery", ["message_id"])
    op.create_index("ix_message_delivery_recipient_id", "message_delivery", ["recipient_id"])

    op.create_table(
        "push_token",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("token", sa.Text(), nullable=False),
        sa.Column("platform", sa.String(length=16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["user.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("token"),
    )
    op.create_index("ix_push_token_user_id", "push_token", ["user_id"])


def downgrade() -> None:
    """Drop every table created by this revision."""
    op.drop_index("ix_push_token_user_id", table_name="push_token")
    op.drop_table("push_token")
    op.drop_index("ix_message_delivery_recipient_id", table_name="message_delivery")
    op.drop_index("ix_message_delivery_message_id", table_name="message_delivery")
    op.drop_table("message_delivery")
    op.drop_index("ix_message_deleted_at", table_name="message")
    op.drop_index("ix_message_sender_id", table_name="message")
    op.drop_table("message")
    op.drop_index("ix_friend_request_to_user_id", table_name="friend_request")
    op.drop_table("friend_request")
    op.drop_index("ix_friendship_user_id_b", table_name="friendship")
    op.drop_index("ix_friendship_user_id_a", table_name="friendship")
    op.drop_table("friendship")
    op.drop_table("user")
