"""SQLAlchemy model for user identities owned by the external auth service."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ephemera.core.time import utcnow
from ephemera.db.session import Base


class User(Base):
    """Read-mostly projection of an account plus its notification preferences."""

    __tablename__ = "user"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    image: Mapped[str | None] = mapped_column(Text, nullable=True)

    notify_on_messages: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notify_on_friend_activity: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
