"""System and maintenance endpoints for the Ephemera API."""

from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Header, HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from ephemera.api.v1.dependencies import CoordinatorDep, SessionDep
from ephemera.core.settings import settings
from ephemera.core.time import utcnow
from ephemera.models import Message, MessageDelivery

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/system", tags=["system"])


@router.get("/config")
async def get_public_config() -> dict[str, object]:
    """Return a sanitized snapshot of public runtime configuration.

    Excludes secrets and connection strings.
    """
    return {
        "app": {
            "name": settings.app_name,
            "version": settings.app_version,
            "debug": settings.debug,
        },
        "messaging": {
            "streak_window_hours": settings.streak_window_hours,
            "soft_deleted_retention_days": settings.soft_deleted_retention_days,
            "unread_retention_days": settings.unread_retention_days,
        },
        "push_enabled": settings.push_enabled,
    }


@router.get("/stats")
async def get_stats(db: SessionDep) -> dict[str, int]:
    """Return aggregate counts of live and released messages."""
    live = db.execute(
        select(func.count()).select_from(Message).where(Message.deleted_at.is_(None))
    ).scalar_one()
    released = db.execute(
        select(func.count()).select_from(Message).where(Message.deleted_at.is_not(None))
    ).scalar_one()
    unread = db.execute(
        select(func.count())
        .select_from(MessageDelivery)
        .where(MessageDelivery.read_at.is_(None))
    ).scalar_one()
    return {"live_messages": live, "released_messages": released, "unread_deliveries": unread}


@router.post("/cleanup-messages")
async def cleanup_messages(
    db: SessionDep,
    coordinator: CoordinatorDep,
    authorization: Annotated[str | None, Header()] = None,
) -> dict[str, Any]:
    """Purge messages past their retention window.

    Meant to be called by a scheduler; guarded by ``CRON_SECRET`` when set.
    """
    if settings.cron_secret and authorization != f"Bearer {settings.cron_secret}":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )

    try:
        report = await coordinator.purge_expired(db)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Retention purge failed: %s", exc, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to cleanup messages",
        ) from exc

    return {
        "success": True,
        "deleted_soft_deleted_messages": report.soft_deleted_messages,
        "deleted_soft_deleted_deliveries": report.soft_deleted_deliveries,
        "deleted_old_messages": report.expired_messages,
        "deleted_old_deliveries": report.expired_deliveries,
        "retained_messages": report.retained_messages,
        "timestamp": utcnow().isoformat(),
    }
