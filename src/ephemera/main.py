"""Main entry point for the Ephemera application."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from ephemera.api.v1 import (
    friends_router,
    groups_router,
    messages_router,
    notifications_router,
    system_router,
)
from ephemera.core.settings import settings
from ephemera.services.content_store import get_content_store
from ephemera.services.notifications import get_notification_dispatcher

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Ephemera API",
    description="Ephemeral photo and video messaging API",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Include API routers
app.include_router(messages_router, prefix="/api/v1")
app.include_router(friends_router, prefix="/api/v1")
app.include_router(groups_router, prefix="/api/v1")
app.include_router(notifications_router, prefix="/api/v1")
app.include_router(system_router, prefix="/api/v1")


@app.on_event("startup")
async def on_startup() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    if not get_content_store().enabled:
        logger.warning("UPLOADTHING_SECRET is not set; consumed media will not be deleted")


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await get_content_store().close()
    await get_notification_dispatcher().close()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "description": "Ephemeral photo and video messaging API",
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("ephemera.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
