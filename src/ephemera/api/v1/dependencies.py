"""Shared API dependencies for authentication and common functionality."""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from ephemera.core.security import decode_subject
from ephemera.db.session import get_db
from ephemera.models import User
from ephemera.services.cleanup import CleanupCoordinator, get_cleanup_coordinator
from ephemera.services.notifications import (
    NotificationDispatcher,
    get_notification_dispatcher,
)

# HTTP Bearer scheme for JWT authentication
bearer_scheme = HTTPBearer()

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
    db: SessionDep,
) -> User:
    """Get the current authenticated user from JWT token.

    Args:
        credentials: HTTP Bearer token credentials
        db: Database session

    Returns:
        User object for the authenticated user

    Raises:
        HTTPException: If token is invalid or user not found
    """
    user_id = decode_subject(credentials.credentials)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )

    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    return user


def get_cleanup_coordinator_dep() -> CleanupCoordinator:
    """Return a cleanup coordinator bound to the shared content store."""
    return get_cleanup_coordinator()


def get_dispatcher_dep() -> NotificationDispatcher:
    """Return the shared notification dispatcher."""
    return get_notification_dispatcher()


# Type aliases for common dependencies
CurrentUserDep = Annotated[User, Depends(get_current_user)]
CoordinatorDep = Annotated[CleanupCoordinator, Depends(get_cleanup_coordinator_dep)]
DispatcherDep = Annotated[NotificationDispatcher, Depends(get_dispatcher_dep)]
