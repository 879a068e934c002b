"""Shared API dependencies for authentication and service wiring."""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from brokerdesk.core.security import InvalidTokenError, decode_subject
from brokerdesk.db.session import SessionFactory, get_db, get_session_factory
from brokerdesk.models import UserAccount
from brokerdesk.services.announcements import AnnouncementStore
from brokerdesk.services.badge import UnreadBadgeService
from brokerdesk.services.read_tracker import ReadTracker

# HTTP Bearer scheme for JWT authentication
bearer_scheme = HTTPBearer()

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]
SessionFactoryDep = Annotated[SessionFactory, Depends(get_session_factory)]


def load_active_user(db: Session, user_id: str) -> UserAccount | None:
    """Return the account for ``user_id`` if it exists and is active."""
    user = db.get(UserAccount, user_id)
    if user is None or not user.is_active:
        return None
    return user


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
    db: SessionDep,
) -> UserAccount:
    """Get the current authenticated user from JWT token.

    Args:
        credentials: HTTP Bearer token credentials
        db: Database session

    Returns:
        UserAccount for the authenticated user

    Raises:
        HTTPException: If token is invalid or user not found
    """
    try:
        user_id = decode_subject(credentials.credentials)
    except InvalidTokenError as err:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        ) from err

    user = load_active_user(db, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    return user


def get_announcement_store(db: SessionDep) -> AnnouncementStore:
    """Return an announcement store bound to the request session."""
    return AnnouncementStore(db)


def get_read_tracker(db: SessionDep) -> ReadTracker:
    """Return a read tracker bound to the request session."""
    return ReadTracker(db)


def get_badge_service(db: SessionDep) -> UnreadBadgeService:
    """Return a badge service bound to the request session."""
    return UnreadBadgeService(db)


# Type aliases for dependency injection
CurrentUserDep = Annotated[UserAccount, Depends(get_current_user)]
StoreDep = Annotated[AnnouncementStore, Depends(get_announcement_store)]
ReadTrackerDep = Annotated[ReadTracker, Depends(get_read_tracker)]
BadgeDep = Annotated[UnreadBadgeService, Depends(get_badge_service)]
