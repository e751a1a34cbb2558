"""Friendship-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, Field


class FriendRequestCreate(BaseModel):
    """Schema for sending a friend request."""

    to_user_id: str = Field(..., min_length=1)


class FriendRequestResponse(BaseModel):
    """Incoming pending friend request."""

    request_id: str
    from_user_id: str
    from_user_name: str


class FriendResponse(BaseModel):
    """A friend of the caller together with the shared streak state."""

    id: str
    name: str
    image: str | None
    streak: int
    last_activity_at: datetime | None
    partner_last_activity_at: datetime | None
    # False: caller sent last and it is unopened; True: opened; None: partner sent last
    last_sent_opened: bool | None


class UserSearchResult(BaseModel):
    """A user matching a name search, with the caller's relation to them."""

    id: str
    name: str
    image: str | None
    is_friend: bool
    has_pending_request: bool
