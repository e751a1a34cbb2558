"""Push token and notification preference schemas."""

from typing import Literal

from pydantic import BaseModel, Field


class PushTokenCreate(BaseModel):
    """Schema for registering a device push token."""

    token: str = Field(..., min_length=1)
    platform: Literal["ios", "android", "web"]


class PushTokenRemove(BaseModel):
    """Schema for removing a device push token."""

    token: str = Field(..., min_length=1)


class NotificationPreferences(BaseModel):
    """Current notification preferences of the caller."""

    notify_on_messages: bool
    notify_on_friend_activity: bool


class NotificationPreferencesUpdate(BaseModel):
    """Partial update of notification preferences."""

    notify_on_messages: bool | None = None
    notify_on_friend_activity: bool | None = None
