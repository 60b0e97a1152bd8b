"""Notification Pydantic schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class NotificationActor(BaseModel):
    id: str
    display_name: str | None = None
    username: str | None = None
    avatar: str | None = None


class NotificationResponse(BaseModel):
    """A notification with its placeholders rendered."""

    id: str
    title: str
    message: str
    type: str
    is_read: bool
    metadata: dict[str, Any] | None = None
    actor: NotificationActor | None = None
    created_at: datetime
    updated_at: datetime


class NotificationPageResponse(BaseModel):
    data: list[NotificationResponse]
    offset: int
    limit: int
    count: int


class UnreadCountResponse(BaseModel):
    count: int


class ChannelSettings(BaseModel):
    """Toggles for one delivery channel."""

    enabled: bool = True
    notifications: dict[str, bool] = Field(default_factory=dict)


class SettingsChannels(BaseModel):
    email: ChannelSettings
    in_app: ChannelSettings


class NotificationSettingsDocument(BaseModel):
    channels: SettingsChannels


class NotificationSettingsResponse(BaseModel):
    profile_id: str
    settings: NotificationSettingsDocument
