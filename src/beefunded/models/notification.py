# src/beefunded/models/notification.py
"""SQLAlchemy models for in-app notifications and per-profile preferences."""

from __future__ import annotations

import copy
from typing import Any

from sqlalchemy import JSON, Boolean, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from beefunded.db.session import Base
from beefunded.models.base import TimestampMixin, UUIDPrimaryKeyMixin
from beefunded.models.user import Profile

NOTIFICATION_TYPE_SYSTEM = "system"
NOTIFICATION_TYPE_ON_CHAIN = "on_chain"
NOTIFICATION_TYPE_CUSTOM = "custom"

CHANNEL_EMAIL = "email"
CHANNEL_IN_APP = "in_app"
CHANNELS = (CHANNEL_EMAIL, CHANNEL_IN_APP)

PREFERENCES = (
    "new_follower",
    "donation_pool_creation",
    "followers_pool_creation",
    "donation_received",
    "donation_receipt",
    "subscription_creation_receipt",
)


def default_notification_settings() -> dict[str, Any]:
    """Return a fresh settings document with every channel and preference enabled."""
    channel = {"enabled": True, "notifications": {name: True for name in PREFERENCES}}
    return {"channels": {name: copy.deepcopy(channel) for name in CHANNELS}}


class Notification(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A message addressed to one profile, optionally caused by another (the actor)."""

    __tablename__ = "notification"

    profile_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("profile.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    actor_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("profile.id", ondelete="CASCADE"),
        nullable=True,
    )
    # Title and message may contain {display_name}-style placeholders.
    title: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False, default=NOTIFICATION_TYPE_SYSTEM)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # "metadata" is reserved on declarative classes.
    extra: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)

    profile: Mapped[Profile] = relationship("Profile", foreign_keys=[profile_id])
    actor: Mapped[Profile | None] = relationship("Profile", foreign_keys=[actor_id])


class NotificationSettings(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Channel and preference toggles for a single profile."""

    __tablename__ = "notification_settings"

    profile_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("profile.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    settings: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        default=default_notification_settings,
    )

    profile: Mapped[Profile] = relationship("Profile", back_populates="notification_settings")

    def allows(self, channel: str, preference: str) -> bool:
        """Return True if ``preference`` is enabled on an enabled ``channel``."""
        entry = self.settings.get("channels", {}).get(channel, {})
        if not entry.get("enabled", False):
            return False
        return bool(entry.get("notifications", {}).get(preference, False))
