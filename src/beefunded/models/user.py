# src/beefunded/models/user.py
"""SQLAlchemy models for wallet-backed users and their public profiles."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Column, ForeignKey, String, Table, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from beefunded.db.session import Base
from beefunded.models.base import TimestampMixin, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from beefunded.models.notification import NotificationSettings

DEFAULT_AVATAR = "/default/avatar.png"
DEFAULT_COVER = "/default/cover.png"

profile_follower = Table(
    "profile_follower",
    Base.metadata,
    Column("profile_id", ForeignKey("profile.id", ondelete="CASCADE"), primary_key=True),
    Column("follower_id", ForeignKey("profile.id", ondelete="CASCADE"), primary_key=True),
)


class User(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Account identified by the wallet address that signed up with SIWE."""

    __tablename__ = "user"

    wallet_address: Mapped[str] = mapped_column(String(42), unique=True, nullable=False)
    # Flipped once the profile onboarding has been completed by the client.
    complete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    accepted_terms: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    profile: Mapped[Profile] = relationship(
        "Profile",
        back_populates="user",
        cascade="all, delete-orphan",
        uselist=False,
        lazy="joined",
    )

    @property
    def username(self) -> str | None:
        return self.profile.username if self.profile else None

    @property
    def email(self) -> str | None:
        return self.profile.email if self.profile else None


class Profile(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Public-facing information attached to a user."""

    __tablename__ = "profile"

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("user.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    username: Mapped[str | None] = mapped_column(Text, unique=True, nullable=True)
    email: Mapped[str | None] = mapped_column(Text, unique=True, nullable=True)
    email_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    display_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    avatar: Mapped[str] = mapped_column(Text, nullable=False, default=DEFAULT_AVATAR)
    cover: Mapped[str] = mapped_column(Text, nullable=False, default=DEFAULT_COVER)

    user: Mapped[User] = relationship("User", back_populates="profile")
    notification_settings: Mapped[NotificationSettings] = relationship(
        "NotificationSettings",
        back_populates="profile",
        cascade="all, delete-orphan",
        uselist=False,
    )
    followers: Mapped[list[Profile]] = relationship(
        "Profile",
        secondary=profile_follower,
        primaryjoin=lambda: Profile.id == profile_follower.c.profile_id,
        secondaryjoin=lambda: Profile.id == profile_follower.c.follower_id,
        back_populates="following",
    )
    following: Mapped[list[Profile]] = relationship(
        "Profile",
        secondary=profile_follower,
        primaryjoin=lambda: Profile.id == profile_follower.c.follower_id,
        secondaryjoin=lambda: Profile.id == profile_follower.c.profile_id,
        back_populates="followers",
    )

    @property
    def name(self) -> str:
        """Return the best human-readable label for the profile."""
        return self.display_name or self.username or "Anonymous"
