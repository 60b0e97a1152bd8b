"""Lookup and registration helpers for wallet users."""

from __future__ import annotations

from sqlalchemy import ColumnElement, func, or_, select
from sqlalchemy.orm import InstrumentedAttribute, Session

from beefunded.models import NotificationSettings, Profile, User
from beefunded.models.notification import default_notification_settings

__all__ = [
    "find_user_by_address",
    "get_user",
    "find_profile_by_address",
    "register_user",
    "identity_exists",
]


def _address_matches(column: InstrumentedAttribute[str], address: str) -> ColumnElement[bool]:
    # Addresses arrive both checksummed and lower-cased.
    return func.lower(column) == address.lower()


def find_user_by_address(db: Session, address: str) -> User | None:
    """Return the user registered with ``address``, if any."""
    return db.scalar(select(User).where(_address_matches(User.wallet_address, address)))


def get_user(db: Session, user_id: str) -> User | None:
    """Return a single user by primary key."""
    return db.get(User, user_id)


def find_profile_by_address(db: Session, address: str) -> Profile | None:
    return db.scalar(
        select(Profile)
        .join(User, Profile.user_id == User.id)
        .where(_address_matches(User.wallet_address, address))
    )


def register_user(
    db: Session,
    *,
    address: str,
    username: str | None = None,
    email: str | None = None,
    display_name: str | None = None,
    bio: str | None = None,
    accepted_terms: bool = False,
) -> User:
    """Persist a new user with an empty profile and default notification settings."""
    profile = Profile(
        username=username or None,
        email=email or None,
        display_name=display_name,
        bio=bio,
    )
    profile.notification_settings = NotificationSettings(
        settings=default_notification_settings()
    )
    user = User(
        wallet_address=address,
        accepted_terms=accepted_terms,
        complete=bool(username and email),
    )
    user.profile = profile
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def identity_exists(
    db: Session,
    *,
    address: str | None = None,
    email: str | None = None,
    username: str | None = None,
) -> bool:
    """Return True if any of the given identifiers is already taken."""
    conditions = []
    if address:
        conditions.append(_address_matches(User.wallet_address, address))
    if email:
        conditions.append(func.lower(Profile.email) == email.lower())
    if username:
        conditions.append(Profile.username == username)
    if not conditions:
        return False
    match = db.scalar(
        select(User.id).join(Profile, Profile.user_id == User.id).where(or_(*conditions)).limit(1)
    )
    return match is not None
