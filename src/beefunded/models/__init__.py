# src/beefunded/models/__init__.py
"""SQLAlchemy models for the BeeFunded application."""

from .donation import Donation
from .donation_pool import DonationPool
from .notification import Notification, NotificationSettings
from .subscription import Subscription
from .user import Profile, User, profile_follower

__all__ = [
    "Donation",
    "DonationPool",
    "Notification", "NotificationSettings",
    "Subscription",
    "Profile", "User", "profile_follower",
]
