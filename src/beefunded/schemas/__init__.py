"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .auth import (
    AccessTokenResponse,
    ExistsRequest,
    ExistsResponse,
    NonceResponse,
    SignInRequest,
    SignUpRequest,
)
from .donation_pool import DonationPoolCreate, DonationPoolResponse
from .notification import (
    NotificationPageResponse,
    NotificationResponse,
    NotificationSettingsDocument,
    NotificationSettingsResponse,
    UnreadCountResponse,
)
from .user import ProfileResponse, UserResponse

__all__ = [
    "AccessTokenResponse", "ExistsRequest", "ExistsResponse",
    "NonceResponse", "SignInRequest", "SignUpRequest",
    "DonationPoolCreate", "DonationPoolResponse",
    "NotificationPageResponse", "NotificationResponse",
    "NotificationSettingsDocument", "NotificationSettingsResponse", "UnreadCountResponse",
    "ProfileResponse", "UserResponse",
]
