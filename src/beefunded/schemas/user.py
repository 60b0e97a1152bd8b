"""User and profile response schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ProfileResponse(BaseModel):
    """Public profile information."""

    id: str
    username: str | None = None
    email: str | None = None
    display_name: str | None = None
    bio: str | None = None
    avatar: str
    cover: str

    model_config = ConfigDict(from_attributes=True)


class UserResponse(BaseModel):
    """The authenticated user, as returned by GET /auth/me."""

    id: str = Field(..., description="User identifier (token subject)")
    wallet_address: str = Field(..., description="Checksummed wallet address")
    complete: bool
    accepted_terms: bool
    created_at: datetime
    profile: ProfileResponse | None = None

    model_config = ConfigDict(from_attributes=True)
