"""Authentication Pydantic schemas."""

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class NonceResponse(BaseModel):
    nonce: str = Field(..., description="Single-use nonce to embed in the SIWE message")


class SiweProof(BaseModel):
    """Fields shared by sign-up and sign-in: a SIWE message signed by the wallet."""

    address: str = Field(..., min_length=1, description="Wallet address claiming the session")
    message: str = Field(..., description="EIP-4361 message as signed by the wallet")
    signature: str = Field(..., description="0x-prefixed personal_sign signature")
    nonce: str = Field(..., description="Nonce previously issued by GET /auth/nonce")


class SignInRequest(SiweProof):
    pass


class SignUpRequest(SiweProof):
    """Account creation payload."""

    username: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., max_length=255)
    display_name: str | None = Field(None, max_length=255)
    bio: str | None = Field(None, max_length=255)
    accepted_terms: bool = Field(..., description="Whether the terms of use were accepted")

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        """Reject values that are obviously not email addresses."""
        if not _EMAIL_RE.match(v):
            raise ValueError("Invalid email address")
        return v


class AccessTokenResponse(BaseModel):
    """Returned by sign-up, sign-in and refresh; the refresh token travels as a cookie."""

    access_token: str = Field(..., alias="accessToken")

    model_config = ConfigDict(populate_by_name=True)


class ExistsRequest(BaseModel):
    address: str | None = None
    email: str | None = None
    username: str | None = None


class ExistsResponse(BaseModel):
    exists: bool
