"""Donation pool Pydantic schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class DonationPoolCreate(BaseModel):
    """Off-chain metadata submitted before the pool is created on chain."""

    kind: Literal["main", "objective"] = "main"
    title: str | None = Field(None, max_length=100)
    description: str | None = Field(None, max_length=1000)
    image: str | None = None
    valuation_token: str | None = None
    cap: int | None = Field(None, ge=0)
    tags: list[str] = Field(default_factory=list, max_length=10)


class DonationPoolResponse(BaseModel):
    """Read model of a pool; ``id_hash`` is the ``metadataId`` for the contract call."""

    id: str
    id_hash: str
    status: str
    kind: str
    title: str | None = None
    description: str | None = None
    image: str | None = None
    valuation_token: str | None = None
    cap: int | None = None
    tags: list[str] = Field(default_factory=list)
    on_chain_id: int | None = None
    chain_id: int | None = None
    owner_address: str | None = None
    profile_id: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
