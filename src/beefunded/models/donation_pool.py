# src/beefunded/models/donation_pool.py
"""SQLAlchemy model for donation pools mirrored from BeeFundedCore."""

from __future__ import annotations

from sqlalchemy import JSON, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from beefunded.db.session import Base
from beefunded.models.base import TimestampMixin, UUIDPrimaryKeyMixin
from beefunded.models.user import Profile

# Pool lifecycle: a row is created as "publishing" before the contract call and
# only becomes "published" once the matching DonationPoolCreated log is seen.
POOL_STATUS_PUBLISHING = "publishing"
POOL_STATUS_PUBLISHED = "published"
POOL_STATUS_ERRORED = "errored"

POOL_KIND_MAIN = "main"
POOL_KIND_OBJECTIVE = "objective"


class DonationPool(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Fundraising pool owned by a profile."""

    __tablename__ = "donation_pool"

    # keccak256 of ``id``; passed to the contract as the pool metadata id.
    id_hash: Mapped[str] = mapped_column(String(66), unique=True, nullable=False, index=True)
    on_chain_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    chain_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    owner_address: Mapped[str | None] = mapped_column(String(42), nullable=True)
    profile_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("profile.id", ondelete="CASCADE"),
        nullable=True,
    )
    kind: Mapped[str] = mapped_column(String(16), nullable=False, default=POOL_KIND_MAIN)
    title: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    image: Mapped[str | None] = mapped_column(Text, nullable=True)
    valuation_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    cap: Mapped[int | None] = mapped_column(Integer, nullable=True)
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=POOL_STATUS_PUBLISHING,
    )

    profile: Mapped[Profile | None] = relationship("Profile", lazy="joined")
