# src/beefunded/models/donation.py
"""SQLAlchemy model for donations observed on DonationManager."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from beefunded.db.session import Base
from beefunded.models.base import UUIDPrimaryKeyMixin, utcnow
from beefunded.models.donation_pool import DonationPool
from beefunded.models.user import Profile


class Donation(UUIDPrimaryKeyMixin, Base):
    """Immutable record of a successful on-chain donation.

    Rows are only written by event reconciliation; the (chain, tx, log index)
    triple identifies the originating log so redelivery never double-inserts.
    """

    __tablename__ = "donation"
    __table_args__ = (
        UniqueConstraint("chain_id", "tx_hash", "log_index", name="uq_donation_event"),
    )

    pool_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("donation_pool.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    donor_address: Mapped[str] = mapped_column(String(42), nullable=False)
    donor_profile_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("profile.id", ondelete="SET NULL"),
        nullable=True,
    )
    token: Mapped[str] = mapped_column(String(42), nullable=False)
    # uint256 amounts overflow every SQL integer type; keep the decimal string.
    amount: Mapped[str] = mapped_column(String(78), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    is_recurring: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    chain_id: Mapped[int] = mapped_column(Integer, nullable=False)
    tx_hash: Mapped[str] = mapped_column(String(66), nullable=False)
    log_index: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    pool: Mapped[DonationPool] = relationship("DonationPool")
    donor_profile: Mapped[Profile | None] = relationship("Profile")
