# src/beefunded/models/subscription.py
"""SQLAlchemy model for recurring donation subscriptions."""

from __future__ import annotations

from sqlalchemy import BigInteger, Boolean, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from beefunded.db.session import Base
from beefunded.models.base import TimestampMixin
from beefunded.models.donation_pool import DonationPool


class Subscription(TimestampMixin, Base):
    """Read model of a SubscriptionManager subscription.

    Subscriptions are never deleted; unsubscribe and expiry only deactivate them.
    """

    __tablename__ = "subscription"
    __table_args__ = (
        UniqueConstraint("chain_id", "on_chain_subscription_id", name="uq_subscription_chain_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    on_chain_subscription_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    chain_id: Mapped[int] = mapped_column(Integer, nullable=False)
    on_chain_pool_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    pool_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("donation_pool.id", ondelete="CASCADE"),
        nullable=True,
    )
    subscriber: Mapped[str] = mapped_column(String(42), nullable=False)
    beneficiary: Mapped[str] = mapped_column(String(42), nullable=False)
    token: Mapped[str] = mapped_column(String(42), nullable=False)
    amount: Mapped[str] = mapped_column(String(78), nullable=False)
    interval: Mapped[int] = mapped_column(BigInteger, nullable=False)
    remaining_payments: Mapped[int] = mapped_column(BigInteger, nullable=False)
    next_payment_time: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    deadline: Mapped[int] = mapped_column(BigInteger, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    expired: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    pool: Mapped[DonationPool | None] = relationship("DonationPool")
