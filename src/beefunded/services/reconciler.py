"""Applies decoded contract events to the relational read model.

Every handler is idempotent because log delivery is at-least-once, and every
event runs in its own session so one failure never blocks the next event.
Errors are reported on the ``beefunded.reconciliation`` logger and returned as
a :class:`ReconcileResult`; :meth:`EventReconciler.handle` never raises.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from beefunded.chain.events import (
    EVENT_TYPES,
    ChainEvent,
    DonationFailed,
    DonationSucceeded,
    PoolCreated,
    SubscriptionCreated,
    SubscriptionExpired,
    SubscriptionPaymentFailed,
    SubscriptionPaymentSucceeded,
    Unsubscribed,
)
from beefunded.core.settings import settings
from beefunded.db.session import SessionFactory, session_scope
from beefunded.models import Donation, Subscription
from beefunded.models.donation_pool import POOL_STATUS_PUBLISHED
from beefunded.services.donation_pools import find_pool_by_chain_id, find_pool_by_id_hash
from beefunded.services.notifications import (
    MailContent,
    NotificationContent,
    NotificationDispatcher,
)
from beefunded.services.users import find_profile_by_address

logger = logging.getLogger(__name__)
# Operator channel for events that could not be reconciled.
reconciliation_logger = logging.getLogger("beefunded.reconciliation")


class ReconciliationError(Exception):
    """An event references state that is missing from the database."""


class PoolNotFoundError(ReconciliationError):
    pass


class SubscriptionNotFoundError(ReconciliationError):
    pass


class ReconcileStatus(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    ERROR = "error"


@dataclass(frozen=True)
class ReconcileResult:
    status: ReconcileStatus
    event: str
    detail: str | None = None


# Plain values handed from the worker thread back to the loop.
@dataclass(frozen=True)
class _PoolOutcome:
    duplicate: bool
    pool_id: str
    title: str
    profile_id: str | None


@dataclass(frozen=True)
class _DonationOutcome:
    duplicate: bool
    pool_title: str
    owner_profile_id: str | None
    owner_name: str | None
    donor_profile_id: str | None
    donor_name: str | None


@dataclass(frozen=True)
class _SubscriptionOutcome:
    duplicate: bool
    pool_title: str
    subscriber_profile_id: str | None
    subscriber_name: str | None


_HANDLER_NAMES: dict[type, str] = {
    PoolCreated: "_on_pool_created",
    DonationSucceeded: "_on_donation_succeeded",
    DonationFailed: "_on_donation_failed",
    SubscriptionCreated: "_on_subscription_created",
    Unsubscribed: "_on_unsubscribed",
    SubscriptionPaymentSucceeded: "_on_subscription_payment",
    SubscriptionPaymentFailed: "_on_subscription_payment",
    SubscriptionExpired: "_on_subscription_expired",
}

_unhandled = [event_type.__name__ for event_type in EVENT_TYPES if event_type not in _HANDLER_NAMES]
if _unhandled:  # pragma: no cover - guards future event additions
    raise RuntimeError(f"No reconciliation handler for: {', '.join(_unhandled)}")


def _explorer_url(chain_id: int, tx_hash: str) -> str | None:
    try:
        chain = settings.get_chain(chain_id)
    except KeyError:
        return None
    return f"{chain.explorer_url}?txHash={tx_hash}"


def _pool_title(title: str | None) -> str:
    return title or "Untitled"


class EventReconciler:
    """Maps each contract event to an idempotent database mutation plus notifications."""

    def __init__(
        self,
        session_factory: SessionFactory = session_scope,
        dispatcher: NotificationDispatcher | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.dispatcher = dispatcher or NotificationDispatcher(session_factory)
        self._handlers: dict[type, Callable[[Any], Awaitable[ReconcileResult]]] = {
            event_type: getattr(self, name) for event_type, name in _HANDLER_NAMES.items()
        }

    async def handle(self, event: ChainEvent) -> ReconcileResult:
        """Reconcile one event. Failures are logged and returned, never raised."""
        name = type(event).__name__
        handler = self._handlers[type(event)]
        try:
            result = await handler(event)
        except ReconciliationError as err:
            reconciliation_logger.error(
                "Could not reconcile %s from tx %s (chain %s): %s",
                name,
                event.meta.tx_hash,
                event.meta.chain_id,
                err,
            )
            return ReconcileResult(ReconcileStatus.ERROR, name, str(err))
        except Exception as err:
            reconciliation_logger.error(
                "Unexpected error while reconciling %s from tx %s: %s",
                name,
                event.meta.tx_hash,
                err,
                exc_info=True,
            )
            return ReconcileResult(ReconcileStatus.ERROR, name, str(err))
        logger.info("Reconciled %s from tx %s: %s", name, event.meta.tx_hash, result.status.value)
        return result

    # --- Donation pools ---------------------------------------------------------
    async def _on_pool_created(self, event: PoolCreated) -> ReconcileResult:
        outcome = await asyncio.to_thread(self._apply_pool_created, event)
        if outcome.duplicate:
            return ReconcileResult(ReconcileStatus.DUPLICATE, "PoolCreated")

        if outcome.profile_id is not None:
            metadata = {
                "pool_id": outcome.pool_id,
                "pool_title": outcome.title,
                "tx_hash": event.meta.tx_hash,
            }
            await self.dispatcher.notify_actor(
                outcome.profile_id,
                "donation_pool_creation",
                NotificationContent(
                    event="donation_pool_creation",
                    title='Your donation pool "{pool_title}" is live',
                    message='"{pool_title}" has been published on chain',
                    actor_id=outcome.profile_id,
                    metadata=metadata,
                ),
                MailContent(
                    subject="Your donation pool has been published",
                    template="donation-pool-published",
                    context={"poolName": outcome.title, "poolId": outcome.pool_id},
                ),
            )
            await self.dispatcher.notify_followers(
                outcome.profile_id,
                "followers_pool_creation",
                NotificationContent(
                    event="followers_pool_creation",
                    title="{display_name} published a new donation pool",
                    message='Take a look at "{pool_title}"',
                    actor_id=outcome.profile_id,
                    metadata=metadata,
                ),
                MailContent(
                    subject="A profile you follow published a new donation pool",
                    template="followers-pool-created",
                    context={"poolName": outcome.title, "poolId": outcome.pool_id},
                ),
            )
        return ReconcileResult(ReconcileStatus.APPLIED, "PoolCreated")

    def _apply_pool_created(self, event: PoolCreated) -> _PoolOutcome:
        with self._session_factory() as db:
            pool = find_pool_by_id_hash(db, event.id_hash)
            if pool is None:
                raise PoolNotFoundError(f"No donation pool with id_hash {event.id_hash}")
            duplicate = (
                pool.status == POOL_STATUS_PUBLISHED
                and pool.on_chain_id == event.on_chain_id
                and pool.chain_id == event.meta.chain_id
            )
            pool.status = POOL_STATUS_PUBLISHED
            pool.on_chain_id = event.on_chain_id
            pool.chain_id = event.meta.chain_id
            pool.owner_address = event.owner_address
            db.commit()
            return _PoolOutcome(
                duplicate=duplicate,
                pool_id=pool.id,
                title=_pool_title(pool.title),
                profile_id=pool.profile_id,
            )

    # --- Donations -------------------------------------------------------------
    async def _on_donation_succeeded(self, event: DonationSucceeded) -> ReconcileResult:
        outcome = await asyncio.to_thread(self._apply_donation, event)
        if outcome.duplicate:
            return ReconcileResult(ReconcileStatus.DUPLICATE, "DonationSucceeded")

        mail_context = {
            "amount": str(event.amount),
            "token": event.token,
            "txHash": event.meta.tx_hash,
            "explorerUrl": _explorer_url(event.meta.chain_id, event.meta.tx_hash),
            "poolName": outcome.pool_title,
        }
        if outcome.donor_profile_id is not None:
            await self.dispatcher.notify_actor(
                outcome.donor_profile_id,
                "donation_receipt",
                NotificationContent(
                    event="donation_receipt",
                    title="Donation completed successfully",
                    message="Thank you for donating!",
                    actor_id=outcome.donor_profile_id,
                    metadata={"tx_hash": event.meta.tx_hash, "amount": str(event.amount)},
                ),
                MailContent(
                    subject="Donation receipt",
                    template="donation-receipt",
                    context={**mail_context, "recipient": outcome.owner_name},
                ),
            )
        if outcome.owner_profile_id is not None:
            await self.dispatcher.notify_profile(
                outcome.owner_profile_id,
                "donation_received",
                NotificationContent(
                    event="donation_received",
                    title="New donation",
                    message="You have received a new donation!",
                    actor_id=outcome.donor_profile_id,
                    metadata={"tx_hash": event.meta.tx_hash, "amount": str(event.amount)},
                ),
                MailContent(
                    subject="You have received a new donation",
                    template="donation-received",
                    context={**mail_context, "donorName": outcome.donor_name or "Anonymous"},
                ),
            )
        return ReconcileResult(ReconcileStatus.APPLIED, "DonationSucceeded")

    def _apply_donation(self, event: DonationSucceeded) -> _DonationOutcome:
        meta = event.meta
        with self._session_factory() as db:
            pool = find_pool_by_chain_id(db, meta.chain_id, event.on_chain_pool_id)
            if pool is None:
                raise PoolNotFoundError(
                    f"No donation pool with on-chain id {event.on_chain_pool_id} "
                    f"on chain {meta.chain_id}"
                )
            owner = pool.profile
            donor = find_profile_by_address(db, event.donor_address)
            outcome = _DonationOutcome(
                duplicate=False,
                pool_title=_pool_title(pool.title),
                owner_profile_id=owner.id if owner else None,
                owner_name=owner.name if owner else None,
                donor_profile_id=donor.id if donor else None,
                donor_name=donor.name if donor else None,
            )

            if self._donation_exists(db, event):
                return replace(outcome, duplicate=True)

            db.add(
                Donation(
                    pool_id=pool.id,
                    donor_address=event.donor_address,
                    donor_profile_id=donor.id if donor else None,
                    token=event.token,
                    amount=str(event.amount),
                    message=event.message,
                    is_recurring=event.is_recurring,
                    chain_id=meta.chain_id,
                    tx_hash=meta.tx_hash,
                    log_index=meta.log_index,
                )
            )
            try:
                db.commit()
            except IntegrityError:
                # A concurrent delivery of the same log won the insert.
                db.rollback()
                return replace(outcome, duplicate=True)
            return outcome

    @staticmethod
    def _donation_exists(db: Session, event: DonationSucceeded) -> bool:
        existing = db.scalar(
            select(Donation.id).where(
                Donation.chain_id == event.meta.chain_id,
                Donation.tx_hash == event.meta.tx_hash,
                Donation.log_index == event.meta.log_index,
            )
        )
        return existing is not None

    async def _on_donation_failed(self, event: DonationFailed) -> ReconcileResult:
        logger.warning(
            "Donation of %s (token %s) by %s to pool %s failed on chain %s: tx %s",
            event.amount,
            event.token,
            event.donor_address,
            event.on_chain_pool_id,
            event.meta.chain_id,
            event.meta.tx_hash,
        )
        return ReconcileResult(ReconcileStatus.IGNORED, "DonationFailed")

    # --- Subscriptions ---------------------------------------------------------
    async def _on_subscription_created(self, event: SubscriptionCreated) -> ReconcileResult:
        outcome = await asyncio.to_thread(self._apply_subscription_created, event)
        if outcome.duplicate:
            return ReconcileResult(ReconcileStatus.DUPLICATE, "SubscriptionCreated")

        if outcome.subscriber_profile_id is not None:
            await self.dispatcher.notify_actor(
                outcome.subscriber_profile_id,
                "subscription_creation_receipt",
                NotificationContent(
                    event="subscription_creation_receipt",
                    title='You have successfully subscribed to "{pool_title}"',
                    message='Thank you for subscribing to "{pool_title}"',
                    actor_id=outcome.subscriber_profile_id,
                    metadata={
                        "pool_title": outcome.pool_title,
                        "subscription_id": event.subscription_id,
                    },
                ),
                MailContent(
                    subject="Subscription created receipt",
                    template="subscription-receipt",
                    context={
                        "subscriberName": outcome.subscriber_name,
                        "poolName": outcome.pool_title,
                        "subscriptionId": str(event.subscription_id),
                        "poolId": str(event.on_chain_pool_id),
                        "beneficiaryAddress": event.beneficiary,
                        "amount": str(event.amount),
                        "token": event.token,
                        "interval": event.interval,
                        "remainingPayments": event.total_payments,
                        "deadline": event.deadline,
                    },
                ),
            )
        return ReconcileResult(ReconcileStatus.APPLIED, "SubscriptionCreated")

    def _apply_subscription_created(self, event: SubscriptionCreated) -> _SubscriptionOutcome:
        chain_id = event.meta.chain_id
        with self._session_factory() as db:
            pool = find_pool_by_chain_id(db, chain_id, event.on_chain_pool_id)
            subscription = db.scalar(
                select(Subscription).where(
                    Subscription.chain_id == chain_id,
                    Subscription.on_chain_subscription_id == event.subscription_id,
                )
            )
            duplicate = subscription is not None
            if subscription is None:
                subscription = Subscription(
                    chain_id=chain_id,
                    on_chain_subscription_id=event.subscription_id,
                    active=True,
                    expired=False,
                    next_payment_time=0,
                )
                db.add(subscription)
            subscription.on_chain_pool_id = event.on_chain_pool_id
            subscription.pool_id = pool.id if pool else None
            subscription.subscriber = event.subscriber
            subscription.beneficiary = event.beneficiary
            subscription.token = event.token
            subscription.amount = str(event.amount)
            subscription.interval = event.interval
            subscription.deadline = event.deadline
            if not duplicate:
                subscription.remaining_payments = event.total_payments
            db.commit()

            subscriber = find_profile_by_address(db, event.subscriber)
            return _SubscriptionOutcome(
                duplicate=duplicate,
                pool_title=_pool_title(pool.title if pool else None),
                subscriber_profile_id=subscriber.id if subscriber else None,
                subscriber_name=subscriber.name if subscriber else None,
            )

    async def _on_unsubscribed(self, event: Unsubscribed) -> ReconcileResult:
        await asyncio.to_thread(
            self._update_subscription,
            event,
            None,
            {"active": False, "next_payment_time": 0, "remaining_payments": 0},
        )
        return ReconcileResult(ReconcileStatus.APPLIED, "Unsubscribed")

    async def _on_subscription_payment(
        self,
        event: SubscriptionPaymentSucceeded | SubscriptionPaymentFailed,
    ) -> ReconcileResult:
        await asyncio.to_thread(
            self._update_subscription,
            event,
            event.subscriber,
            {
                "remaining_payments": event.remaining_payments,
                "next_payment_time": event.next_payment_time,
            },
        )
        return ReconcileResult(ReconcileStatus.APPLIED, type(event).__name__)

    async def _on_subscription_expired(self, event: SubscriptionExpired) -> ReconcileResult:
        await asyncio.to_thread(
            self._update_subscription,
            event,
            event.subscriber,
            {"active": False, "expired": True, "next_payment_time": 0, "remaining_payments": 0},
        )
        return ReconcileResult(ReconcileStatus.APPLIED, "SubscriptionExpired")

    def _update_subscription(
        self,
        event: Unsubscribed
        | SubscriptionPaymentSucceeded
        | SubscriptionPaymentFailed
        | SubscriptionExpired,
        subscriber: str | None,
        values: dict[str, Any],
    ) -> None:
        with self._session_factory() as db:
            query = select(Subscription).where(
                Subscription.chain_id == event.meta.chain_id,
                Subscription.on_chain_subscription_id == event.subscription_id,
            )
            if subscriber is not None:
                query = query.where(func.lower(Subscription.subscriber) == subscriber.lower())
            subscription = db.scalar(query)
            if subscription is None:
                raise SubscriptionNotFoundError(
                    f"No subscription {event.subscription_id} on chain {event.meta.chain_id}"
                    + (f" for subscriber {subscriber}" if subscriber else "")
                )
            for key, value in values.items():
                setattr(subscription, key, value)
            db.commit()

