"""Typed contract events.

Raw log arguments are decoded into one frozen dataclass per event kind at the
transport boundary; everything downstream works with :data:`ChainEvent`.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from eth_utils import to_checksum_address


class UnknownEventError(ValueError):
    """Raised when a log carries an event name no decoder is registered for."""


@dataclass(frozen=True)
class EventMeta:
    """Where a log came from; (chain_id, tx_hash, log_index) identifies it."""

    chain_id: int
    tx_hash: str
    log_index: int
    block_number: int | None = None


@dataclass(frozen=True)
class PoolCreated:
    meta: EventMeta
    on_chain_id: int
    owner_address: str
    id_hash: str


@dataclass(frozen=True)
class DonationSucceeded:
    meta: EventMeta
    on_chain_pool_id: int
    donor_address: str
    token: str
    amount: int
    message: str
    is_recurring: bool


@dataclass(frozen=True)
class DonationFailed:
    meta: EventMeta
    on_chain_pool_id: int
    donor_address: str
    token: str
    amount: int
    message: str


@dataclass(frozen=True)
class SubscriptionCreated:
    meta: EventMeta
    subscription_id: int
    on_chain_pool_id: int
    subscriber: str
    beneficiary: str
    token: str
    amount: int
    interval: int
    total_payments: int
    deadline: int


@dataclass(frozen=True)
class Unsubscribed:
    meta: EventMeta
    subscription_id: int
    on_chain_pool_id: int


@dataclass(frozen=True)
class SubscriptionPaymentSucceeded:
    meta: EventMeta
    subscription_id: int
    subscriber: str
    remaining_payments: int
    next_payment_time: int


@dataclass(frozen=True)
class SubscriptionPaymentFailed:
    meta: EventMeta
    subscription_id: int
    subscriber: str
    remaining_payments: int
    next_payment_time: int


@dataclass(frozen=True)
class SubscriptionExpired:
    meta: EventMeta
    subscription_id: int
    subscriber: str
    beneficiary: str


ChainEvent = (
    PoolCreated
    | DonationSucceeded
    | DonationFailed
    | SubscriptionCreated
    | Unsubscribed
    | SubscriptionPaymentSucceeded
    | SubscriptionPaymentFailed
    | SubscriptionExpired
)

EVENT_TYPES: tuple[type, ...] = (
    PoolCreated,
    DonationSucceeded,
    DonationFailed,
    SubscriptionCreated,
    Unsubscribed,
    SubscriptionPaymentSucceeded,
    SubscriptionPaymentFailed,
    SubscriptionExpired,
)


def uint256_to_hex(value: int) -> str:
    """Render a uint256 as a 0x-prefixed, zero-padded 32 byte hex string."""
    return "0x" + format(value, "064x")


def _address(value: Any) -> str:
    return to_checksum_address(value)


def _pool_created(args: Mapping[str, Any], meta: EventMeta) -> PoolCreated:
    return PoolCreated(
        meta=meta,
        on_chain_id=int(args["id"]),
        owner_address=_address(args["creator"]),
        id_hash=uint256_to_hex(int(args["metadataId"])),
    )


def _donation_success(args: Mapping[str, Any], meta: EventMeta) -> DonationSucceeded:
    return DonationSucceeded(
        meta=meta,
        on_chain_pool_id=int(args["poolId"]),
        donor_address=_address(args["donor"]),
        token=_address(args["token"]),
        amount=int(args["amount"]),
        message=str(args.get("message") or ""),
        is_recurring=bool(args.get("recuring", False)),
    )


def _donation_failed(args: Mapping[str, Any], meta: EventMeta) -> DonationFailed:
    return DonationFailed(
        meta=meta,
        on_chain_pool_id=int(args["poolId"]),
        donor_address=_address(args["donor"]),
        token=_address(args["token"]),
        amount=int(args["amount"]),
        message=str(args.get("message") or ""),
    )


def _subscription_created(args: Mapping[str, Any], meta: EventMeta) -> SubscriptionCreated:
    return SubscriptionCreated(
        meta=meta,
        subscription_id=int(args["subscriptionId"]),
        on_chain_pool_id=int(args["poolId"]),
        subscriber=_address(args["subscriber"]),
        beneficiary=_address(args["beneficiary"]),
        token=_address(args["token"]),
        amount=int(args["amount"]),
        interval=int(args["interval"]),
        total_payments=int(args["totalPayments"]),
        deadline=int(args["deadline"]),
    )


def _unsubscribed(args: Mapping[str, Any], meta: EventMeta) -> Unsubscribed:
    return Unsubscribed(
        meta=meta,
        subscription_id=int(args["subscriptionId"]),
        on_chain_pool_id=int(args["poolId"]),
    )


def _payment_success(
    args: Mapping[str, Any], meta: EventMeta
) -> SubscriptionPaymentSucceeded:
    return SubscriptionPaymentSucceeded(
        meta=meta,
        subscription_id=int(args["subscriptionId"]),
        subscriber=_address(args["subscriber"]),
        remaining_payments=int(args["remainingPayments"]),
        next_payment_time=int(args["nextPaymentTime"]),
    )


def _payment_failed(args: Mapping[str, Any], meta: EventMeta) -> SubscriptionPaymentFailed:
    return SubscriptionPaymentFailed(
        meta=meta,
        subscription_id=int(args["subscriptionId"]),
        subscriber=_address(args["subscriber"]),
        remaining_payments=int(args["remainingPayments"]),
        next_payment_time=int(args["nextPaymentTime"]),
    )


def _subscription_expired(args: Mapping[str, Any], meta: EventMeta) -> SubscriptionExpired:
    return SubscriptionExpired(
        meta=meta,
        subscription_id=int(args["subscriptionId"]),
        subscriber=_address(args["subscriber"]),
        beneficiary=_address(args["beneficiary"]),
    )


_DECODERS: dict[str, Callable[[Mapping[str, Any], EventMeta], Any]] = {
    "DonationPoolCreated": _pool_created,
    "DonationSuccess": _donation_success,
    "DonationFailed": _donation_failed,
    "SubscriptionCreated": _subscription_created,
    "Unsubscribed": _unsubscribed,
    "SubscriptionPaymentSuccess": _payment_success,
    "SubscriptionPaymentFailed": _payment_failed,
    "SubscriptionExpired": _subscription_expired,
}

EVENT_NAMES: tuple[str, ...] = tuple(_DECODERS)


def decode_event(name: str, args: Mapping[str, Any], meta: EventMeta) -> ChainEvent:
    """Build the typed event for the ABI event ``name``.

    Raises:
        UnknownEventError: ``name`` is not a BeeFunded event.
        KeyError: A required argument is missing from ``args``.
    """
    decoder = _DECODERS.get(name)
    if decoder is None:
        raise UnknownEventError(f"Unknown contract event: {name}")
    event: ChainEvent = decoder(args, meta)
    return event
