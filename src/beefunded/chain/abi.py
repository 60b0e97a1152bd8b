"""Event ABI fragments of the BeeFunded contracts.

Only events are listed; the backend never calls contract functions.
"""

from __future__ import annotations

from typing import Any


def _arg(name: str, type_: str, indexed: bool = False) -> dict[str, Any]:
    return {"name": name, "type": type_, "indexed": indexed, "internalType": type_}


def _event(name: str, *inputs: dict[str, Any]) -> dict[str, Any]:
    return {"type": "event", "name": name, "anonymous": False, "inputs": list(inputs)}


DONATION_POOL_CREATED = _event(
    "DonationPoolCreated",
    _arg("id", "uint256", indexed=True),
    _arg("creator", "address", indexed=True),
    _arg("metadataId", "uint256", indexed=True),
)

DONATION_SUCCESS = _event(
    "DonationSuccess",
    _arg("poolId", "uint256", indexed=True),
    _arg("donor", "address", indexed=True),
    _arg("token", "address", indexed=True),
    _arg("amount", "uint256"),
    _arg("message", "string"),
    _arg("recuring", "bool"),
)

DONATION_FAILED = _event(
    "DonationFailed",
    _arg("poolId", "uint256", indexed=True),
    _arg("donor", "address", indexed=True),
    _arg("token", "address", indexed=True),
    _arg("amount", "uint256"),
    _arg("message", "string"),
)

SUBSCRIPTION_CREATED = _event(
    "SubscriptionCreated",
    _arg("subscriptionId", "uint256", indexed=True),
    _arg("poolId", "uint256", indexed=True),
    _arg("subscriber", "address", indexed=True),
    _arg("beneficiary", "address"),
    _arg("token", "address"),
    _arg("amount", "uint256"),
    _arg("interval", "uint256"),
    _arg("totalPayments", "uint256"),
    _arg("deadline", "uint256"),
)

UNSUBSCRIBED = _event(
    "Unsubscribed",
    _arg("subscriptionId", "uint256", indexed=True),
    _arg("poolId", "uint256", indexed=True),
)

_PAYMENT_INPUTS = (
    _arg("subscriptionId", "uint256", indexed=True),
    _arg("subscriber", "address", indexed=True),
    _arg("remainingPayments", "uint256", indexed=True),
    _arg("nextPaymentTime", "uint256"),
)

SUBSCRIPTION_PAYMENT_SUCCESS = _event("SubscriptionPaymentSuccess", *_PAYMENT_INPUTS)
SUBSCRIPTION_PAYMENT_FAILED = _event("SubscriptionPaymentFailed", *_PAYMENT_INPUTS)

SUBSCRIPTION_EXPIRED = _event(
    "SubscriptionExpired",
    _arg("subscriptionId", "uint256", indexed=True),
    _arg("subscriber", "address", indexed=True),
    _arg("beneficiary", "address", indexed=True),
)

# Which contract emits which events, keyed by the ContractAddresses field name.
CONTRACT_EVENTS: dict[str, list[dict[str, Any]]] = {
    "bee_funded_core": [DONATION_POOL_CREATED],
    "donation_manager": [DONATION_SUCCESS, DONATION_FAILED],
    "subscription_manager": [SUBSCRIPTION_CREATED, UNSUBSCRIBED],
    "automation_upkeep": [
        SUBSCRIPTION_PAYMENT_SUCCESS,
        SUBSCRIPTION_PAYMENT_FAILED,
        SUBSCRIPTION_EXPIRED,
    ],
}
