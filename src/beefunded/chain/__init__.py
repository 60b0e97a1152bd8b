"""Contract event decoding and realtime chain subscriptions."""

from .events import ChainEvent, EventMeta, decode_event
from .listener import ChainState, ChainSubscriptionError, ChainSubscriptionManager

__all__ = [
    "ChainEvent", "EventMeta", "decode_event",
    "ChainState", "ChainSubscriptionError", "ChainSubscriptionManager",
]
