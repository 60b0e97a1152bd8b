"""Realtime log subscriptions against every configured chain.

Each chain gets one websocket connection and one ``logs`` subscription covering
all BeeFunded contracts. Logs are decoded into typed events and handed to the
reconciler. The first connection is made during application startup and any
failure there is fatal; later drops are retried with exponential backoff.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from enum import Enum
from typing import Any

from eth_utils import event_abi_to_log_topic, to_checksum_address
from web3 import AsyncWeb3, Web3, WebSocketProvider

from beefunded.chain.abi import CONTRACT_EVENTS
from beefunded.chain.events import ChainEvent, EventMeta, UnknownEventError, decode_event
from beefunded.core.settings import ChainConfig, settings

logger = logging.getLogger(__name__)

EventHandler = Callable[[ChainEvent], Awaitable[Any]]
Web3Factory = Callable[[str], AsyncWeb3]


class ChainState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"


class ChainSubscriptionError(RuntimeError):
    """Raised when the initial subscriptions cannot be established."""


def _default_web3_factory(ws_url: str) -> AsyncWeb3:
    return AsyncWeb3(WebSocketProvider(ws_url))


def _to_bytes(value: Any) -> bytes:
    if isinstance(value, str):
        return Web3.to_bytes(hexstr=value)
    return bytes(value)


class ChainSubscription:
    """Connection and log subscription for a single chain."""

    def __init__(
        self,
        chain: ChainConfig,
        handler: EventHandler,
        *,
        initial_delay: float | None = None,
        max_delay: float | None = None,
        web3_factory: Web3Factory = _default_web3_factory,
    ) -> None:
        self.chain = chain
        self.state = ChainState.DISCONNECTED
        self.initial_delay = (
            settings.chain_reconnect_initial_delay if initial_delay is None else initial_delay
        )
        self.max_delay = settings.chain_reconnect_max_delay if max_delay is None else max_delay
        self._handler = handler
        self._web3_factory = web3_factory
        self._w3: AsyncWeb3 | None = None
        self._subscription_id: str | None = None
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()
        # Decoding never touches the network, so a provider-less instance is enough.
        self._decoder = Web3()
        self._routes = self._build_routes()

    @property
    def chain_id(self) -> int:
        return self.chain.chain_id

    def _build_routes(self) -> dict[tuple[str, bytes], tuple[Any, str]]:
        """Map (contract address, topic0) to the contract object and event name."""
        routes: dict[tuple[str, bytes], tuple[Any, str]] = {}
        for field_name, abi in CONTRACT_EVENTS.items():
            address = to_checksum_address(getattr(self.chain.contracts, field_name))
            contract = self._decoder.eth.contract(address=address, abi=abi)
            for event_abi in abi:
                topic = event_abi_to_log_topic(event_abi)
                routes[(address.lower(), bytes(topic))] = (contract, event_abi["name"])
        return routes

    def log_filter(self) -> dict[str, Any]:
        """Filter params for ``eth_subscribe('logs', ...)`` covering every route."""
        addresses = sorted({address for address, _ in self._routes})
        topics = sorted({Web3.to_hex(topic) for _, topic in self._routes})
        return {
            "address": [to_checksum_address(address) for address in addresses],
            "topics": [topics],
        }

    def backoff_delay(self, attempt: int) -> float:
        """Delay before reconnect ``attempt`` (0-based): doubling, capped at ``max_delay``."""
        return float(min(self.initial_delay * (2**attempt), self.max_delay))

    # --- Lifecycle -------------------------------------------------------------
    async def connect(self) -> None:
        """Open the websocket and (re-)create the logs subscription."""
        self.state = ChainState.CONNECTING
        logger.info("Connecting to %s (chain %s)", self.chain.chain_name, self.chain_id)
        try:
            w3 = self._web3_factory(self.chain.ws_url)
            self._w3 = w3
            await w3.provider.connect()
            self._subscription_id = await w3.eth.subscribe("logs", self.log_filter())
        except Exception:
            self.state = ChainState.DISCONNECTED
            await self._close()
            raise
        self.state = ChainState.SUBSCRIBED
        logger.info(
            "Subscribed to BeeFunded logs on chain %s (subscription %s)",
            self.chain_id,
            self._subscription_id,
        )

    async def start(self) -> None:
        """Connect once and keep consuming in a background task.

        The initial connection error propagates to the caller.
        """
        await self.connect()
        self._stopping.clear()
        self._task = asyncio.create_task(self._run(), name=f"chain-listener-{self.chain_id}")

    async def stop(self) -> None:
        self._stopping.set()
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        await self._close()
        self.state = ChainState.DISCONNECTED

    async def _close(self) -> None:
        w3, self._w3 = self._w3, None
        self._subscription_id = None
        if w3 is None:
            return
        try:
            await w3.provider.disconnect()
        except Exception as err:
            logger.warning("Error while closing connection to chain %s: %s", self.chain_id, err)

    async def _run(self) -> None:
        attempt = 0
        while not self._stopping.is_set():
            try:
                if self.state is not ChainState.SUBSCRIBED:
                    await self.connect()
                    attempt = 0
                await self._consume()
                if self._stopping.is_set():
                    return
                raise ConnectionError("Subscription stream ended")
            except asyncio.CancelledError:
                raise
            except Exception as err:
                if self._stopping.is_set():
                    return
                self.state = ChainState.DISCONNECTED
                await self._close()
                delay = self.backoff_delay(attempt)
                attempt += 1
                logger.warning(
                    "Lost subscription on chain %s (%s); reconnecting in %.1fs",
                    self.chain_id,
                    err,
                    delay,
                )
                with contextlib.suppress(TimeoutError):
                    await asyncio.wait_for(self._stopping.wait(), timeout=delay)

    async def _consume(self) -> None:
        if self._w3 is None:
            raise ConnectionError("Not connected")
        async for message in self._w3.socket.process_subscriptions():
            log = message.get("result", message) if isinstance(message, Mapping) else message
            await self.dispatch_log(log)

    # --- Decoding --------------------------------------------------------------
    def decode_log(self, log: Mapping[str, Any]) -> ChainEvent | None:
        """Turn a raw log into a typed event, or None when it is not one of ours."""
        topics = log.get("topics") or []
        if not topics:
            return None
        route = self._routes.get((str(log["address"]).lower(), _to_bytes(topics[0])))
        if route is None:
            return None
        contract, name = route
        data = contract.events[name]().process_log(log)
        meta = EventMeta(
            chain_id=self.chain_id,
            tx_hash=Web3.to_hex(_to_bytes(data["transactionHash"])),
            log_index=int(data["logIndex"]),
            block_number=(
                int(data["blockNumber"]) if data.get("blockNumber") is not None else None
            ),
        )
        return decode_event(data["event"], data["args"], meta)

    async def dispatch_log(self, log: Mapping[str, Any]) -> None:
        """Decode ``log`` and hand it to the handler; bad logs are logged and skipped."""
        if log.get("removed"):
            logger.warning(
                "Ignoring removed log %s on chain %s", log.get("transactionHash"), self.chain_id
            )
            return
        try:
            event = self.decode_log(log)
        except (UnknownEventError, ValueError, KeyError, TypeError) as err:
            logger.warning("Could not decode log on chain %s: %s", self.chain_id, err)
            return
        if event is None:
            logger.debug("Ignoring unrelated log on chain %s", self.chain_id)
            return
        try:
            await self._handler(event)
        except Exception as err:
            logger.error(
                "Event handler failed for %s on chain %s: %s",
                type(event).__name__,
                self.chain_id,
                err,
                exc_info=True,
            )


class ChainSubscriptionManager:
    """Starts and stops one :class:`ChainSubscription` per configured chain."""

    def __init__(
        self,
        chains: Iterable[ChainConfig],
        handler: EventHandler,
        **subscription_options: Any,
    ) -> None:
        self.subscriptions = [
            ChainSubscription(chain, handler, **subscription_options) for chain in chains
        ]

    @property
    def states(self) -> dict[int, ChainState]:
        return {sub.chain_id: sub.state for sub in self.subscriptions}

    async def start(self) -> None:
        """Connect every chain concurrently.

        Raises:
            ChainSubscriptionError: Any chain failed its initial connection; the
                chains that did connect are closed again.
        """
        results = await asyncio.gather(
            *(sub.start() for sub in self.subscriptions),
            return_exceptions=True,
        )
        failures = [
            (sub, result)
            for sub, result in zip(self.subscriptions, results, strict=True)
            if isinstance(result, BaseException)
        ]
        if failures:
            await self.stop()
            chain_ids = ", ".join(str(sub.chain_id) for sub, _ in failures)
            raise ChainSubscriptionError(
                f"Could not subscribe to chain(s) {chain_ids}"
            ) from failures[0][1]
        logger.info("Chain listeners running for %d chain(s)", len(self.subscriptions))

    async def stop(self) -> None:
        """Cancel every listener and close all connections before returning."""
        await asyncio.gather(*(sub.stop() for sub in self.subscriptions))
