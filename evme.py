import asyncio
import logging
from collections.abc import Mapping
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Sequence

from web3 import AsyncWeb3, Web3, WebSocketProvider
from web3.exceptions import Web3Exception
from websockets.exceptions import WebSocketException

from abi.registry import ContractIdentity, by_address, needs_pool_tokens, resolve_pool_tokens
from decoder import WATCHED_TOPICS, DomainEvent, RawLogRecord, decode
from errors import MalformedEventError, NodeConnectionError, StoreError, SubscriptionError

logger = logging.getLogger(__name__)

Sink = Callable[[DomainEvent], Awaitable[Any]]

_STREAM_ERRORS = (OSError, asyncio.TimeoutError, WebSocketException, Web3Exception)


class SubscriptionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    TERMINATED = "terminated"


class Web3LogStream:
    """
    Live `eth_subscribe("logs")` over a node WebSocket.
    Any transport failure surfaces as NodeConnectionError.
    """

    def __init__(self, url: str):
        self.url = url

    @asynccontextmanager
    async def open(self, addresses: Sequence[str], topics: Sequence[str]) -> AsyncIterator[AsyncIterator[RawLogRecord]]:
        try:
            async with AsyncWeb3(WebSocketProvider(self.url)) as w3:
                sub_id = await w3.eth.subscribe(
                    "logs", {"address": list(addresses), "topics": [list(topics)]}
                )
                logger.info(f"Subscribed to logs on {self.url} (id {sub_id})")
                yield self._logs(w3)
        except _STREAM_ERRORS as e:
            raise NodeConnectionError(f"node stream {self.url} failed: {type(e).__name__}: {e}") from e

    async def resolve_contracts(self, contracts: Dict[str, ContractIdentity]) -> Dict[str, ContractIdentity]:
        """Ask the node for pool token pairs the deployment files left out."""
        if not any(needs_pool_tokens(c) for c in contracts.values()):
            return contracts
        try:
            async with AsyncWeb3(WebSocketProvider(self.url)) as w3:
                return await resolve_pool_tokens(w3, contracts)
        except _STREAM_ERRORS as e:
            raise NodeConnectionError(f"node {self.url} failed while resolving pools: {type(e).__name__}: {e}") from e

    async def _logs(self, w3: AsyncWeb3) -> AsyncIterator[RawLogRecord]:
        async for payload in w3.socket.process_subscriptions():
            result = payload.get("result") if isinstance(payload, Mapping) else None
            if result:
                yield RawLogRecord.from_rpc(result)


class EventSubscriber:
    """
    Owns the node subscription for the lifetime of the process.

    DISCONNECTED -> CONNECTING -> SUBSCRIBED -> DISCONNECTED (stream error)
                                             -> TERMINATED (stop requested)

    A session only ends the failure streak once it has delivered a log or
    stayed up for `healthy_after` seconds, so a node that accepts the
    subscription and drops it straight away still backs off and gives up.

    Each delivered log is decoded and handed to the sink before the next one
    is read, so events reach the store in stream order and a slow store
    slows the subscription down instead of piling logs up in memory.
    """

    def __init__(
        self,
        contracts: Dict[str, ContractIdentity],
        stream,
        sink: Sink,
        reconnect_delay: float = 1.0,
        max_reconnect_delay: float = 60.0,
        max_reconnects: int = 10,
        healthy_after: float = 30.0,
    ):
        self.contracts = by_address(contracts)
        self.stream = stream
        self.sink = sink
        self.reconnect_delay = reconnect_delay
        self.max_reconnect_delay = max_reconnect_delay
        self.max_reconnects = max_reconnects
        self.healthy_after = healthy_after

        # fixed for the process lifetime
        self.addresses: List[str] = sorted(self.contracts)
        self.topics: List[str] = list(WATCHED_TOPICS)

        self.state = SubscriptionState.DISCONNECTED
        self.failures = 0
        self._subscribed_at: Optional[float] = None
        self.received = 0
        self.persisted = 0
        self.skipped = 0

    def backoff_delay(self, failures: int) -> float:
        if failures <= 0:
            return 0.0
        return min(self.reconnect_delay * (2 ** (failures - 1)), self.max_reconnect_delay)

    async def start(self, stop: asyncio.Event) -> None:
        """
        Run until `stop` is set. Raises SubscriptionError once more than
        `max_reconnects` connection attempts in a row have failed.
        """
        logger.info(f"Watching {len(self.addresses)} contracts for {len(self.topics)} event signatures")
        try:
            while not stop.is_set():
                self.state = SubscriptionState.CONNECTING
                self._subscribed_at = None
                try:
                    await self._run_session(stop)
                except NodeConnectionError as e:
                    self.state = SubscriptionState.DISCONNECTED
                    if self._stayed_up():
                        self.failures = 0
                    self.failures += 1
                    if self.failures > self.max_reconnects:
                        raise SubscriptionError(
                            f"giving up after {self.failures} failed connection attempts: {e}"
                        ) from e
                    delay = self.backoff_delay(self.failures)
                    logger.warning(
                        f"Stream error: {e}. Reconnect {self.failures}/{self.max_reconnects} in {delay:.1f}s"
                    )
                    await _sleep_or_stop(stop, delay)
        except asyncio.CancelledError:
            logger.info("Subscription cancelled.")
            raise
        finally:
            self.state = SubscriptionState.TERMINATED
        logger.info(
            f"Subscription stopped: received={self.received} persisted={self.persisted} skipped={self.skipped}"
        )

    async def _run_session(self, stop: asyncio.Event) -> None:
        async with self.stream.open(self.addresses, self.topics) as logs:
            self.state = SubscriptionState.SUBSCRIBED
            self._subscribed_at = asyncio.get_running_loop().time()
            while not stop.is_set():
                raw = await _next_or_stop(logs, stop)
                if raw is None:
                    return
                self.failures = 0
                await self.handle(raw)

    def _stayed_up(self) -> bool:
        if self._subscribed_at is None:
            return False
        return asyncio.get_running_loop().time() - self._subscribed_at >= self.healthy_after

    async def handle(self, raw: RawLogRecord) -> Optional[DomainEvent]:
        """
        Decode one log and push it to the sink. Errors that only concern this
        log are logged and the log is skipped.
        """
        self.received += 1
        identity = self.contracts.get(Web3.to_checksum_address(raw.address))
        if identity is None:
            logger.debug(f"Ignoring log from untracked contract {raw.address}")
            return None

        try:
            event = decode(raw, identity)
        except MalformedEventError as e:
            self.skipped += 1
            logger.warning(f"Dropping malformed log from {identity.name} ({raw.address}): {e}")
            return None
        if event is None:
            return None

        try:
            await self.sink(event)
        except StoreError as e:
            self.skipped += 1
            logger.error(f"Failed to persist {event.kind.value} in tx {event.transaction_hash}: {e}")
            return None

        self.persisted += 1
        logger.info(
            f"[{event.kind.value}] blk {event.block_number} | {identity.name} | tx {event.transaction_hash}"
        )
        return event


async def _next(logs: AsyncIterator[RawLogRecord]) -> RawLogRecord:
    try:
        return await logs.__anext__()
    except StopAsyncIteration:
        raise NodeConnectionError("node closed the log stream")


async def _next_or_stop(logs: AsyncIterator[RawLogRecord], stop: asyncio.Event) -> Optional[RawLogRecord]:
    """Wait for the next log; None if stop fires first."""
    next_log = asyncio.ensure_future(_next(logs))
    stopped = asyncio.ensure_future(stop.wait())
    try:
        await asyncio.wait({next_log, stopped}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        stopped.cancel()
        if not next_log.done():
            next_log.cancel()
            await asyncio.wait({next_log})
    if next_log.cancelled():
        return None
    return next_log.result()


async def _sleep_or_stop(stop: asyncio.Event, delay: float) -> None:
    try:
        await asyncio.wait_for(stop.wait(), timeout=delay)
    except asyncio.TimeoutError:
        pass
