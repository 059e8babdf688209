# store/helpers.py
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple, Union

from tortoise.exceptions import BaseORMException, IntegrityError
from web3 import Web3

from decoder import DomainEvent, TransferEvent
from errors import StoreError
from .models import PoolEvent, Transfer

logger = logging.getLogger(__name__)

Record = Union[Transfer, PoolEvent]


def event_key(event: DomainEvent) -> str:
    """
    Natural key of the underlying log: tx hash + log index when the stream
    gives us one, else tx hash + emitting contract + kind.
    """
    if event.log_index is not None:
        return f"{event.transaction_hash}:{event.log_index}"
    return f"{event.transaction_hash}:{event.address}:{event.kind.value}"


def _raw(value: Optional[int]) -> Optional[str]:
    return str(int(value)) if value is not None else None


async def _create(event: DomainEvent, key: str, ts: datetime) -> Record:
    common = dict(
        event_key=key,
        kind=event.kind,
        block_number=event.block_number,
        block_hash=event.block_hash,
        tx_hash=event.transaction_hash,
        log_index=event.log_index,
        ts=ts,
    )
    if isinstance(event, TransferEvent):
        return await Transfer.create(
            token_address=event.token_address,
            account=event.account,
            amount_raw=str(event.amount),
            **common,
        )
    return await PoolEvent.create(
        pool_address=event.pool_address,
        token0_address=event.token0_address,
        token1_address=event.token1_address,
        sender=event.sender,
        recipient=event.recipient,
        amount0_raw=_raw(event.amount0),
        amount1_raw=_raw(event.amount1),
        sqrt_price_x96=_raw(event.sqrt_price_x96),
        liquidity=_raw(event.liquidity),
        tick=event.tick,
        **common,
    )


async def save_event(event: DomainEvent, ts: Optional[datetime] = None) -> Tuple[Record | None, bool]:
    """
    Returns (obj, created). Swallows duplicate via unique event_key.
    """
    key = event_key(event)
    model = Transfer if isinstance(event, TransferEvent) else PoolEvent
    try:
        obj = await _create(event, key, ts or datetime.now(timezone.utc))
        return obj, True
    except IntegrityError:
        logger.debug(f"Duplicate {event.kind.value} {key}, already stored")
        try:
            return await model.get_or_none(event_key=key), False
        except BaseORMException as e:
            raise StoreError(f"failed to load existing record {key}: {e}") from e
    except BaseORMException as e:
        raise StoreError(f"failed to save {event.kind.value} {key}: {e}") from e


async def _query(model, label: str, **filters) -> List[Record]:
    try:
        return await model.filter(**filters)
    except BaseORMException as e:
        raise StoreError(f"failed to get {label}: {e}") from e


async def transfers_by_account(address: str) -> List[Transfer]:
    return await _query(Transfer, "transactions", account=Web3.to_checksum_address(address))


async def transfers_by_token(address: str) -> List[Transfer]:
    return await _query(Transfer, "transactions", token_address=Web3.to_checksum_address(address))


async def pool_events(address: str) -> List[PoolEvent]:
    return await _query(PoolEvent, "pool transactions", pool_address=Web3.to_checksum_address(address))


class EventWriter:
    """
    Sink for the subscriber. Retries a failed save a few times with
    exponential backoff, then drops the event and raises the last StoreError.
    """

    def __init__(self, retries: int = 3, backoff: float = 0.5):
        self.retries = retries
        self.backoff = backoff
        self.saved = 0
        self.duplicates = 0
        self.dropped = 0

    async def save(self, event: DomainEvent) -> Record | None:
        attempt = 0
        while True:
            try:
                obj, created = await save_event(event)
            except StoreError as e:
                if attempt >= self.retries:
                    self.dropped += 1
                    logger.error(f"Dropping {event.kind.value} {event_key(event)} after {attempt + 1} attempts: {e}")
                    raise
                delay = self.backoff * (2 ** attempt)
                attempt += 1
                logger.warning(f"Save failed ({e}), retry {attempt}/{self.retries} in {delay:.1f}s")
                await asyncio.sleep(delay)
                continue

            if created:
                self.saved += 1
            else:
                self.duplicates += 1
            return obj
