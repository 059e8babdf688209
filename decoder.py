"""
Signature-driven decoding of raw logs into typed events.

Only a fixed set of signatures is understood: the ERC-20 Transfer (read as
mint/burn) and the Uniswap V3 pool events. Everything else decodes to None.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError
from hexbytes import HexBytes
from web3 import Web3

from abi.registry import ContractIdentity
from errors import MalformedEventError

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
WORD = 32


class EventKind(str, Enum):
    MINT = "Mint"
    BURN = "Burn"
    SWAP = "Swap"
    COLLECT = "Collect"
    FLASH = "Flash"


@dataclass(frozen=True)
class RawLogRecord:
    transaction_hash: str
    block_number: int
    block_hash: str
    address: str
    topics: Tuple[HexBytes, ...]
    data: HexBytes
    log_index: Optional[int] = None

    @classmethod
    def from_rpc(cls, log: Any) -> "RawLogRecord":
        """
        Build from a JSON-RPC log object. Works with a plain dict of hex
        strings or a web3 AttributeDict holding HexBytes / ints.
        """
        log_index = _get(log, "logIndex")
        return cls(
            transaction_hash=_hex(_get(log, "transactionHash")),
            block_number=_int(_get(log, "blockNumber", 0)),
            block_hash=_hex(_get(log, "blockHash")),
            address=Web3.to_checksum_address(_get(log, "address")),
            topics=tuple(HexBytes(t) for t in _get(log, "topics", [])),
            data=HexBytes(_get(log, "data") or b""),
            log_index=_int(log_index) if log_index is not None else None,
        )


@dataclass(frozen=True)
class TransferEvent:
    transaction_hash: str
    block_number: int
    block_hash: str
    log_index: Optional[int]
    kind: EventKind  # Mint or Burn only
    token_address: str
    account: str
    amount: int

    @property
    def address(self) -> str:
        return self.token_address


@dataclass(frozen=True)
class PoolEvent:
    transaction_hash: str
    block_number: int
    block_hash: str
    log_index: Optional[int]
    kind: EventKind
    pool_address: str
    token0_address: Optional[str]
    token1_address: Optional[str]
    sender: str
    recipient: Optional[str] = None
    amount0: Optional[int] = None
    amount1: Optional[int] = None
    sqrt_price_x96: Optional[int] = None
    liquidity: Optional[int] = None
    tick: Optional[int] = None

    @property
    def address(self) -> str:
        return self.pool_address


DomainEvent = Union[TransferEvent, PoolEvent]


def _get(log: Any, key: str, default=None):
    try:
        return log[key]
    except (KeyError, TypeError):
        return getattr(log, key, default)


def _hex(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (bytes, bytearray)):
        return Web3.to_hex(value)
    return str(value).lower()


def _int(value: Any) -> int:
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    return int(value)


def _signature(text: str) -> str:
    return Web3.to_hex(Web3.keccak(text=text))


TRANSFER = _signature("Transfer(address,address,uint256)")
POOL_MINT = _signature("Mint(address,address,int24,int24,uint128,uint256,uint256)")
POOL_BURN = _signature("Burn(address,int24,int24,uint128,uint256,uint256)")
POOL_SWAP = _signature("Swap(address,address,int256,int256,uint160,uint128,int24)")
POOL_COLLECT = _signature("Collect(address,address,int24,int24,uint128,uint128)")
POOL_FLASH = _signature("Flash(address,address,uint256,uint256,uint256,uint256)")


def _require_topics(log: RawLogRecord, count: int, name: str) -> None:
    if len(log.topics) < count:
        raise MalformedEventError(
            f"{name} log in tx {log.transaction_hash} has {len(log.topics)} topics, expected {count}"
        )


def _topic_address(log: RawLogRecord, index: int) -> str:
    topic = log.topics[index]
    if len(topic) != WORD:
        raise MalformedEventError(
            f"topic {index} in tx {log.transaction_hash} is {len(topic)} bytes, expected {WORD}"
        )
    return Web3.to_checksum_address("0x" + bytes(topic[-20:]).hex())


def _words(log: RawLogRecord, types: List[str], name: str) -> Sequence[Any]:
    size = WORD * len(types)
    if len(log.data) < size:
        raise MalformedEventError(
            f"{name} log in tx {log.transaction_hash} carries {len(log.data)} data bytes, expected {size}"
        )
    try:
        return abi_decode(types, bytes(log.data[:size]))
    except DecodingError as e:
        raise MalformedEventError(f"{name} log in tx {log.transaction_hash}: {e}") from e


def _transfer(log: RawLogRecord, identity: ContractIdentity) -> Optional[TransferEvent]:
    _require_topics(log, 3, "Transfer")
    sender = _topic_address(log, 1)
    receiver = _topic_address(log, 2)
    if sender == ZERO_ADDRESS:
        kind, account = EventKind.MINT, receiver
    elif receiver == ZERO_ADDRESS:
        kind, account = EventKind.BURN, sender
    else:
        # plain transfer between holders
        return None

    (amount,) = _words(log, ["uint256"], "Transfer")
    return TransferEvent(
        transaction_hash=log.transaction_hash,
        block_number=log.block_number,
        block_hash=log.block_hash,
        log_index=log.log_index,
        kind=kind,
        token_address=Web3.to_checksum_address(log.address),
        account=account,
        amount=int(amount),
    )


def _pool_event(log: RawLogRecord, identity: ContractIdentity, kind: EventKind, **fields) -> PoolEvent:
    return PoolEvent(
        transaction_hash=log.transaction_hash,
        block_number=log.block_number,
        block_hash=log.block_hash,
        log_index=log.log_index,
        kind=kind,
        pool_address=Web3.to_checksum_address(log.address),
        token0_address=identity.token0,
        token1_address=identity.token1,
        **fields,
    )


def _pool_mint(log: RawLogRecord, identity: ContractIdentity) -> PoolEvent:
    _require_topics(log, 4, "Mint")
    owner = _topic_address(log, 1)
    sender, liquidity, amount0, amount1 = _words(
        log, ["address", "uint128", "uint256", "uint256"], "Mint"
    )
    return _pool_event(
        log, identity, EventKind.MINT,
        sender=Web3.to_checksum_address(sender),
        recipient=owner,
        liquidity=liquidity,
        amount0=amount0,
        amount1=amount1,
    )


def _pool_burn(log: RawLogRecord, identity: ContractIdentity) -> PoolEvent:
    _require_topics(log, 4, "Burn")
    liquidity, amount0, amount1 = _words(log, ["uint128", "uint256", "uint256"], "Burn")
    return _pool_event(
        log, identity, EventKind.BURN,
        sender=_topic_address(log, 1),
        liquidity=liquidity,
        amount0=amount0,
        amount1=amount1,
    )


def _pool_swap(log: RawLogRecord, identity: ContractIdentity) -> PoolEvent:
    _require_topics(log, 3, "Swap")
    amount0, amount1, sqrt_price_x96, liquidity, tick = _words(
        log, ["int256", "int256", "uint160", "uint128", "int24"], "Swap"
    )
    return _pool_event(
        log, identity, EventKind.SWAP,
        sender=_topic_address(log, 1),
        recipient=_topic_address(log, 2),
        amount0=amount0,
        amount1=amount1,
        sqrt_price_x96=sqrt_price_x96,
        liquidity=liquidity,
        tick=tick,
    )


def _pool_collect(log: RawLogRecord, identity: ContractIdentity) -> PoolEvent:
    _require_topics(log, 4, "Collect")
    recipient, amount0, amount1 = _words(log, ["address", "uint128", "uint128"], "Collect")
    return _pool_event(
        log, identity, EventKind.COLLECT,
        sender=_topic_address(log, 1),
        recipient=Web3.to_checksum_address(recipient),
        amount0=amount0,
        amount1=amount1,
    )


def _pool_flash(log: RawLogRecord, identity: ContractIdentity) -> PoolEvent:
    _require_topics(log, 3, "Flash")
    # paid0/paid1 follow the borrowed amounts and are not kept
    amount0, amount1, _, _ = _words(log, ["uint256", "uint256", "uint256", "uint256"], "Flash")
    return _pool_event(
        log, identity, EventKind.FLASH,
        sender=_topic_address(log, 1),
        recipient=_topic_address(log, 2),
        amount0=amount0,
        amount1=amount1,
    )


DECODERS: Dict[str, Callable[[RawLogRecord, ContractIdentity], Optional[DomainEvent]]] = {
    TRANSFER: _transfer,
    POOL_MINT: _pool_mint,
    POOL_BURN: _pool_burn,
    POOL_SWAP: _pool_swap,
    POOL_COLLECT: _pool_collect,
    POOL_FLASH: _pool_flash,
}

WATCHED_TOPICS: Tuple[str, ...] = tuple(DECODERS)


def decode(log: RawLogRecord, identity: ContractIdentity) -> Optional[DomainEvent]:
    """
    Map one raw log to a TransferEvent / PoolEvent, or None when the log is
    not one we track. Raises MalformedEventError when a known signature
    arrives with a payload that does not fit its layout.
    """
    if not log.topics:
        return None
    strategy = DECODERS.get(Web3.to_hex(log.topics[0]))
    if strategy is None:
        return None
    return strategy(log, identity)
