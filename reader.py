"""
Summaries over stored events, and the four read operations the HTTP layer
exposes. All amounts stay Python ints until they are rendered.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from web3 import Web3

from decoder import EventKind
from errors import QueryError, StoreError
from store import helpers

ETHER_DECIMALS = 18
VOLUME_WINDOW = timedelta(hours=24)


def format_amount(raw: int, decimals: int = ETHER_DECIMALS) -> str:
    """
    Render a raw integer amount as a fixed-point string, exactly.
    Example: 1500000000000000000 -> "1.500000000000000000"
             -2000000000000000000 -> "-2.000000000000000000"
    """
    value = int(raw)
    sign = "-" if value < 0 else ""
    whole, frac = divmod(abs(value), 10 ** decimals)
    if decimals == 0:
        return f"{sign}{whole}"
    return f"{sign}{whole}.{str(frac).zfill(decimals)}"


def _aware(ts: Optional[datetime]) -> Optional[datetime]:
    if ts is not None and ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


def account_summary(address: str, records: Iterable[Any]) -> Dict[str, Any]:
    tokens: Dict[str, Dict[str, int]] = {}
    total_minted = 0
    total_burned = 0

    for r in records:
        amount = int(r.amount_raw)
        token = tokens.setdefault(r.token_address, {"minted": 0, "burned": 0})
        if r.kind == EventKind.MINT:
            token["minted"] += amount
            total_minted += amount
        elif r.kind == EventKind.BURN:
            token["burned"] += amount
            total_burned += amount

    return {
        "account_address": address,
        "tokens": [
            {
                "token_address": token_address,
                "total_minted": format_amount(t["minted"]),
                "total_burned": format_amount(t["burned"]),
                # negative means the ledger is missing mints; keep it visible
                "current_balance": format_amount(t["minted"] - t["burned"]),
            }
            for token_address, t in sorted(tokens.items())
        ],
        "total_minted": format_amount(total_minted),
        "total_burned": format_amount(total_burned),
        "net_balance": format_amount(total_minted - total_burned),
    }


def pool_status(address: str, records: Iterable[Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    now = _aware(now) or datetime.now(timezone.utc)
    since = now - VOLUME_WINDOW

    status: Dict[str, Any] = {
        "pool_address": address,
        "token0_address": None,
        "token1_address": None,
        # no pricing model yet
        "current_price": None,
        "tvl": None,
        "volume_24h": "0",
        "total_swaps": 0,
        "total_mints": 0,
        "total_burns": 0,
        "last_updated": now.isoformat(),
    }
    volume = 0
    seen_first = False

    for r in records:
        if not seen_first:
            status["token0_address"] = r.token0_address
            status["token1_address"] = r.token1_address
            seen_first = True

        if r.kind == EventKind.SWAP:
            status["total_swaps"] += 1
            ts = _aware(r.ts)
            if ts is not None and ts > since and r.amount0_raw is not None:
                volume += int(r.amount0_raw)
        elif r.kind == EventKind.MINT:
            status["total_mints"] += 1
        elif r.kind == EventKind.BURN:
            status["total_burns"] += 1

    status["volume_24h"] = str(volume)
    return status


def transfer_to_dict(t: Any) -> Dict[str, Any]:
    ts = _aware(t.ts)
    return {
        "id": str(t.id),
        "account_address": t.account,
        "token_address": t.token_address,
        "amount": t.amount_raw,
        "amount_in_ether": format_amount(int(t.amount_raw)),
        "tx_hash": t.tx_hash,
        "log_index": t.log_index,
        "event_type": EventKind(t.kind).value,
        "timestamp": ts.isoformat() if ts else None,
        "block_number": t.block_number,
        "block_hash": t.block_hash,
    }


def require_address(address: Optional[str]) -> str:
    """Checksummed address or ValueError (a client error)."""
    if address is None or not address.strip():
        raise ValueError("address is required")
    try:
        return Web3.to_checksum_address(address.strip())
    except (TypeError, ValueError):
        raise ValueError(f"invalid address: {address!r}")


async def get_transfers_by_account(address: str) -> List[Dict[str, Any]]:
    account = require_address(address)
    try:
        records = await helpers.transfers_by_account(account)
    except StoreError as e:
        raise QueryError(f"failed to get transactions for account {account}: {e}") from e
    return [transfer_to_dict(t) for t in records]


async def get_transfers_by_token(address: str) -> List[Dict[str, Any]]:
    token = require_address(address)
    try:
        records = await helpers.transfers_by_token(token)
    except StoreError as e:
        raise QueryError(f"failed to get transactions for token {token}: {e}") from e
    return [transfer_to_dict(t) for t in records]


async def get_account_summary(address: str) -> Dict[str, Any]:
    account = require_address(address)
    try:
        records = await helpers.transfers_by_account(account)
    except StoreError as e:
        raise QueryError(f"failed to summarize account {account}: {e}") from e
    return account_summary(account, records)


async def get_pool_status(address: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    pool = require_address(address)
    try:
        records = await helpers.pool_events(pool)
    except StoreError as e:
        raise QueryError(f"failed to get pool status for {pool}: {e}") from e
    return pool_status(pool, records, now)
