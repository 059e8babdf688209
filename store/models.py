# store/models.py
from tortoise import fields, models

from decoder import EventKind


class Transfer(models.Model):
    """
    ERC-20 mint or burn, derived from a Transfer touching the zero address.
    Store raw amount as string (uint256 can exceed bigint).
    """
    id = fields.IntField(pk=True)
    # natural key, see store.helpers.event_key
    event_key = fields.CharField(max_length=160, unique=True)

    kind = fields.CharEnumField(EventKind, max_length=16)
    token_address = fields.CharField(max_length=42, index=True)
    account = fields.CharField(max_length=42, index=True)
    amount_raw = fields.CharField(max_length=100)  # uint256 as decimal string

    block_number = fields.BigIntField(index=True)
    block_hash = fields.CharField(max_length=66)
    tx_hash = fields.CharField(max_length=66, index=True)
    log_index = fields.IntField(null=True)

    # ingestion time (UTC)
    ts = fields.DatetimeField(index=True)

    class Meta:
        table = "transfers"
        indexes = (("token_address", "block_number"),)

    def __str__(self):
        return f"<Transfer {self.kind} {self.tx_hash}@{self.log_index} token={self.token_address}>"


class PoolEvent(models.Model):
    """
    Uniswap V3 pool event (Mint, Burn, Swap, Collect, Flash).
    Large on-chain ints stored as strings to avoid 64-bit overflow.
    """
    id = fields.IntField(pk=True)
    event_key = fields.CharField(max_length=160, unique=True)

    kind = fields.CharEnumField(EventKind, max_length=16, index=True)
    pool_address = fields.CharField(max_length=42, index=True)
    token0_address = fields.CharField(max_length=42, null=True)
    token1_address = fields.CharField(max_length=42, null=True)

    sender = fields.CharField(max_length=42, null=True, index=True)
    recipient = fields.CharField(max_length=42, null=True, index=True)

    amount0_raw = fields.CharField(max_length=100, null=True)  # signed int256 as decimal string
    amount1_raw = fields.CharField(max_length=100, null=True)
    sqrt_price_x96 = fields.CharField(max_length=100, null=True)  # uint160
    liquidity = fields.CharField(max_length=100, null=True)       # uint128
    tick = fields.IntField(null=True)

    block_number = fields.BigIntField(index=True)
    block_hash = fields.CharField(max_length=66)
    tx_hash = fields.CharField(max_length=66, index=True)
    log_index = fields.IntField(null=True)

    ts = fields.DatetimeField(index=True)

    class Meta:
        table = "pool_events"
        indexes = (("pool_address", "ts"),)

    def __str__(self):
        return f"<PoolEvent {self.kind} {self.tx_hash}@{self.log_index} pool={self.pool_address}>"
