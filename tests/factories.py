from eth_abi import encode
from hexbytes import HexBytes
from web3 import Web3

from abi.registry import ContractIdentity
from decoder import (
    POOL_BURN,
    POOL_COLLECT,
    POOL_FLASH,
    POOL_MINT,
    POOL_SWAP,
    TRANSFER,
    ZERO_ADDRESS,
    RawLogRecord,
)

# hardhat default deployment / account addresses
TOKEN = Web3.to_checksum_address("0x5fbdb2315678afecb367f032d93f642f64180aa3")
POOL = Web3.to_checksum_address("0xe7f1725e7734ce288f8367e1bb143e90bb3f0512")
TOKEN2 = Web3.to_checksum_address("0x9fe46736679d2d9a65f0992f2272de9f3c7fa6e0")
ALICE = Web3.to_checksum_address("0xf39fd6e51aad88f6f4ce6ab8827279cfffb92266")
BOB = Web3.to_checksum_address("0x70997970c51812dc3a010c7d01b50e0d17dc79c8")
STRANGER = Web3.to_checksum_address("0x3c44cdddb6a900fa2b585dd299e03d12fa4293bc")

ETHER = 10 ** 18

TOKEN_ID = ContractIdentity(name="Token1", address=TOKEN, abi=[])
TOKEN2_ID = ContractIdentity(name="Token2", address=TOKEN2, abi=[])
POOL_ID = ContractIdentity(name="Pool", address=POOL, abi=[], token0=TOKEN, token1=TOKEN2)


def tx(n: int) -> str:
    return "0x" + f"{n:064x}"


def topic_address(addr: str) -> HexBytes:
    return HexBytes(b"\x00" * 12 + bytes.fromhex(addr[2:]))


def topic_int24(value: int) -> HexBytes:
    return HexBytes(encode(["int24"], [value]))


def raw_log(address, topics, data=b"", tx_hash=None, log_index=0, block=1) -> RawLogRecord:
    return RawLogRecord(
        transaction_hash=tx_hash or tx(1),
        block_number=block,
        block_hash="0x" + "cd" * 32,
        address=address,
        topics=tuple(HexBytes(t) for t in topics),
        data=HexBytes(data),
        log_index=log_index,
    )


def transfer_log(sender, receiver, amount, token=TOKEN, **kw) -> RawLogRecord:
    return raw_log(
        token,
        [TRANSFER, topic_address(sender), topic_address(receiver)],
        encode(["uint256"], [amount]),
        **kw,
    )


def mint_log(account, amount, **kw) -> RawLogRecord:
    return transfer_log(ZERO_ADDRESS, account, amount, **kw)


def burn_log(account, amount, **kw) -> RawLogRecord:
    return transfer_log(account, ZERO_ADDRESS, amount, **kw)


def swap_log(amount0, amount1, sqrt_price=2 ** 96, liquidity=10 ** 20, tick=-887,
             sender=ALICE, recipient=BOB, **kw) -> RawLogRecord:
    return raw_log(
        POOL,
        [POOL_SWAP, topic_address(sender), topic_address(recipient)],
        encode(
            ["int256", "int256", "uint160", "uint128", "int24"],
            [amount0, amount1, sqrt_price, liquidity, tick],
        ),
        **kw,
    )


def pool_mint_log(liquidity, amount0, amount1, owner=ALICE, sender=BOB, **kw) -> RawLogRecord:
    return raw_log(
        POOL,
        [POOL_MINT, topic_address(owner), topic_int24(-600), topic_int24(600)],
        encode(["address", "uint128", "uint256", "uint256"], [sender, liquidity, amount0, amount1]),
        **kw,
    )


def pool_burn_log(liquidity, amount0, amount1, owner=ALICE, **kw) -> RawLogRecord:
    return raw_log(
        POOL,
        [POOL_BURN, topic_address(owner), topic_int24(-600), topic_int24(600)],
        encode(["uint128", "uint256", "uint256"], [liquidity, amount0, amount1]),
        **kw,
    )


def collect_log(amount0, amount1, owner=ALICE, recipient=BOB, **kw) -> RawLogRecord:
    return raw_log(
        POOL,
        [POOL_COLLECT, topic_address(owner), topic_int24(-600), topic_int24(600)],
        encode(["address", "uint128", "uint128"], [recipient, amount0, amount1]),
        **kw,
    )


def flash_log(amount0, amount1, paid0=0, paid1=0, sender=ALICE, recipient=BOB, **kw) -> RawLogRecord:
    return raw_log(
        POOL,
        [POOL_FLASH, topic_address(sender), topic_address(recipient)],
        encode(["uint256", "uint256", "uint256", "uint256"], [amount0, amount1, paid0, paid1]),
        **kw,
    )
