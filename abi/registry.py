import json
import logging
import os
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, Optional

from web3 import Web3
from web3.exceptions import BadFunctionCallOutput, ContractLogicError

from errors import ConfigError

logger = logging.getLogger(__name__)

# just enough of IUniswapV3PoolImmutables to read the pair
POOL_TOKENS_ABI = [
    {
        "type": "function",
        "name": name,
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "address"}],
    }
    for name in ("token0", "token1")
]


@dataclass(frozen=True)
class ContractIdentity:
    """
    A tracked token or pool: its address plus the ABI from its deployment file.
    Pools may also carry their token0/token1 addresses.
    """
    name: str
    address: str
    abi: Any
    token0: Optional[str] = None
    token1: Optional[str] = None


def _address(value: Any, path: str, key: str) -> str:
    if not isinstance(value, str):
        raise ConfigError(f"{path}: '{key}' must be a hex address string")
    try:
        return Web3.to_checksum_address(value)
    except ValueError:
        raise ConfigError(f"{path}: '{key}' is not a valid address: {value!r}")


def load_contract(path: str, name: Optional[str] = None) -> ContractIdentity:
    try:
        with open(path) as f:
            raw = json.load(f)
    except OSError as e:
        raise ConfigError(f"failed to read config file {path}: {e}")
    except ValueError as e:
        raise ConfigError(f"failed to parse config file {path}: {e}")

    if not isinstance(raw, dict):
        raise ConfigError(f"{path}: expected a JSON object")
    for key in ("address", "abi"):
        if key not in raw:
            raise ConfigError(f"{path}: missing '{key}'")
    if not isinstance(raw["abi"], list):
        raise ConfigError(f"{path}: 'abi' must be a list")

    token0 = raw.get("token0")
    token1 = raw.get("token1")
    return ContractIdentity(
        name=name or os.path.splitext(os.path.basename(path))[0],
        address=_address(raw["address"], path, "address"),
        abi=raw["abi"],
        token0=_address(token0, path, "token0") if token0 is not None else None,
        token1=_address(token1, path, "token1") if token1 is not None else None,
    )


def load_contracts(names: Iterable[str], directory: str) -> Dict[str, ContractIdentity]:
    """
    Load <directory>/<name>.json for every name. Raises ConfigError on the
    first bad file so the process never starts half-configured.
    """
    contracts = {}
    for name in names:
        contracts[name] = load_contract(os.path.join(directory, f"{name}.json"), name)
    if not contracts:
        raise ConfigError("no contracts to track")
    return contracts


def by_address(contracts: Dict[str, ContractIdentity]) -> Dict[str, ContractIdentity]:
    return {c.address: c for c in contracts.values()}


def _declares(identity: ContractIdentity, function: str) -> bool:
    return any(
        isinstance(entry, dict) and entry.get("type") == "function" and entry.get("name") == function
        for entry in identity.abi
    )


def needs_pool_tokens(identity: ContractIdentity) -> bool:
    """
    True for a pool whose deployment file left out token0/token1. A contract
    with an empty ABI might be a pool too; a non-empty ABI without token0()
    is a plain token.
    """
    if identity.token0 and identity.token1:
        return False
    return not identity.abi or _declares(identity, "token0")


async def resolve_pool_tokens(w3, contracts: Dict[str, ContractIdentity]) -> Dict[str, ContractIdentity]:
    """
    Fill in token0/token1 by calling the pool, once at startup.
    A contract with an empty ABI that reverts on token0() is kept as a token.
    """
    resolved = {}
    for name, identity in contracts.items():
        if not needs_pool_tokens(identity):
            resolved[name] = identity
            continue

        pool = w3.eth.contract(address=identity.address, abi=POOL_TOKENS_ABI)
        try:
            token0 = await pool.functions.token0().call()
            token1 = await pool.functions.token1().call()
        except (ContractLogicError, BadFunctionCallOutput) as e:
            if identity.abi:
                raise ConfigError(f"{name} at {identity.address}: token0()/token1() call failed: {e}")
            logger.debug(f"{name} has no token0(), treating it as a token")
            resolved[name] = identity
            continue

        resolved[name] = replace(
            identity,
            token0=identity.token0 or Web3.to_checksum_address(token0),
            token1=identity.token1 or Web3.to_checksum_address(token1),
        )
        logger.info(f"Pool {name}: token0={resolved[name].token0} token1={resolved[name].token1}")
    return resolved
