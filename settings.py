import os
from dataclasses import dataclass
from typing import Tuple

from dotenv import load_dotenv

from errors import ConfigError

load_dotenv()

# Local hardhat node, as used by the deployment scripts
NODE_WS_URL = "ws://localhost:8545"
DB_URL = "sqlite://events.sqlite3"
DEPLOYMENTS_DIR = os.path.join("deployments", "hardhat")
TRACKED_CONTRACTS = "Token1,Token2"


@dataclass(frozen=True)
class Settings:
    node_ws_url: str = NODE_WS_URL
    db_url: str = DB_URL
    deployments_dir: str = DEPLOYMENTS_DIR
    tracked_contracts: Tuple[str, ...] = ("Token1", "Token2")

    # reconnect backoff (seconds) and how many failures in a row we tolerate
    reconnect_delay: float = 1.0
    max_reconnect_delay: float = 60.0
    max_reconnects: int = 10

    # retries for one event before it is dropped
    store_retries: int = 3
    store_backoff: float = 0.5

    api_host: str = "0.0.0.0"
    api_port: int = 8080
    log_level: str = "INFO"


def _number(name: str, default, cast):
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a {cast.__name__}, got {raw!r}")
    if value < 0:
        raise ConfigError(f"{name} must not be negative, got {raw!r}")
    return value


def load_settings() -> Settings:
    """
    Read settings from the environment (and .env, loaded at import).
    """
    names = os.environ.get("TRACKED_CONTRACTS", TRACKED_CONTRACTS)
    tracked = tuple(n.strip() for n in names.split(",") if n.strip())
    if not tracked:
        raise ConfigError("TRACKED_CONTRACTS is empty")

    return Settings(
        node_ws_url=os.environ.get("NODE_WS_URL", NODE_WS_URL),
        db_url=os.environ.get("DB_URL", DB_URL),
        deployments_dir=os.environ.get("DEPLOYMENTS_DIR", DEPLOYMENTS_DIR),
        tracked_contracts=tracked,
        reconnect_delay=_number("RECONNECT_DELAY", 1.0, float),
        max_reconnect_delay=_number("MAX_RECONNECT_DELAY", 60.0, float),
        max_reconnects=_number("MAX_RECONNECTS", 10, int),
        store_retries=_number("STORE_RETRIES", 3, int),
        store_backoff=_number("STORE_BACKOFF", 0.5, float),
        api_host=os.environ.get("API_HOST", "0.0.0.0"),
        api_port=_number("API_PORT", 8080, int),
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    )
