"""Tests for environment-driven settings."""

import pytest

from errors import ConfigError
from settings import load_settings

ENV_KEYS = [
    "NODE_WS_URL", "DB_URL", "DEPLOYMENTS_DIR", "TRACKED_CONTRACTS", "RECONNECT_DELAY",
    "MAX_RECONNECT_DELAY", "MAX_RECONNECTS", "STORE_RETRIES", "STORE_BACKOFF",
    "API_HOST", "API_PORT", "LOG_LEVEL",
]


@pytest.fixture
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    settings = load_settings()
    assert settings.node_ws_url == "ws://localhost:8545"
    assert settings.db_url == "sqlite://events.sqlite3"
    assert settings.tracked_contracts == ("Token1", "Token2")
    assert settings.max_reconnects == 10
    assert settings.log_level == "INFO"


def test_overrides(clean_env):
    clean_env.setenv("TRACKED_CONTRACTS", " Token1, UniswapV3Pool ,")
    clean_env.setenv("RECONNECT_DELAY", "0.25")
    clean_env.setenv("MAX_RECONNECTS", "3")
    clean_env.setenv("API_PORT", "9000")
    clean_env.setenv("LOG_LEVEL", "debug")
    settings = load_settings()
    assert settings.tracked_contracts == ("Token1", "UniswapV3Pool")
    assert settings.reconnect_delay == 0.25
    assert settings.max_reconnects == 3
    assert settings.api_port == 9000
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize("key,value", [("MAX_RECONNECTS", "many"), ("STORE_BACKOFF", "-1"), ("API_PORT", "1.5")])
def test_bad_numbers(clean_env, key, value):
    clean_env.setenv(key, value)
    with pytest.raises(ConfigError, match=key):
        load_settings()


def test_empty_tracked_contracts(clean_env):
    clean_env.setenv("TRACKED_CONTRACTS", " , ")
    with pytest.raises(ConfigError):
        load_settings()
