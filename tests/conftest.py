"""Shared test fixtures."""

import os

import pytest

# init_db() without a URL reads DB_URL; never let a test touch events.sqlite3
os.environ["DB_URL"] = "sqlite://:memory:"

from store.db import close_db, init_db  # noqa: E402


@pytest.fixture
async def db():
    """Fresh in-memory SQLite store per test."""
    await init_db()
    yield
    await close_db()
