# store/db.py
import logging
import os
from typing import Optional

from tortoise import Tortoise

from settings import DB_URL

logger = logging.getLogger(__name__)

# transfers + pool_events live in one Tortoise app
MODELS_MODULES = {"models": ["store.models"]}


async def init_db(db_url: Optional[str] = None, generate_schemas: bool = True) -> None:
    """
    Connect the event store. Without an explicit URL, DB_URL from the
    environment wins over the sqlite file default; any Tortoise URL works
    (sqlite://:memory:, postgres://...).
    """
    url = db_url or os.environ.get("DB_URL") or DB_URL
    await Tortoise.init(db_url=url, modules=MODELS_MODULES, use_tz=True, timezone="UTC")
    if generate_schemas:
        await Tortoise.generate_schemas(safe=True)
    logger.info(f"Connected to store: {url}")


async def close_db() -> None:
    await Tortoise.close_connections()
