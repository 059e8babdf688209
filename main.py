import asyncio as asy
import logging
import sys

import uvicorn

from abi.registry import load_contracts
from api import app
from errors import ConfigError, NodeConnectionError, SubscriptionError
from evme import EventSubscriber, Web3LogStream
from settings import Settings, load_settings
from store.db import close_db, init_db
from store.helpers import EventWriter

logger = logging.getLogger("evme")


async def main(settings: Settings) -> int:
    stream = Web3LogStream(settings.node_ws_url)
    contracts = load_contracts(settings.tracked_contracts, settings.deployments_dir)
    try:
        contracts = await stream.resolve_contracts(contracts)
    except NodeConnectionError as e:
        logger.critical(f"Cannot read pool tokens from the node: {e}")
        return 1
    for c in contracts.values():
        logger.info(f"Tracking {c.name} at {c.address}")

    await init_db(settings.db_url)
    writer = EventWriter(retries=settings.store_retries, backoff=settings.store_backoff)
    subscriber = EventSubscriber(
        contracts,
        stream,
        writer.save,
        reconnect_delay=settings.reconnect_delay,
        max_reconnect_delay=settings.max_reconnect_delay,
        max_reconnects=settings.max_reconnects,
    )
    server = uvicorn.Server(
        uvicorn.Config(app, host=settings.api_host, port=settings.api_port, log_level=settings.log_level.lower())
    )

    stop = asy.Event()
    ingest = asy.create_task(subscriber.start(stop), name="subscriber")
    serve = asy.create_task(server.serve(), name="http")
    try:
        # whichever side ends first takes the other one down
        await asy.wait({ingest, serve}, return_when=asy.FIRST_COMPLETED)
    finally:
        stop.set()
        server.should_exit = True
        await asy.gather(ingest, serve, return_exceptions=True)
        await close_db()
        logger.info(f"Store writer: saved={writer.saved} duplicates={writer.duplicates} dropped={writer.dropped}")

    return exit_code(ingest, serve)


def exit_code(ingest: asy.Task, serve: asy.Task) -> int:
    """Non-zero when either side died with an error."""
    code = 0
    for task, what in ((ingest, "Ingestion"), (serve, "HTTP server")):
        if task.cancelled() or task.exception() is None:
            continue
        err = task.exception()
        if isinstance(err, SubscriptionError):
            logger.critical(f"{what} failed, shutting down: {err}")
        else:
            logger.critical(f"{what} crashed, shutting down", exc_info=err)
        code = 1
    return code


def run() -> None:
    try:
        settings = load_settings()
    except ConfigError as e:
        logging.basicConfig(level=logging.INFO)
        logger.critical(f"Configuration error: {e}")
        sys.exit(2)

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        code = asy.run(main(settings))
    except ConfigError as e:
        logger.critical(f"Configuration error: {e}")
        code = 2
    except KeyboardInterrupt:
        logger.info("Shutdown via KeyboardInterrupt.")
        code = 0
    sys.exit(code)


if __name__ == '__main__':
    run()
