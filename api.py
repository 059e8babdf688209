import logging
from typing import Any, Awaitable, Callable

from fastapi import FastAPI
from fastapi.responses import JSONResponse

import reader
from errors import QueryError

logger = logging.getLogger(__name__)

app = FastAPI(title="EVME Ledger API", version="0.1.0")


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def _run(query: Callable[..., Awaitable[Any]], address: str) -> Any:
    try:
        return await query(address)
    except ValueError as e:
        return _error(400, str(e))
    except QueryError as e:
        logger.error(f"{query.__name__}({address}) failed: {e}")
        return _error(500, str(e))


@app.get("/healthz", tags=["system"])
async def healthcheck() -> dict:
    return {"status": "ok"}


@app.get("/transactions/account/{address}", tags=["transactions"])
async def transactions_by_account(address: str):
    return await _run(reader.get_transfers_by_account, address)


@app.get("/transactions/token/{address}", tags=["transactions"])
async def transactions_by_token(address: str):
    return await _run(reader.get_transfers_by_token, address)


@app.get("/accounts/{address}/summary", tags=["accounts"])
async def account_summary(address: str):
    """Minted / burned / balance per token, in ether units."""
    return await _run(reader.get_account_summary, address)


@app.get("/pools/{address}/status", tags=["pools"])
async def pool_status(address: str):
    return await _run(reader.get_pool_status, address)
