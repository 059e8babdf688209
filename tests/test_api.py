"""HTTP surface: routing and error mapping."""

import pytest
from fastapi.testclient import TestClient

import reader
from api import app
from errors import QueryError
from tests.factories import ALICE, POOL


@pytest.fixture
def client():
    return TestClient(app)


def test_healthz(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_account_summary(client, monkeypatch):
    async def summary(address):
        return {"account_address": address, "tokens": [], "net_balance": "0.000000000000000000"}

    monkeypatch.setattr(reader, "get_account_summary", summary)
    resp = client.get(f"/accounts/{ALICE}/summary")
    assert resp.status_code == 200
    assert resp.json()["account_address"] == ALICE


def test_transactions_by_account(client, monkeypatch):
    seen = []

    async def transfers(address):
        seen.append(address)
        return [{"event_type": "Mint", "amount": "1"}]

    monkeypatch.setattr(reader, "get_transfers_by_account", transfers)
    resp = client.get(f"/transactions/account/{ALICE}")
    assert resp.status_code == 200
    assert resp.json() == [{"event_type": "Mint", "amount": "1"}]
    assert seen == [ALICE]


def test_transactions_by_token(client, monkeypatch):
    async def transfers(address):
        return []

    monkeypatch.setattr(reader, "get_transfers_by_token", transfers)
    assert client.get(f"/transactions/token/{ALICE}").json() == []


def test_invalid_address_is_400(client):
    resp = client.get("/accounts/not-an-address/summary")
    assert resp.status_code == 400
    assert resp.json()["error"].startswith("invalid address")


def test_query_failure_is_500(client, monkeypatch):
    async def broken(address):
        raise QueryError("store unavailable")

    monkeypatch.setattr(reader, "get_pool_status", broken)
    resp = client.get(f"/pools/{POOL}/status")
    assert resp.status_code == 500
    assert resp.json() == {"error": "store unavailable"}


def test_pool_status(client, monkeypatch):
    async def status(address):
        return {"pool_address": address, "current_price": None, "tvl": None, "volume_24h": "0"}

    monkeypatch.setattr(reader, "get_pool_status", status)
    body = client.get(f"/pools/{POOL}/status").json()
    assert body["pool_address"] == POOL
    assert body["current_price"] is None
