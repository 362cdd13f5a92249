# tests/api/test_server.py
from unittest.mock import AsyncMock, MagicMock

import pytest
from aiohttp.test_utils import TestClient, TestServer

from autosell.api.server import ApiServer
from autosell.config import ApiConfig
from autosell.errors import ValidationError

MINT = "Mint111"


def make_service() -> MagicMock:
    service = MagicMock()
    service.mint = MINT
    service.ingest_trade = AsyncMock(return_value={"ok": True, "recorded": 1})
    service.ingest_push = AsyncMock()
    service.ingest_webhook = AsyncMock(return_value=1)
    service.get_status = AsyncMock(return_value={"mint": MINT, "net": 200.0})
    service.evaluate_and_execute = AsyncMock(return_value={"ok": True, "reason": "cooldown"})
    return service


@pytest.fixture
async def service():
    return make_service()


@pytest.fixture
async def client(service):
    server = ApiServer(service, ApiConfig(webhook_secret="hook"))
    test_client = TestClient(TestServer(server.app))
    await test_client.start_server()
    yield test_client
    await test_client.close()


async def test_ingest_trades(client, service):
    resp = await client.post(
        "/ingest-trade", json={"trades": [{"ts": 1706600000000, "side": "buy", "usd": 300}]}
    )

    assert resp.status == 200
    data = await resp.json()
    assert data["ok"] is True
    assert data["recorded"] == 1
    trade = service.ingest_trade.await_args.args[0]
    assert trade.mint == MINT
    assert trade.side == "buy"
    assert trade.usd_amount == 300


async def test_ingest_push(client, service):
    resp = await client.post("/ingest-trade", json={"buyers_usd": 300, "sellers_usd": 100, "window_seconds": 60})

    assert resp.status == 200
    service.ingest_push.assert_awaited_once_with(300, 100, 60)


@pytest.mark.parametrize(
    "body",
    [
        {"trades": [{"ts": 1, "side": "hold", "usd": 1}]},
        {"trades": [{"ts": 1, "side": "buy", "usd": -5}]},
        {"buyers_usd": -1},
        [1, 2, 3],
    ],
)
async def test_ingest_rejects_invalid_body(client, service, body):
    resp = await client.post("/ingest-trade", json=body)

    assert resp.status == 400
    data = await resp.json()
    assert data["ok"] is False
    service.ingest_trade.assert_not_awaited()
    service.ingest_push.assert_not_awaited()


async def test_ingest_rejects_malformed_json(client):
    resp = await client.post("/ingest-trade", data="{not json", headers={"Content-Type": "application/json"})
    assert resp.status == 400


async def test_ingest_domain_validation_error(client, service):
    service.ingest_trade = AsyncMock(side_effect=ValidationError("invalid trade timestamp: 0"))

    resp = await client.post("/ingest-trade", json={"trades": [{"ts": 5, "side": "buy", "usd": 1}]})

    assert resp.status == 400
    assert "timestamp" in (await resp.json())["error"]


async def test_helius_webhook_requires_secret(client, service):
    resp = await client.post("/webhooks/helius", json=[])
    assert resp.status == 401
    service.ingest_webhook.assert_not_awaited()


async def test_helius_webhook(client, service):
    rows = [{"signature": "s", "tokenTransfers": []}]
    resp = await client.post("/webhooks/helius", json={"events": rows}, headers={"x-webhook-secret": "hook"})

    assert resp.status == 200
    assert (await resp.json()) == {"ok": True, "received": 1, "trades": 1}
    service.ingest_webhook.assert_awaited_once_with(rows)


async def test_status(client):
    resp = await client.get("/status")
    assert resp.status == 200
    assert (await resp.json())["net"] == 200.0


async def test_tick(client, service):
    resp = await client.post("/tick")
    assert resp.status == 200
    assert (await resp.json())["reason"] == "cooldown"


async def test_tick_failure_is_500(client, service):
    service.evaluate_and_execute = AsyncMock(return_value={"ok": False, "error": "boom"})
    resp = await client.post("/tick")
    assert resp.status == 500


async def test_health(client):
    resp = await client.get("/health")
    assert (await resp.json())["ok"] is True
