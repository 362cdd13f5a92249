# tests/collector/test_netflow_source.py
from unittest.mock import AsyncMock, MagicMock

import aiohttp

from autosell.aggregator.window import WindowStore
from autosell.collector.netflow_source import NetflowPoller, NetflowSource, sum_enriched_transfers
from autosell.config import NetflowSourceConfig

MINT = "Mint111"
NOW = 1_706_600_000_000


def response(status: int = 200, payload=None, text: str = "") -> MagicMock:
    resp = MagicMock()
    resp.status = status
    resp.json = AsyncMock(return_value=payload)
    resp.text = AsyncMock(return_value=text)
    return resp


def test_sum_enriched_transfers():
    txs = [
        {
            "tokenTransfers": [
                {"mint": MINT, "tokenAmount": 100, "tokenPrice": 2.0, "toUserAccount": "buyer"},
                {"mint": MINT, "tokenAmount": 50, "tokenPrice": 2.0, "fromUserAccount": "seller"},
                {"mint": MINT, "tokenAmount": 10, "tokenPrice": 2.0, "fromUserAccount": "a", "toUserAccount": "b"},
                {"mint": "Other", "tokenAmount": 999, "tokenPrice": 1.0, "toUserAccount": "x"},
            ]
        },
        {"tokenTransfers": None},
    ]

    assert sum_enriched_transfers(txs, MINT) == (200.0, 100.0)


async def test_aggregator_endpoint_first():
    session = MagicMock()
    session.get = AsyncMock(return_value=response(payload={"buyers_usd": 300, "sellers_usd": 100}))
    session.post = AsyncMock()
    source = NetflowSource(
        NetflowSourceConfig(aggregator_endpoint="https://agg.test", helius_rpc_url="https://helius.test"),
        session,
    )

    sums = await source.fetch_window_sums(MINT, 120, now_ms=NOW)

    assert sums == (300.0, 100.0)
    params = session.get.call_args.kwargs["params"]
    assert params["mint"] == MINT
    assert int(params["end"]) - int(params["start"]) == 120
    session.post.assert_not_awaited()


async def test_falls_back_to_helius():
    session = MagicMock()
    session.get = AsyncMock(side_effect=aiohttp.ClientConnectionError("down"))
    session.post = AsyncMock(
        return_value=response(
            payload={
                "result": [
                    {"tokenTransfers": [{"mint": MINT, "tokenAmount": 10, "tokenPrice": 3.0, "toUserAccount": "u"}]}
                ]
            }
        )
    )
    source = NetflowSource(
        NetflowSourceConfig(aggregator_endpoint="https://agg.test", helius_rpc_url="https://helius.test"),
        session,
    )

    result = await source.fetch(MINT, 120, now_ms=NOW)

    assert result == (30.0, 0.0, "helius")
    body = session.post.call_args.kwargs["json"]
    assert body["method"] == "getEnrichedTransactions"
    assert body["params"]["accounts"] == [MINT]


async def test_nothing_configured_returns_zeros():
    source = NetflowSource(NetflowSourceConfig(), MagicMock())
    assert await source.fetch_window_sums(MINT, 120) == (0.0, 0.0)


async def test_refresh_pushes_into_store():
    session = MagicMock()
    session.get = AsyncMock(return_value=response(payload={"buyers_usd": 300, "sellers_usd": 100}))
    source = NetflowSource(NetflowSourceConfig(aggregator_endpoint="https://agg.test"), session)
    store = WindowStore()

    assert await source.refresh(MINT, store, now_ms=NOW)

    sums = await store.evict_and_sum(MINT, now_ms=NOW)
    assert sums.source == "push"
    assert sums.net == 200


async def test_refresh_without_data_keeps_local_accounting():
    session = MagicMock()
    session.get = AsyncMock(return_value=response(status=500, text="oops"))
    source = NetflowSource(NetflowSourceConfig(aggregator_endpoint="https://agg.test"), session)
    store = WindowStore()

    assert not await source.refresh(MINT, store, now_ms=NOW)
    assert store.last_push_at(MINT) is None


async def test_poller_skips_when_external_push_is_fresh():
    source = MagicMock()
    source.refresh = AsyncMock(return_value=True)
    store = WindowStore()
    await store.accept_push(MINT, 1, 0)
    poller = NetflowPoller(MINT, source, store)

    assert not await poller.poll_once()
    source.refresh.assert_not_awaited()


async def test_poller_refreshes_without_external_push():
    source = MagicMock()
    source.refresh = AsyncMock(return_value=True)
    poller = NetflowPoller(MINT, source, WindowStore())

    assert await poller.poll_once()
    source.refresh.assert_awaited_once()


async def test_poller_start_stop():
    source = MagicMock()
    source.refresh = AsyncMock(return_value=False)
    poller = NetflowPoller(MINT, source, WindowStore(), interval_seconds=0.01)

    await poller.start()
    assert poller.running
    await poller.stop()
    assert not poller.running
