# tests/client/test_jupiter.py
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from autosell.client.jupiter import JupiterClient
from autosell.errors import APIError, NoLiquidityError, NotTradableError, QuoteError, SwapBuildError

MINT = "Mint111"
SOL = "So11111111111111111111111111111111111111112"


def mock_session(status: int = 200, payload=None, text: str = "") -> MagicMock:
    response = MagicMock()
    response.status = status
    response.json = AsyncMock(return_value=payload)
    response.text = AsyncMock(return_value=text)
    session = MagicMock()
    session.get = AsyncMock(return_value=response)
    session.post = AsyncMock(return_value=response)
    return session


def test_jupiter_client_defaults():
    client = JupiterClient()
    assert client.base_url == "https://quote-api.jup.ag"
    assert client.quote_decimals == 6


async def test_request_requires_session():
    client = JupiterClient()
    with pytest.raises(RuntimeError):
        await client._request("GET", "/v6/quote")


async def test_request_handles_error():
    client = JupiterClient()
    client._session = mock_session(status=429, text="rate limited")

    with pytest.raises(APIError, match="rate limited"):
        await client._request("GET", "/v6/quote")


async def test_api_key_header():
    client = JupiterClient(api_key="k")
    client._session = mock_session(payload={"outAmount": "1"})

    await client._request("GET", "/v6/quote")

    assert client._session.get.call_args.kwargs["headers"]["X-API-Key"] == "k"


async def test_quote_success():
    client = JupiterClient()
    client._session = mock_session(payload={"inAmount": "1000", "outAmount": "5000"})

    quote = await client.quote(MINT, SOL, 1000, 2000)

    assert quote["outAmount"] == "5000"
    params = client._session.get.call_args.kwargs["params"]
    assert params["amount"] == "1000"
    assert params["slippageBps"] == "2000"


async def test_quote_not_tradable():
    client = JupiterClient()
    client._session = mock_session(status=400, text='{"errorCode":"TOKEN_NOT_TRADABLE"}')

    with pytest.raises(NotTradableError) as exc_info:
        await client.quote(MINT, SOL, 1000, 2000)
    assert exc_info.value.status == 400


async def test_quote_no_routes():
    client = JupiterClient()
    client._session = mock_session(status=400, text='{"error":"No routes found"}')

    with pytest.raises(NoLiquidityError, match="insufficient liquidity"):
        await client.quote(MINT, SOL, 1000, 2000)


async def test_quote_other_http_error():
    client = JupiterClient()
    client._session = mock_session(status=500, text="internal")

    with pytest.raises(QuoteError, match="Jupiter quote failed: 500"):
        await client.quote(MINT, SOL, 1000, 2000)


@pytest.mark.parametrize("payload", [{"error": "bad"}, {"outAmount": None}, {"outAmount": "0"}])
async def test_quote_unusable_body(payload):
    client = JupiterClient()
    client._session = mock_session(payload=payload)

    with pytest.raises(QuoteError):
        await client.quote(MINT, SOL, 1000, 2000)


async def test_build_swap():
    client = JupiterClient()
    client._session = mock_session(payload={"swapTransaction": "dHg="})

    tx = await client.build_swap({"outAmount": "1"}, "Owner111", 30000)

    assert tx == "dHg="
    body = client._session.post.call_args.kwargs["json"]
    assert body["userPublicKey"] == "Owner111"
    assert body["prioritizationFeeLamports"] == 30000


async def test_build_swap_errors():
    client = JupiterClient()
    client._session = mock_session(status=500, text="oops")
    with pytest.raises(SwapBuildError, match="Jupiter swap failed"):
        await client.build_swap({}, "Owner111")

    client._session = mock_session(payload={"nothing": True})
    with pytest.raises(SwapBuildError, match="invalid transaction format"):
        await client.build_swap({}, "Owner111")


async def test_usd_per_base_unit_normalised_by_quote_decimals():
    client = JupiterClient()
    # 1_000_000 个最小单位换到 2_000 个 USDC 最小单位 (0.002 USDC)
    client._session = mock_session(payload={"inAmount": "1000000", "outAmount": "2000"})

    price = await client.usd_per_base_unit(MINT)

    assert price == pytest.approx(2e-9)


async def test_usd_per_base_unit_legacy_shape():
    client = JupiterClient()
    client._session = mock_session(payload={"data": [{"inAmount": "1000000", "outAmount": "2000000"}]})

    assert await client.usd_per_base_unit(MINT) == pytest.approx(2e-6)


async def test_usd_per_base_unit_failure_is_zero():
    client = JupiterClient()
    client._session = mock_session(status=500, text="down")
    assert await client.usd_per_base_unit(MINT) == 0.0

    client._session = MagicMock()
    client._session.get = AsyncMock(side_effect=aiohttp.ClientConnectionError())
    assert await client.usd_per_base_unit(MINT) == 0.0


async def test_usd_price():
    client = JupiterClient()
    client._session = mock_session(payload={"data": {MINT: {"price": 0.5}}})

    assert await client.usd_price(MINT) == 0.5
    assert client._session.get.call_args.kwargs["params"] == {"ids": MINT}


async def test_usd_price_missing():
    client = JupiterClient()
    client._session = mock_session(payload={"data": {}})
    assert await client.usd_price(MINT) == 0.0
