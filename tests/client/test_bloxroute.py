# tests/client/test_bloxroute.py
import base64
from unittest.mock import AsyncMock, MagicMock

import pytest

from autosell.client.bloxroute import BloxrouteClient
from autosell.errors import APIError


def mock_session(status: int = 200, payload=None, text: str = "") -> MagicMock:
    response = MagicMock()
    response.status = status
    response.json = AsyncMock(return_value=payload)
    response.text = AsyncMock(return_value=text)
    session = MagicMock()
    session.post = AsyncMock(return_value=response)
    return session


def test_authorization_header():
    client = BloxrouteClient(api_key="abc")
    expected = base64.b64encode(b"abc:").decode()
    assert client.authorization == f"Basic {expected}"


async def test_build_swap_alt():
    client = BloxrouteClient(api_key="abc", region_url="https://ny.test")
    client._session = mock_session(payload={"transactions": [{"content": "dHg="}]})

    data = await client.build_swap_alt("Owner111", "Mint111", "SOL", 1000, 2000, compute_price=5)

    assert data == {"transactions": [{"content": "dHg="}]}
    call = client._session.post.call_args
    assert call.args[0] == "https://ny.test/api/v2/jupiter/swap"
    assert call.kwargs["json"]["slippage"] == 20
    assert call.kwargs["json"]["computePrice"] == 5
    assert call.kwargs["headers"]["Authorization"] == client.authorization


async def test_post_error():
    client = BloxrouteClient(api_key="abc")
    client._session = mock_session(status=401, text="bad auth")

    with pytest.raises(APIError) as exc_info:
        await client.build_swap_alt("Owner111", "Mint111", "SOL", 1000, 2000)
    assert exc_info.value.status == 401
    assert exc_info.value.source == "bloxroute"


@pytest.mark.parametrize(
    "payload,expected",
    [
        ({"signature": "sig1"}, "sig1"),
        ({"signatures": ["sig2"]}, "sig2"),
        ({}, None),
        ([], None),
    ],
)
async def test_submit_signature(payload, expected):
    client = BloxrouteClient(api_key="abc", submit_url="https://global.test")
    client._session = mock_session(payload=payload)

    assert await client.submit("c2lnbmVk") == expected
    call = client._session.post.call_args
    assert call.args[0] == "https://global.test/api/v2/submit"
    assert call.kwargs["json"]["transaction"] == {"content": "c2lnbmVk"}
    assert call.kwargs["json"]["skipPreFlight"] is True
