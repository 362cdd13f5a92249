"""Solana RPC: 余额查询与原始交易广播"""

import logging
from typing import Any

import aiohttp
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Processed
from solana.rpc.types import TxOpts
from solders.pubkey import Pubkey

from autosell.client.models import TokenBalance
from autosell.errors import APIError

logger = logging.getLogger(__name__)


class SolanaRpc:
    def __init__(
        self,
        url: str,
        max_retries: int = 2,
        client: AsyncClient | None = None,
        session: aiohttp.ClientSession | None = None,
    ):
        self.url = url
        self.max_retries = max_retries
        self.client = client or AsyncClient(url, commitment=Processed)
        self._session = session

    async def init(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession()

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None
        await self.client.close()

    async def _rpc_json(self, method: str, params: list[Any]) -> Any:
        if self._session is None:
            raise RuntimeError("Session not initialized. Call init() first.")

        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        response = await self._session.post(self.url, json=payload)
        if response.status != 200:
            raise APIError(response.status, await response.text(), source="rpc")

        data = await response.json()
        if data.get("error"):
            error = data["error"]
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            raise APIError(200, message, source="rpc")
        return data.get("result")

    async def get_token_balance(self, wallet: str, mint: str) -> TokenBalance:
        result = await self._rpc_json(
            "getTokenAccountsByOwner",
            [wallet, {"mint": mint}, {"encoding": "jsonParsed", "commitment": "processed"}],
        )
        raw_total = 0
        ui_total = 0.0
        decimals = 0
        for item in (result or {}).get("value", []):
            amount = (
                item.get("account", {})
                .get("data", {})
                .get("parsed", {})
                .get("info", {})
                .get("tokenAmount", {})
            )
            raw_total += int(amount.get("amount", "0") or "0")
            ui_total += float(amount.get("uiAmount") or 0)
            decimals = int(amount.get("decimals", decimals))
        return TokenBalance(raw_amount=raw_total, ui_amount=ui_total, decimals=decimals)

    async def get_sol_balance(self, wallet: str) -> int:
        resp = await self.client.get_balance(Pubkey.from_string(wallet))
        return int(resp.value)

    async def send_raw_transaction(self, signed: bytes) -> str:
        resp = await self.client.send_raw_transaction(
            signed,
            opts=TxOpts(
                skip_preflight=True,
                preflight_commitment=Processed,
                max_retries=self.max_retries,
            ),
        )
        return str(resp.value)
