"""bloXroute Trader API 客户端 (低延迟 swap 构建与交易提交)"""

import base64
from dataclasses import dataclass, field
from typing import Any

import aiohttp

from autosell.errors import APIError


@dataclass
class BloxrouteClient:
    api_key: str
    region_url: str = "https://ny.solana.dex.blxrbdn.com"
    submit_url: str = "https://global.solana.dex.blxrbdn.com"
    _session: aiohttp.ClientSession | None = field(default=None, repr=False)

    @property
    def authorization(self) -> str:
        token = base64.b64encode(f"{self.api_key}:".encode()).decode()
        return f"Basic {token}"

    async def _post(self, url: str, body: dict[str, Any]) -> Any:
        if self._session is None:
            raise RuntimeError("Session not initialized. Use 'async with' context.")

        response = await self._session.post(
            url,
            json=body,
            headers={
                "Authorization": self.authorization,
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
        )
        if response.status != 200:
            raise APIError(response.status, await response.text(), source="bloxroute")
        return await response.json()

    async def init(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession()

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "BloxrouteClient":
        await self.init()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def build_swap_alt(
        self,
        owner: str,
        in_token: str,
        out_token: str,
        in_amount: int,
        slippage_bps: int,
        compute_price: int = 8_000_000,
    ) -> dict[str, Any]:
        """通过 bloXroute 的 Jupiter 代理生成 swap 交易"""
        return await self._post(
            f"{self.region_url}/api/v2/jupiter/swap",
            {
                "ownerAddress": owner,
                "inToken": in_token,
                "outToken": out_token,
                "inAmount": in_amount,
                "slippage": slippage_bps / 100,
                "computePrice": compute_price,
            },
        )

    async def submit(self, signed_tx_base64: str) -> str | None:
        """提交已签名交易, 返回签名 (接口未返回时为 None)"""
        data = await self._post(
            f"{self.submit_url}/api/v2/submit",
            {
                "transaction": {"content": signed_tx_base64},
                "skipPreFlight": True,
                "submitProtection": "SP_LOW",
            },
        )
        if not isinstance(data, dict):
            return None
        if data.get("signature"):
            return str(data["signature"])
        signatures = data.get("signatures")
        if isinstance(signatures, list) and signatures:
            return str(signatures[0])
        return None
