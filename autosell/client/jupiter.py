"""Jupiter 报价 / swap 客户端"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any

import aiohttp

from autosell.client.models import extract_base64_tx
from autosell.errors import (
    APIError,
    AutoSellError,
    NoLiquidityError,
    NotTradableError,
    QuoteError,
    SwapBuildError,
)

logger = logging.getLogger(__name__)

USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"


@dataclass
class JupiterClient:
    """Jupiter v6 API 客户端, 同时作为价格预言机"""

    base_url: str = "https://quote-api.jup.ag"
    api_key: str | None = None
    quote_mint: str = USDC_MINT
    quote_decimals: int = 6
    price_url: str = "https://price.jup.ag/v6/price"
    _session: aiohttp.ClientSession | None = field(default=None, repr=False)

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        return headers

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
    ) -> Any:
        """发送 HTTP 请求"""
        if self._session is None:
            raise RuntimeError("Session not initialized. Use 'async with' context.")

        url = f"{self.base_url}{endpoint}"

        if method == "GET":
            response = await self._session.get(url, params=params, headers=self._headers())
        else:
            response = await self._session.post(url, json=body, headers=self._headers())

        if response.status != 200:
            raise APIError(response.status, await response.text(), source="jupiter")

        return await response.json()

    async def init(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession()

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "JupiterClient":
        await self.init()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def quote(
        self,
        input_mint: str,
        output_mint: str,
        amount: int,
        slippage_bps: int,
    ) -> dict[str, Any]:
        """获取报价, 失败时按原因抛出 QuoteError 子类"""
        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(int(amount)),
            "slippageBps": str(int(slippage_bps)),
            "onlyDirectRoutes": "false",
            "asLegacyTransaction": "false",
            "maxAccounts": "64",
        }
        try:
            data = await self._request("GET", "/v6/quote", params=params)
        except APIError as e:
            if "TOKEN_NOT_TRADABLE" in e.body:
                raise NotTradableError(
                    f"Token {input_mint} is not tradable on Jupiter", e.status, e.body
                ) from e
            if "No routes found" in e.body:
                raise NoLiquidityError(
                    f"No trading routes found for token {input_mint} - insufficient liquidity",
                    e.status,
                    e.body,
                ) from e
            raise QuoteError(
                f"Jupiter quote failed: {e.status} - {e.body[:100]}", e.status, e.body
            ) from e

        if not isinstance(data, dict) or data.get("error") or not data.get("outAmount"):
            error = data.get("error") if isinstance(data, dict) else None
            raise QuoteError(f"Jupiter quote error: {error or 'no route found'}", 200)

        if int(data["outAmount"]) <= 0:
            raise QuoteError("quote returned zero output", 200)

        return data

    async def build_swap(
        self,
        quote: dict[str, Any],
        owner: str,
        priority_fee_lamports: int = 30000,
    ) -> str:
        """根据报价生成未签名交易 (base64)"""
        body = {
            "quoteResponse": quote,
            "userPublicKey": owner,
            "wrapAndUnwrapSol": True,
            "asLegacyTransaction": False,
            "prioritizationFeeLamports": priority_fee_lamports,
            "dynamicComputeUnitLimit": True,
            "skipUserAccountsRpcCalls": True,
        }
        try:
            data = await self._request("POST", "/v6/swap", body=body)
        except APIError as e:
            raise SwapBuildError(
                f"Jupiter swap failed: {e.status} - {e.body[:100]}", e.status, e.body
            ) from e

        tx = extract_base64_tx(data)
        if not tx:
            raise SwapBuildError(f"invalid transaction format: {json.dumps(data)[:100]}", 200)
        return tx

    async def usd_per_base_unit(self, mint: str) -> float:
        """1 个最小单位 token 的美元价格, 取不到时返回 0"""
        try:
            data = await self._request(
                "GET",
                "/v6/quote",
                params={
                    "inputMint": mint,
                    "outputMint": self.quote_mint,
                    "amount": "1000000",
                    "slippageBps": "50",
                },
            )
        except (AutoSellError, aiohttp.ClientError) as e:
            logger.warning(f"Jupiter price fetch failed for {mint}: {e}")
            return 0.0

        # 兼容旧版 {"data": [route]} 格式
        route = data
        if isinstance(data, dict) and isinstance(data.get("data"), list):
            route = data["data"][0] if data["data"] else None
        if not isinstance(route, dict):
            return 0.0

        try:
            out_amount = float(route.get("outAmount") or 0)
            in_amount = float(route.get("inAmount") or 0)
        except (TypeError, ValueError):
            return 0.0
        if out_amount <= 0 or in_amount <= 0:
            return 0.0

        return out_amount / in_amount / 10**self.quote_decimals

    async def usd_price(self, mint: str) -> float:
        """1 个完整 token (UI 单位) 的美元价格, 用于 webhook 成交估值"""
        if self._session is None:
            raise RuntimeError("Session not initialized. Use 'async with' context.")
        try:
            response = await self._session.get(self.price_url, params={"ids": mint})
            if response.status != 200:
                logger.warning(f"Jupiter price API returned {response.status} for {mint}")
                return 0.0
            data = await response.json()
        except aiohttp.ClientError as e:
            logger.warning(f"Jupiter price API failed for {mint}: {e}")
            return 0.0

        try:
            return float(data["data"][mint]["price"])
        except (KeyError, TypeError, ValueError):
            return 0.0
