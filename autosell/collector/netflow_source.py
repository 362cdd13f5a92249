# autosell/collector/netflow_source.py
"""拉取窗口内买卖额: 优先外部聚合器, 其次 Helius getEnrichedTransactions"""

import asyncio
import logging
import time
from typing import Any

import aiohttp

from autosell.aggregator.window import WindowStore
from autosell.collector.base import BaseCollector
from autosell.config import NetflowSourceConfig
from autosell.errors import APIError
from autosell.execution.timeout import with_timeout

logger = logging.getLogger(__name__)


def sum_enriched_transfers(transactions: list[dict[str, Any]], mint: str) -> tuple[float, float]:
    """只有 from 没有 to 记为卖出, 只有 to 没有 from 记为买入, 其余忽略"""
    buyers_usd = 0.0
    sellers_usd = 0.0
    for tx in transactions:
        for transfer in tx.get("tokenTransfers") or []:
            if transfer.get("mint") != mint or not transfer.get("tokenAmount"):
                continue
            usd = float(transfer["tokenAmount"]) * float(transfer.get("tokenPrice") or 0)
            sender = transfer.get("fromUserAccount")
            receiver = transfer.get("toUserAccount")
            if sender and not receiver:
                sellers_usd += usd
            elif receiver and not sender:
                buyers_usd += usd
    return buyers_usd, sellers_usd


class NetflowSource:
    def __init__(
        self,
        config: NetflowSourceConfig,
        session: aiohttp.ClientSession | None = None,
        timeout_seconds: float = 10,
    ):
        self.config = config
        self._session = session
        self.timeout_seconds = timeout_seconds

    @property
    def configured(self) -> bool:
        return bool(self.config.aggregator_endpoint or self.config.helius_rpc_url)

    async def _from_aggregator(self, mint: str, start: int, end: int) -> tuple[float, float]:
        assert self._session is not None and self.config.aggregator_endpoint
        response = await self._session.get(
            self.config.aggregator_endpoint,
            params={"mint": mint, "start": str(start), "end": str(end)},
        )
        if response.status != 200:
            raise APIError(response.status, await response.text(), source="aggregator")
        data = await response.json()
        return float(data.get("buyers_usd") or 0), float(data.get("sellers_usd") or 0)

    async def _from_helius(self, mint: str, start: int, end: int) -> tuple[float, float]:
        assert self._session is not None and self.config.helius_rpc_url
        body = {
            "jsonrpc": "2.0",
            "id": "autosell-net",
            "method": "getEnrichedTransactions",
            "params": {"startTime": start, "endTime": end, "limit": 1000, "accounts": [mint]},
        }
        response = await self._session.post(self.config.helius_rpc_url, json=body)
        if response.status != 200:
            raise APIError(response.status, await response.text(), source="helius")
        data = await response.json()
        result = data.get("result")
        if not isinstance(result, list):
            return 0.0, 0.0
        return sum_enriched_transfers(result, mint)

    async def fetch(
        self, mint: str, window_seconds: int, now_ms: int | None = None
    ) -> tuple[float, float, str] | None:
        """返回 (buyers_usd, sellers_usd, 来源); 都不可用时返回 None"""
        if self._session is None or not self.configured:
            return None

        now = now_ms if now_ms is not None else int(time.time() * 1000)
        start = (now - window_seconds * 1000) // 1000
        end = now // 1000

        if self.config.aggregator_endpoint:
            try:
                buyers, sellers = await with_timeout(
                    self._from_aggregator(mint, start, end), self.timeout_seconds, "aggregator"
                )
                return buyers, sellers, "aggregator"
            except (APIError, aiohttp.ClientError, TimeoutError, ValueError, TypeError) as e:
                logger.error(f"Aggregator failed, falling back to Helius RPC: {e}")

        if self.config.helius_rpc_url:
            try:
                buyers, sellers = await with_timeout(
                    self._from_helius(mint, start, end), self.timeout_seconds, "helius"
                )
                return buyers, sellers, "helius"
            except (APIError, aiohttp.ClientError, TimeoutError, ValueError, TypeError) as e:
                logger.error(f"Helius fetch failed: {e}")

        return None

    async def fetch_window_sums(
        self, mint: str, window_seconds: int, now_ms: int | None = None
    ) -> tuple[float, float]:
        result = await self.fetch(mint, window_seconds, now_ms)
        if result is None:
            return 0.0, 0.0
        return result[0], result[1]

    async def refresh(self, mint: str, store: WindowStore, now_ms: int | None = None) -> bool:
        """拉取并推入窗口; 两个来源都失败时不推送, 保留本地累计"""
        now = now_ms if now_ms is not None else int(time.time() * 1000)
        result = await self.fetch(mint, store.window_seconds, now)
        if result is None:
            return False
        buyers, sellers, source = result
        await store.accept_push(mint, buyers, sellers, observed_at=now)
        logger.debug(f"Netflow from {source} for {mint}: buy ${buyers:,.2f} sell ${sellers:,.2f}")
        return True


class NetflowPoller(BaseCollector):
    """定时拉取; 外部推送更新时跳过本轮"""

    def __init__(
        self,
        mint: str,
        source: NetflowSource,
        store: WindowStore,
        interval_seconds: float = 10,
    ):
        super().__init__(mint)
        self.source = source
        self.store = store
        self.interval_seconds = interval_seconds
        self._last_observed: int | None = None

    def _external_push_active(self) -> bool:
        last = self.store.last_push_at(self.mint)
        return (
            last is not None
            and last != self._last_observed
            and self.store.has_fresh_push(self.mint)
        )

    async def poll_once(self) -> bool:
        if self._external_push_active():
            return False
        now = int(time.time() * 1000)
        pushed = await self.source.refresh(self.mint, self.store, now_ms=now)
        if pushed:
            self._last_observed = now
        return pushed

    async def _run(self) -> None:
        while self.running:
            try:
                await self.poll_once()
            except Exception as e:
                logger.error(f"Netflow poll error for {self.mint}: {e}")
            await asyncio.sleep(self.interval_seconds)
