# autosell/aggregator/window.py
"""滑动窗口成交聚合

每个 mint 维护一个成交队列; 外部聚合器也可以直接推送已汇总的买卖额快照,
快照在新鲜期内优先于本地累计结果.
"""

import asyncio
import logging
import math
import time
from collections import deque
from dataclasses import dataclass

from autosell.aggregator.flow import calculate_flow
from autosell.errors import StaleDataError, ValidationError
from autosell.storage.database import Database
from autosell.storage.models import SIDES, Trade, WindowSums

logger = logging.getLogger(__name__)


@dataclass
class PushSnapshot:
    buyers_usd: float
    sellers_usd: float
    observed_at: int  # ms
    window_seconds: int


def _now_ms() -> int:
    return int(time.time() * 1000)


def validate_trade(trade: Trade) -> None:
    if not trade.mint:
        raise ValidationError("trade mint is required")
    if trade.side not in SIDES:
        raise ValidationError(f"invalid trade side: {trade.side!r}")
    if not isinstance(trade.usd_amount, (int, float)) or not math.isfinite(trade.usd_amount):
        raise ValidationError(f"invalid trade usd amount: {trade.usd_amount!r}")
    if trade.usd_amount < 0:
        raise ValidationError(f"trade usd amount must be non-negative: {trade.usd_amount}")
    if trade.timestamp <= 0:
        raise ValidationError(f"invalid trade timestamp: {trade.timestamp}")


class WindowStore:
    def __init__(
        self,
        window_seconds: int = 120,
        grace_seconds: float = 2.0,
        db: Database | None = None,
    ):
        self.window_seconds = window_seconds
        self.grace_ms = int(grace_seconds * 1000)
        self.db = db
        self._trades: dict[str, deque[Trade]] = {}
        self._pushes: dict[str, PushSnapshot] = {}
        # 淘汰与求和在同一把锁内完成, 并发读取看到同一个截止时间
        self._lock = asyncio.Lock()

    async def record(self, trade: Trade) -> None:
        validate_trade(trade)
        async with self._lock:
            self._trades.setdefault(trade.mint, deque()).append(trade)
        if self.db:
            await self.db.insert_trade(trade)

    async def accept_push(
        self,
        mint: str,
        buyers_usd: float,
        sellers_usd: float,
        observed_at: int | None = None,
        window_seconds: int | None = None,
    ) -> None:
        if not mint:
            raise ValidationError("push mint is required")
        for name, value in (("buyers_usd", buyers_usd), ("sellers_usd", sellers_usd)):
            if not math.isfinite(value) or value < 0:
                raise ValidationError(f"{name} must be a non-negative number: {value}")
        if window_seconds is not None and window_seconds <= 0:
            raise ValidationError(f"window_seconds must be positive: {window_seconds}")

        snapshot = PushSnapshot(
            buyers_usd=float(buyers_usd),
            sellers_usd=float(sellers_usd),
            observed_at=observed_at if observed_at is not None else _now_ms(),
            window_seconds=window_seconds or self.window_seconds,
        )
        async with self._lock:
            self._pushes[mint] = snapshot
        logger.debug(
            f"Push accepted: {mint} buy ${buyers_usd:,.2f} sell ${sellers_usd:,.2f} "
            f"window {snapshot.window_seconds}s"
        )

    def _fresh_push(self, mint: str, now_ms: int) -> PushSnapshot:
        push = self._pushes.get(mint)
        if push is None:
            raise StaleDataError(f"no pushed snapshot for {mint}")
        age_ms = now_ms - push.observed_at
        if age_ms > push.window_seconds * 1000 + self.grace_ms:
            raise StaleDataError(f"pushed snapshot for {mint} is {age_ms / 1000:.1f}s old")
        return push

    def last_push_at(self, mint: str) -> int | None:
        push = self._pushes.get(mint)
        return push.observed_at if push else None

    def has_fresh_push(self, mint: str, now_ms: int | None = None) -> bool:
        try:
            self._fresh_push(mint, now_ms if now_ms is not None else _now_ms())
        except StaleDataError:
            return False
        return True

    async def evict_and_sum(self, mint: str, now_ms: int | None = None) -> WindowSums:
        async with self._lock:
            now = now_ms if now_ms is not None else _now_ms()
            cutoff = now - self.window_seconds * 1000

            queue = self._trades.get(mint)
            fresh: deque[Trade] = deque()
            if queue:
                fresh = deque(t for t in queue if t.timestamp >= cutoff)
                evicted = len(queue) - len(fresh)
                if evicted:
                    logger.debug(f"Evicted {evicted} trades for {mint}")
                self._trades[mint] = fresh

            if mint in self._pushes:
                try:
                    push = self._fresh_push(mint, now)
                    return WindowSums(
                        buyers_usd=push.buyers_usd,
                        sellers_usd=push.sellers_usd,
                        observed_at=push.observed_at,
                        window_seconds=push.window_seconds,
                        source="push",
                    )
                except StaleDataError as e:
                    logger.info(f"Falling back to local accounting: {e}")
                    del self._pushes[mint]

            flow = calculate_flow(fresh)
            if flow.count == 0:
                return WindowSums(observed_at=now, window_seconds=self.window_seconds)

            return WindowSums(
                buyers_usd=max(flow.buy, 0.0),
                sellers_usd=max(flow.sell, 0.0),
                observed_at=now,
                window_seconds=self.window_seconds,
                source="local",
            )

    def trade_count(self, mint: str) -> int:
        return len(self._trades.get(mint, ()))

    async def restore(self, mint: str, now_ms: int | None = None) -> int:
        """从数据库恢复窗口内的成交, 返回恢复的条数"""
        if self.db is None:
            return 0
        trades = await self.db.get_trades(mint, self.window_seconds, now_ms=now_ms)
        async with self._lock:
            self._trades[mint] = deque(trades)
        if trades:
            logger.info(f"Restored {len(trades)} trades for {mint}")
        return len(trades)
