# autosell/trigger/cooldown.py
import asyncio
import logging
import time

from autosell.storage.database import Database

logger = logging.getLogger(__name__)


class CooldownState:
    """单个 mint 的卖出冷却, 只在至少一个钱包卖出成功后才会被盖戳"""

    def __init__(self, mint: str, cooldown_ms: int, db: Database | None = None):
        self.mint = mint
        self.cooldown_ms = cooldown_ms
        self.db = db
        self.last_sell_at = 0
        self._lock = asyncio.Lock()

    async def load(self) -> None:
        if self.db is None:
            return
        self.last_sell_at = await self.db.get_last_sell_at(self.mint)
        if self.last_sell_at:
            logger.info(f"Loaded cooldown for {self.mint}: last sell at {self.last_sell_at}")

    def remaining_ms(self, now_ms: int | None = None) -> int:
        if now_ms is None:
            now_ms = int(time.time() * 1000)
        if not self.last_sell_at:
            return 0
        return max(0, self.cooldown_ms - (now_ms - self.last_sell_at))

    def in_cooldown(self, now_ms: int | None = None) -> bool:
        return self.remaining_ms(now_ms) > 0

    async def stamp(self, now_ms: int | None = None) -> None:
        if now_ms is None:
            now_ms = int(time.time() * 1000)
        async with self._lock:
            # 并发的波次可能乱序完成, 只向前推进
            self.last_sell_at = max(self.last_sell_at, now_ms)
            if self.db:
                await self.db.set_last_sell_at(self.mint, self.last_sell_at)
