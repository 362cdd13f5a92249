# autosell/trigger/engine.py
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Protocol

from autosell.config import TriggerConfig
from autosell.execution.timeout import with_timeout
from autosell.storage.models import SellIntent, Trade, WindowSums
from autosell.trigger.cooldown import CooldownState

logger = logging.getLogger(__name__)

NET_NON_POSITIVE = "net non-positive"
BELOW_THRESHOLD = "below threshold"
COOLDOWN = "cooldown"
AMOUNT_TOO_SMALL = "amount too small"
NOT_A_BUY = "not a buy"
OTHER_MINT = "other mint"


class PriceOracle(Protocol):
    async def usd_per_base_unit(self, mint: str) -> float: ...


@dataclass
class NoSell:
    reason: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class Sell:
    intent: SellIntent


Decision = NoSell | Sell


class TriggerEngine:
    """根据窗口净流入决定是否卖出以及卖出规模

    netflow 和 perbuy 两种模式共用同一套阈值, 冷却和定价逻辑.
    """

    def __init__(
        self,
        mint: str,
        config: TriggerConfig,
        cooldown: CooldownState,
        oracle: PriceOracle,
    ):
        self.mint = mint
        self.config = config
        self.cooldown = cooldown
        self.oracle = oracle

    def size_usd(self, net: float) -> float:
        sell_usd = net * self.config.net_fraction
        if self.config.max_sell_usd > 0:
            sell_usd = min(sell_usd, self.config.max_sell_usd)
        return sell_usd

    async def evaluate(
        self,
        sums: WindowSums,
        now_ms: int | None = None,
        reason: str | None = None,
    ) -> Decision:
        if now_ms is None:
            now_ms = int(time.time() * 1000)

        net = sums.buyers_usd - sums.sellers_usd
        base = {"net": net, "buyers_usd": sums.buyers_usd, "sellers_usd": sums.sellers_usd}

        if net <= 0:
            return NoSell(NET_NON_POSITIVE, base)

        if net < self.config.min_net_usd:
            return NoSell(BELOW_THRESHOLD, {**base, "threshold": self.config.min_net_usd})

        remaining = self.cooldown.remaining_ms(now_ms)
        if remaining > 0:
            return NoSell(COOLDOWN, {**base, "cooldown_remaining_s": math.ceil(remaining / 1000)})

        sell_usd = self.size_usd(net)
        price = await with_timeout(
            self.oracle.usd_per_base_unit(self.mint),
            self.config.price_timeout_seconds,
            "price oracle",
        )
        if price <= 0:
            return NoSell(AMOUNT_TOO_SMALL, {**base, "sell_usd": sell_usd, "price": price})

        sell_tokens = math.floor(sell_usd / price)
        if sell_tokens <= 0:
            return NoSell(AMOUNT_TOO_SMALL, {**base, "sell_usd": sell_usd, "price": price})

        intent = SellIntent(
            mint=self.mint,
            net_usd=net,
            sell_fraction=self.config.net_fraction,
            sell_usd=sell_usd,
            sell_tokens=sell_tokens,
            percentage_of_balance=self.config.percentage_of_balance,
            slippage_bps=self.config.slippage_bps,
            reason=reason or self.config.mode,
        )
        logger.info(
            f"Sell trigger: net ${net:,.2f} x {self.config.net_fraction} = ${sell_usd:,.2f} "
            f"(~{sell_tokens} base units), selling {intent.percentage_of_balance}% of balances"
        )
        return Sell(intent)

    async def evaluate_trade(self, trade: Trade, now_ms: int | None = None) -> Decision:
        """perbuy 模式: 每笔买单单独按同一套规则评估"""
        if trade.mint != self.mint:
            return NoSell(OTHER_MINT, {"mint": trade.mint})
        if trade.side != "buy":
            return NoSell(NOT_A_BUY, {"side": trade.side, "mint": trade.mint})

        sums = WindowSums(
            buyers_usd=trade.usd_amount,
            sellers_usd=0.0,
            observed_at=trade.timestamp,
            window_seconds=0,
            source="trade",
        )
        return await self.evaluate(sums, now_ms=now_ms, reason="perbuy")
