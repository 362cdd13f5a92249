# tests/trigger/test_engine.py
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from autosell.config import TriggerConfig
from autosell.errors import PhaseTimeout
from autosell.storage.models import Trade, WindowSums
from autosell.trigger.cooldown import CooldownState
from autosell.trigger.engine import (
    AMOUNT_TOO_SMALL,
    BELOW_THRESHOLD,
    COOLDOWN,
    NET_NON_POSITIVE,
    NOT_A_BUY,
    OTHER_MINT,
    NoSell,
    Sell,
    TriggerEngine,
)

MINT = "Mint111"
NOW = 1_706_600_000_000


def make_engine(price: float = 0.002, **overrides) -> TriggerEngine:
    config = TriggerConfig(**overrides)
    oracle = MagicMock()
    oracle.usd_per_base_unit = AsyncMock(return_value=price)
    return TriggerEngine(MINT, config, CooldownState(MINT, config.cooldown_ms), oracle)


def sums(buyers: float, sellers: float) -> WindowSums:
    return WindowSums(buyers_usd=buyers, sellers_usd=sellers, observed_at=NOW, window_seconds=120)


async def test_sell_sized_from_net_flow():
    engine = make_engine(price=0.002)

    decision = await engine.evaluate(sums(300, 100), now_ms=NOW)

    assert isinstance(decision, Sell)
    intent = decision.intent
    assert intent.net_usd == 200
    assert intent.sell_usd == 50
    assert intent.sell_tokens == 25000
    assert intent.percentage_of_balance == 25
    assert intent.slippage_bps == 2000
    assert intent.reason == "netflow"
    engine.oracle.usd_per_base_unit.assert_awaited_once_with(MINT)


@pytest.mark.parametrize("buyers,sellers", [(100, 100), (100, 300), (0, 0)])
async def test_net_non_positive(buyers, sellers):
    engine = make_engine()

    decision = await engine.evaluate(sums(buyers, sellers), now_ms=NOW)

    assert isinstance(decision, NoSell)
    assert decision.reason == NET_NON_POSITIVE
    engine.oracle.usd_per_base_unit.assert_not_awaited()


async def test_below_threshold():
    engine = make_engine(min_net_usd=500)

    decision = await engine.evaluate(sums(300, 100), now_ms=NOW)

    assert isinstance(decision, NoSell)
    assert decision.reason == BELOW_THRESHOLD
    assert decision.details["threshold"] == 500


async def test_threshold_is_inclusive():
    engine = make_engine(min_net_usd=200)
    decision = await engine.evaluate(sums(300, 100), now_ms=NOW)
    assert isinstance(decision, Sell)


async def test_cooldown_blocks_sell():
    engine = make_engine(cooldown_seconds=30)
    await engine.cooldown.stamp(NOW - 10_000)

    decision = await engine.evaluate(sums(300, 100), now_ms=NOW)

    assert isinstance(decision, NoSell)
    assert decision.reason == COOLDOWN
    assert decision.details["cooldown_remaining_s"] == 20


async def test_cooldown_expired_allows_sell():
    engine = make_engine(cooldown_seconds=30)
    await engine.cooldown.stamp(NOW - 30_000)

    decision = await engine.evaluate(sums(300, 100), now_ms=NOW)

    assert isinstance(decision, Sell)


async def test_unknown_price_is_amount_too_small():
    engine = make_engine(price=0.0)

    decision = await engine.evaluate(sums(300, 100), now_ms=NOW)

    assert isinstance(decision, NoSell)
    assert decision.reason == AMOUNT_TOO_SMALL


async def test_tiny_sell_is_amount_too_small():
    engine = make_engine(price=1000.0)

    decision = await engine.evaluate(sums(1.0, 0), now_ms=NOW)

    assert isinstance(decision, NoSell)
    assert decision.reason == AMOUNT_TOO_SMALL


async def test_max_sell_cap():
    engine = make_engine(price=0.002, max_sell_usd=10)

    decision = await engine.evaluate(sums(300, 100), now_ms=NOW)

    assert isinstance(decision, Sell)
    assert decision.intent.sell_usd == 10
    assert decision.intent.sell_tokens == 5000


async def test_repeated_evaluation_is_idempotent():
    engine = make_engine(cooldown_seconds=30)
    window = sums(300, 100)

    first = await engine.evaluate(window, now_ms=NOW)
    second = await engine.evaluate(window, now_ms=NOW)

    assert first == second
    assert engine.cooldown.last_sell_at == 0


async def test_evaluate_trade_per_buy():
    engine = make_engine(price=0.002)

    decision = await engine.evaluate_trade(Trade(MINT, NOW, "buy", 400), now_ms=NOW)

    assert isinstance(decision, Sell)
    assert decision.intent.net_usd == 400
    assert decision.intent.sell_usd == 100
    assert decision.intent.reason == "perbuy"


async def test_evaluate_trade_ignores_sells():
    engine = make_engine()

    decision = await engine.evaluate_trade(Trade(MINT, NOW, "sell", 400), now_ms=NOW)

    assert isinstance(decision, NoSell)
    assert decision.reason == NOT_A_BUY


async def test_evaluate_trade_respects_cooldown():
    engine = make_engine(cooldown_seconds=30)
    await engine.cooldown.stamp(NOW - 1_000)

    decision = await engine.evaluate_trade(Trade(MINT, NOW, "buy", 400), now_ms=NOW)

    assert isinstance(decision, NoSell)
    assert decision.reason == COOLDOWN


async def test_evaluate_trade_other_mint():
    engine = make_engine()

    decision = await engine.evaluate_trade(Trade("Other", NOW, "buy", 400), now_ms=NOW)

    assert isinstance(decision, NoSell)
    assert decision.reason == OTHER_MINT
    engine.oracle.usd_per_base_unit.assert_not_awaited()


async def test_hanging_price_oracle_times_out():
    engine = make_engine(price_timeout_seconds=0.05)

    async def hang(mint):
        await asyncio.sleep(3600)

    engine.oracle.usd_per_base_unit = AsyncMock(side_effect=hang)

    with pytest.raises(PhaseTimeout, match="price oracle"):
        await engine.evaluate(sums(300, 100), now_ms=NOW)
