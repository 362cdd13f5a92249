# autosell/collector/helius_webhook.py
import logging
import math
import time
from collections.abc import Awaitable, Callable
from typing import Any

from autosell.storage.models import Trade

logger = logging.getLogger(__name__)

PriceLookup = Callable[[str], Awaitable[float]]

# 系统账户 (11111111111111111111111111111111) 结尾的地址不算用户
_SYSTEM_SUFFIX = "1" * 32


def looks_like_user(account: str | None) -> bool:
    return bool(account and not account.endswith(_SYSTEM_SUFFIX))


def _token_amount(transfer: dict[str, Any]) -> float | None:
    try:
        amount = float(transfer.get("tokenAmount") or 0)
    except (TypeError, ValueError):
        return None
    return amount if math.isfinite(amount) else None


def extract_rows(body: Any) -> list[dict[str, Any]]:
    """Helius 推送可能是数组, 也可能包在 events / data 里"""
    if isinstance(body, list):
        rows = body
    elif isinstance(body, dict):
        rows = body.get("events") or body.get("data") or []
    else:
        rows = []
    return [r for r in rows if isinstance(r, dict)] if isinstance(rows, list) else []


async def parse_webhook_trades(
    rows: list[dict[str, Any]],
    price_lookup: PriceLookup,
    mint: str | None = None,
) -> list[Trade]:
    """每笔交易每个 mint 取转账量最大的一条作为成交

    指定 mint 时只解析该 mint 的转账.
    """
    prices: dict[str, float] = {}
    trades: list[Trade] = []

    for tx in rows:
        try:
            ts = int(tx.get("timestamp") or time.time())
        except (TypeError, ValueError):
            logger.warning(f"Skipping webhook row with bad timestamp: {tx.get('signature')}")
            continue

        groups: dict[str, list[tuple[float, dict[str, Any]]]] = {}
        for t in tx.get("tokenTransfers") or []:
            if not isinstance(t, dict) or not t.get("tokenAddress"):
                continue
            amount = _token_amount(t)
            if amount is None:
                logger.warning(
                    f"Skipping transfer with bad tokenAmount {t.get('tokenAmount')!r} "
                    f"in {tx.get('signature')}"
                )
                continue
            if amount == 0:
                continue
            groups.setdefault(t["tokenAddress"], []).append((amount, t))

        for token, group in groups.items():
            if mint and token != mint:
                continue
            amount, primary = max(group, key=lambda item: item[0])
            token_amount = abs(amount)
            side = "buy" if looks_like_user(primary.get("toUserAccount")) else "sell"

            if token not in prices:
                prices[token] = await price_lookup(token)

            trades.append(
                Trade(
                    mint=token,
                    timestamp=ts * 1000,
                    side=side,
                    usd_amount=token_amount * prices[token],
                    signature=tx.get("signature"),
                    token_amount=token_amount,
                )
            )

    if trades:
        logger.debug(f"Parsed {len(trades)} trades from {len(rows)} webhook rows")
    return trades
