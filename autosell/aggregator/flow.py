# autosell/aggregator/flow.py
from collections.abc import Iterable
from dataclasses import dataclass

from autosell.storage.models import Trade


@dataclass
class FlowResult:
    net: float = 0.0
    buy: float = 0.0
    sell: float = 0.0
    count: int = 0


def calculate_flow(trades: Iterable[Trade]) -> FlowResult:
    buy = 0.0
    sell = 0.0
    count = 0
    for t in trades:
        count += 1
        if t.side == "buy":
            buy += t.usd_amount
        else:
            sell += t.usd_amount

    if count == 0:
        return FlowResult()

    return FlowResult(net=buy - sell, buy=buy, sell=sell, count=count)
