# autosell/execution/builders.py
"""Swap 交易构建策略: 按顺序尝试, 第一个成功的胜出"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from autosell.client.bloxroute import BloxrouteClient
from autosell.client.jupiter import JupiterClient
from autosell.client.models import SOL_MINT, SwapBuild, extract_base64_tx, extract_out_amount
from autosell.errors import APIError, SwapBuildError
from autosell.execution.timeout import with_timeout
from autosell.storage.models import PathAttempt

logger = logging.getLogger(__name__)


class SwapBuilder(ABC):
    name: str = ""

    def __init__(self, timeout_seconds: float = 12):
        self.timeout_seconds = timeout_seconds

    @abstractmethod
    async def build(
        self,
        owner: str,
        mint: str,
        amount_raw: int,
        slippage_bps: int,
    ) -> SwapBuild:
        pass


class RelaySwapBuilder(SwapBuilder):
    """bloXroute 低延迟路径"""

    name = "bloxroute"

    def __init__(
        self,
        client: BloxrouteClient,
        timeout_seconds: float = 12,
        compute_price: int = 8_000_000,
    ):
        super().__init__(timeout_seconds)
        self.client = client
        self.compute_price = compute_price

    async def build(self, owner: str, mint: str, amount_raw: int, slippage_bps: int) -> SwapBuild:
        try:
            data = await with_timeout(
                self.client.build_swap_alt(
                    owner=owner,
                    in_token=mint,
                    out_token="SOL",
                    in_amount=amount_raw,
                    slippage_bps=slippage_bps,
                    compute_price=self.compute_price,
                ),
                self.timeout_seconds,
                "bloXroute swap",
            )
        except APIError as e:
            raise SwapBuildError(f"bloXroute swap failed: {e.status} {e.body[:100]}", e.status, e.body) from e

        tx = extract_base64_tx(data)
        if not tx:
            raise SwapBuildError("bloXroute returned no transaction", 200)
        return SwapBuild(tx_base64=tx, path=self.name, expected_out_raw=extract_out_amount(data))


class AggregatorSwapBuilder(SwapBuilder):
    """Jupiter 公共聚合器: 先报价, 再根据报价构建交易, 两步各自限时"""

    name = "jupiter"

    def __init__(
        self,
        client: JupiterClient,
        timeout_seconds: float = 12,
        priority_fee_lamports: int = 30000,
    ):
        super().__init__(timeout_seconds)
        self.client = client
        self.priority_fee_lamports = priority_fee_lamports

    async def build(self, owner: str, mint: str, amount_raw: int, slippage_bps: int) -> SwapBuild:
        quote = await with_timeout(
            self.client.quote(mint, SOL_MINT, amount_raw, slippage_bps),
            self.timeout_seconds,
            "Jupiter quote",
        )
        tx = await with_timeout(
            self.client.build_swap(quote, owner, self.priority_fee_lamports),
            self.timeout_seconds,
            "Jupiter swap",
        )
        return SwapBuild(tx_base64=tx, path=self.name, expected_out_raw=int(quote["outAmount"]))


@dataclass
class BuildOutcome:
    build: SwapBuild | None
    attempts: list[PathAttempt] = field(default_factory=list)
    error: Exception | None = None


async def build_with_fallback(
    builders: list[SwapBuilder],
    owner: str,
    mint: str,
    amount_raw: int,
    slippage_bps: int,
) -> BuildOutcome:
    outcome = BuildOutcome(build=None)
    for builder in builders:
        try:
            build = await builder.build(owner, mint, amount_raw, slippage_bps)
        except Exception as e:
            # 每条路径的失败原因都保留, 然后尝试下一条
            status = getattr(e, "status", 0)
            outcome.attempts.append(PathAttempt(path=builder.name, status=status, error=str(e)))
            outcome.error = e
            logger.info(f"{builder.name} build failed for {owner}: {e}")
            continue

        outcome.attempts.append(PathAttempt(path=builder.name, status=200))
        outcome.build = build
        outcome.error = None
        return outcome

    if outcome.error is None:
        outcome.error = SwapBuildError("no swap builder available")
    return outcome
