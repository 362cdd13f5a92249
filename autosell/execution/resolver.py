# autosell/execution/resolver.py
"""执行器选择: 配置了外部执行器时走 HTTP, 否则 (或不可达时) 走进程内流水线.
两条路径都归一化为 ExecutionResult, 调用方不感知实际走了哪条."""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any

import aiohttp

from autosell.config import ExecutorConfig
from autosell.errors import ExecutorUnavailable, ValidationError
from autosell.execution.orchestrator import WalletSellOrchestrator, summarize
from autosell.execution.signer import WalletKey
from autosell.storage.models import ExecutionResult, SellIntent, WalletSellResult

logger = logging.getLogger(__name__)


@dataclass
class SellPayload:
    mint: str
    private_keys: list[str]
    percentage: float = 25
    slippage_bps: int = 2000
    reason: str = "netflow"
    net_usd: float = 0.0
    sell_usd: float = 0.0
    limit_wallets: int | None = None

    @classmethod
    def from_intent(cls, intent: SellIntent, private_keys: list[str]) -> "SellPayload":
        return cls(
            mint=intent.mint,
            private_keys=private_keys,
            percentage=intent.percentage_of_balance,
            slippage_bps=intent.slippage_bps,
            reason=intent.reason,
            net_usd=intent.net_usd,
            sell_usd=intent.sell_usd,
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "action": "SELL",
            "mint": self.mint,
            "privateKeys": self.private_keys,
            "percentage": self.percentage,
            "slippageBps": self.slippage_bps,
            "reason": self.reason,
            "net_usd": self.net_usd,
            "sell_usd": self.sell_usd,
        }

    def validate(self) -> None:
        if not self.mint:
            raise ValidationError("mint is required")
        if not self.private_keys:
            raise ValidationError("at least one private key is required")
        if self.percentage <= 0 or self.percentage > 100:
            raise ValidationError(f"Invalid percentage: {self.percentage}")


class ExecutorResolver:
    def __init__(
        self,
        orchestrator: WalletSellOrchestrator,
        config: ExecutorConfig | None = None,
        session: aiohttp.ClientSession | None = None,
    ):
        self.orchestrator = orchestrator
        self.config = config or ExecutorConfig()
        self._session = session

    async def execute(self, payload: SellPayload) -> ExecutionResult:
        if self.config.configured:
            try:
                return await self._execute_external(payload)
            except ExecutorUnavailable as e:
                logger.warning(f"External executor unavailable, using internal pipeline: {e}")
        return await self._execute_internal(payload)

    async def _execute_external(self, payload: SellPayload) -> ExecutionResult:
        assert self.config.url is not None and self.config.secret is not None
        if self._session is None:
            raise ExecutorUnavailable("HTTP session not initialized")

        async def post() -> tuple[int, str]:
            assert self._session is not None
            response = await self._session.post(
                self.config.url,
                json=payload.to_wire(),
                headers={"Content-Type": "application/json", "X-Auth": self.config.secret},
            )
            return response.status, await response.text()

        try:
            status, text = await asyncio.wait_for(post(), timeout=self.config.timeout_seconds)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ExecutorUnavailable(f"{self.config.url}: {e!r}") from e

        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            data = {"raw": text}
        if not isinstance(data, dict):
            data = {"raw": data}

        ok = 200 <= status < 300
        if not ok:
            logger.error(f"External executor returned {status}: {text[:200]}")
        return ExecutionResult(ok=ok, status=status, data=data)

    async def _execute_internal(self, payload: SellPayload) -> ExecutionResult:
        try:
            payload.validate()
        except ValidationError as e:
            return ExecutionResult(ok=False, status=400, data={"success": False, "error": str(e)})

        limit = payload.limit_wallets or self.orchestrator.config.limit_wallets
        wallets: list[WalletKey] = []
        invalid: list[WalletSellResult] = []
        for secret in payload.private_keys[:limit]:
            try:
                wallets.append(WalletKey.from_secret(secret))
            except ValidationError:
                invalid.append(
                    WalletSellResult("invalid", False, error="Invalid private key format")
                )

        try:
            batch = await self.orchestrator.sell_all(
                wallets, payload.mint, payload.percentage, payload.slippage_bps
            )
        except Exception as e:
            logger.error(f"Internal sell pipeline failed: {e}")
            return ExecutionResult(ok=False, status=500, data={"success": False, "error": str(e)})

        if invalid:
            batch = summarize(batch.per_wallet + invalid)
        return ExecutionResult(ok=True, status=200, data=batch.to_dict())
