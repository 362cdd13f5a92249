# autosell/execution/orchestrator.py
"""多钱包并发卖出

每个钱包独立执行: 查余额 -> 计算数量 -> 构建交易 (主路径 + 备用路径)
-> 本地签名 -> 多通道广播竞速. 单个钱包的失败不会中断整批.
"""

import asyncio
import logging
from collections.abc import Iterable
from decimal import Decimal

from autosell.client.models import LAMPORTS_PER_SOL
from autosell.client.solana_rpc import SolanaRpc
from autosell.config import ExecutionConfig
from autosell.errors import BroadcastError
from autosell.execution.broadcast import BroadcastChannel, race_broadcast
from autosell.execution.builders import SwapBuilder, build_with_fallback
from autosell.execution.signer import WalletKey, sign_transaction
from autosell.execution.timeout import with_timeout
from autosell.storage.models import BatchResult, BatchSummary, WalletSellResult

logger = logging.getLogger(__name__)


def compute_sell_amount(balance_raw: int, percentage: float) -> int:
    """floor(balance_raw * percentage / 100), 全程整数运算, 大余额不丢精度"""
    if balance_raw <= 0 or percentage <= 0:
        return 0
    num, den = Decimal(str(percentage)).as_integer_ratio()
    return balance_raw * num // (den * 100)


def summarize(results: list[WalletSellResult]) -> BatchResult:
    successful = [r for r in results if r.success]
    summary = BatchSummary(
        total_wallets=len(results),
        successful=len(successful),
        failed=len(results) - len(successful),
        total_sold_tokens=sum(r.sold_amount or 0.0 for r in successful),
        total_received_sol=sum(r.received_amount or 0.0 for r in successful),
    )
    return BatchResult(summary=summary, per_wallet=results)


class WalletSellOrchestrator:
    def __init__(
        self,
        rpc: SolanaRpc,
        builders: list[SwapBuilder],
        channels: list[BroadcastChannel],
        config: ExecutionConfig | None = None,
    ):
        self.rpc = rpc
        self.builders = builders
        self.channels = channels
        self.config = config or ExecutionConfig()

    async def sol_balance(self, address: str) -> float | None:
        """卖出前的 SOL 余额, 仅用于记录; 查询失败返回 None"""
        try:
            lamports = await with_timeout(
                self.rpc.get_sol_balance(address),
                self.config.balance_timeout_seconds,
                "sol balance fetch",
            )
        except Exception as e:
            logger.warning(f"SOL balance fetch failed for {address}: {e}")
            return None
        return lamports / LAMPORTS_PER_SOL

    async def sell_wallet(
        self,
        wallet: WalletKey,
        mint: str,
        percentage: float,
        slippage_bps: int,
    ) -> WalletSellResult:
        address = wallet.address

        try:
            balance = await with_timeout(
                self.rpc.get_token_balance(address, mint),
                self.config.balance_timeout_seconds,
                "balance fetch",
            )
        except Exception as e:
            return WalletSellResult(address, False, error=f"Failed to get token accounts: {e}")

        if balance.raw_amount <= 0 or balance.ui_amount <= 0:
            return WalletSellResult(
                address, False, error=f"No tokens to sell (balance: {balance.ui_amount})"
            )

        sell_raw = compute_sell_amount(balance.raw_amount, percentage)
        sell_ui = balance.ui_amount * percentage / 100
        if sell_raw <= 0 or sell_ui < self.config.min_sell_ui:
            return WalletSellResult(
                address,
                False,
                error=f"Sell amount too small ({sell_raw} raw, {sell_ui} UI)",
            )

        sol_balance = await self.sol_balance(address)
        logger.info(
            f"Wallet {address}: balance={balance.ui_amount}, sol={sol_balance}, "
            f"selling {percentage}% = {sell_ui} tokens ({sell_raw} raw)"
        )

        outcome = await build_with_fallback(self.builders, address, mint, sell_raw, slippage_bps)
        if outcome.build is None:
            return WalletSellResult(
                address,
                False,
                error=str(outcome.error),
                build_attempts=outcome.attempts,
            )
        build = outcome.build

        try:
            signed = sign_transaction(wallet, build.tx_base64)
        except Exception as e:
            return WalletSellResult(
                address,
                False,
                error=f"Signing failed: {e}",
                path=build.path,
                build_attempts=outcome.attempts,
            )

        broadcast_errors: list[str] = []
        for _ in range(1 + self.config.broadcast_retries):
            try:
                signature, channel = await race_broadcast(
                    self.channels, signed, self.config.broadcast_timeout_seconds
                )
            except BroadcastError as e:
                broadcast_errors.extend(e.errors)
                logger.warning(f"Broadcast failed for {address}: {e}")
                continue

            logger.info(f"Sold {sell_ui} tokens from {address} via {build.path}/{channel}: {signature}")
            return WalletSellResult(
                address,
                True,
                signature=signature,
                sold_amount=sell_ui,
                received_amount=build.expected_out_raw / LAMPORTS_PER_SOL,
                path=build.path,
                build_attempts=outcome.attempts,
                broadcast_errors=broadcast_errors,
                sol_balance=sol_balance,
            )

        return WalletSellResult(
            address,
            False,
            error=str(BroadcastError(broadcast_errors)),
            path=build.path,
            build_attempts=outcome.attempts,
            broadcast_errors=broadcast_errors,
            sol_balance=sol_balance,
        )

    async def sell_all(
        self,
        wallets: Iterable[WalletKey],
        mint: str,
        percentage: float,
        slippage_bps: int,
    ) -> BatchResult:
        selected = list(wallets)[: self.config.limit_wallets]
        if not selected:
            return summarize([])

        semaphore = asyncio.Semaphore(self.config.max_concurrency)

        async def run(wallet: WalletKey) -> WalletSellResult:
            async with semaphore:
                try:
                    return await self.sell_wallet(wallet, mint, percentage, slippage_bps)
                except Exception as e:
                    logger.error(f"Wallet task failed for {wallet.address}: {e}")
                    return WalletSellResult(
                        wallet.address, False, error=f"Task execution failed: {e}"
                    )

        tasks = {asyncio.create_task(run(w)): w for w in selected}
        pending = set(tasks)
        results: list[WalletSellResult] = []

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.wave_timeout_seconds
        try:
            while pending:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                done, pending = await asyncio.wait(
                    pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
                )
                # 按完成顺序收集, 调用方按地址匹配
                for task in done:
                    results.append(task.result())

            if pending:
                logger.warning(f"Wave deadline exceeded, abandoning {len(pending)} wallets")
                for task in pending:
                    results.append(
                        WalletSellResult(tasks[task].address, False, error="wave deadline exceeded")
                    )
        finally:
            # 波次本身被取消时, 钱包任务也不能继续广播
            unfinished = [t for t in tasks if not t.done()]
            for task in unfinished:
                task.cancel()
            if unfinished:
                await asyncio.gather(*unfinished, return_exceptions=True)

        batch = summarize(results)
        logger.info(
            f"Sell wave for {mint}: {batch.summary.successful}/{batch.summary.total_wallets} "
            f"succeeded, sold {batch.summary.total_sold_tokens:.6f} tokens, "
            f"received {batch.summary.total_received_sol:.6f} SOL"
        )
        return batch
