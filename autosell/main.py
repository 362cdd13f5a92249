# autosell/main.py
import asyncio
import logging
import math
import signal
import time
from dataclasses import asdict
from pathlib import Path
from typing import Any

import aiohttp

from autosell.aggregator.window import WindowStore
from autosell.api.server import ApiServer
from autosell.client.bloxroute import BloxrouteClient
from autosell.client.jupiter import JupiterClient
from autosell.client.solana_rpc import SolanaRpc
from autosell.collector.helius_webhook import parse_webhook_trades
from autosell.collector.netflow_source import NetflowPoller, NetflowSource
from autosell.config import Config, load_config
from autosell.errors import ValidationError
from autosell.execution.broadcast import BroadcastChannel, RelayChannel, RpcChannel
from autosell.execution.builders import AggregatorSwapBuilder, RelaySwapBuilder, SwapBuilder
from autosell.execution.orchestrator import WalletSellOrchestrator
from autosell.execution.resolver import ExecutorResolver, SellPayload
from autosell.notifier.formatter import format_status, format_tick_result, format_wave_report
from autosell.notifier.telegram import TelegramNotifier
from autosell.storage.database import Database
from autosell.storage.models import ExecutionResult, SellWave, Trade
from autosell.trigger.cooldown import CooldownState
from autosell.trigger.engine import Decision, NoSell, TriggerEngine

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class AutoSellService:
    def __init__(self, config: Config):
        if not config.mint:
            raise ValidationError("mint is required")
        self.config = config
        self.mint: str = config.mint
        self.db = Database(config.database.path)
        self.session: aiohttp.ClientSession | None = None

        self.jupiter = JupiterClient(
            base_url=config.jupiter.base_url,
            api_key=config.jupiter.api_key,
            quote_mint=config.jupiter.quote_mint,
            quote_decimals=config.jupiter.quote_decimals,
            price_url=config.jupiter.price_url,
        )
        self.bloxroute = (
            BloxrouteClient(
                api_key=config.bloxroute.api_key,
                region_url=config.bloxroute.region_url,
                submit_url=config.bloxroute.submit_url,
            )
            if config.bloxroute.api_key
            else None
        )
        self.rpc = SolanaRpc(config.rpc.url, max_retries=config.execution.rpc_max_retries)

        trigger = config.trigger
        self.store = WindowStore(trigger.window_seconds, trigger.push_grace_seconds, db=self.db)
        self.cooldown = CooldownState(self.mint, trigger.cooldown_ms, db=self.db)
        self.engine = TriggerEngine(self.mint, trigger, self.cooldown, self.jupiter)

        builders, channels = self._build_paths()
        self.orchestrator = WalletSellOrchestrator(self.rpc, builders, channels, config.execution)
        self.resolver = ExecutorResolver(self.orchestrator, config.executor)
        self.netflow_source = NetflowSource(config.netflow_source)
        self.poller = NetflowPoller(
            self.mint, self.netflow_source, self.store, trigger.poll_interval_seconds
        )

        self.notifier = (
            TelegramNotifier(config.telegram.bot_token, config.telegram.chat_id)
            if config.telegram
            else None
        )
        self.api = ApiServer(self, config.api) if config.api.enabled else None

        self.paused = False
        self.running = False
        self.last_wave: SellWave | None = None
        self.start_time = time.time()
        # 评估 -> 执行 -> 盖冷却戳 必须串行, 否则并发触发会在冷却期内重复卖出
        self._dispatch_lock = asyncio.Lock()

    def _build_paths(self) -> tuple[list[SwapBuilder], list[BroadcastChannel]]:
        execution = self.config.execution
        builders: list[SwapBuilder] = []
        channels: list[BroadcastChannel] = []
        if self.bloxroute:
            builders.append(
                RelaySwapBuilder(
                    self.bloxroute, execution.build_timeout_seconds, execution.relay_compute_price
                )
            )
            channels.append(RelayChannel(self.bloxroute))
        builders.append(
            AggregatorSwapBuilder(
                self.jupiter, execution.build_timeout_seconds, execution.priority_fee_lamports
            )
        )
        channels.append(RpcChannel(self.rpc))
        return builders, channels

    async def init(self) -> None:
        Path(self.config.database.path).parent.mkdir(parents=True, exist_ok=True)

        await self.db.init()
        self.session = aiohttp.ClientSession()
        self.resolver._session = self.session
        self.netflow_source._session = self.session

        await self.jupiter.init()
        if self.bloxroute:
            await self.bloxroute.init()
        await self.rpc.init()

        await self.cooldown.load()
        await self.store.restore(self.mint)
        waves = await self.db.get_recent_waves(self.mint, limit=1)
        self.last_wave = waves[0] if waves else None

        if self.notifier:
            self.notifier.on_status = self._on_status
            self.notifier.on_pause = self.pause
            self.notifier.on_resume = self.resume
            self.notifier.on_sell = self._on_sell

    async def close(self) -> None:
        await self.jupiter.close()
        if self.bloxroute:
            await self.bloxroute.close()
        await self.rpc.close()
        if self.session:
            await self.session.close()
            self.session = None
        await self.db.close()

    async def _on_status(self) -> str:
        return format_status(await self.get_status())

    async def _on_sell(self) -> str:
        return format_tick_result(await self.evaluate_and_execute(reason="manual"))

    async def pause(self) -> None:
        self.paused = True
        logger.info(f"Auto-sell paused for {self.mint}")

    async def resume(self) -> None:
        self.paused = False
        logger.info(f"Auto-sell resumed for {self.mint}")

    async def ingest_trade(self, trade: Trade) -> dict[str, Any]:
        await self.store.record(trade)
        response: dict[str, Any] = {"ok": True, "recorded": 1}

        if self.config.trigger.mode != "perbuy" or trade.side != "buy" or trade.mint != self.mint:
            return response

        async with self._dispatch_lock:
            if self.paused:
                return {**response, "reason": "paused"}
            try:
                decision = await self.engine.evaluate_trade(trade)
            except Exception as e:
                logger.error(f"Per-buy evaluation failed: {e}")
                return {"ok": False, "error": str(e)}
            return {**response, **await self._dispatch(decision)}

    async def ingest_webhook(self, rows: list[dict[str, Any]]) -> int:
        trades = await parse_webhook_trades(rows, self.jupiter.usd_price, mint=self.mint)
        for trade in trades:
            await self.ingest_trade(trade)
        return len(trades)

    async def ingest_push(
        self,
        buyers_usd: float,
        sellers_usd: float,
        window_seconds: int | None = None,
    ) -> None:
        await self.store.accept_push(
            self.mint, buyers_usd, sellers_usd, window_seconds=window_seconds
        )

    async def get_status(self) -> dict[str, Any]:
        sums = await self.store.evict_and_sum(self.mint)
        return {
            "mint": self.mint,
            "mode": self.config.trigger.mode,
            "buyers_usd": sums.buyers_usd,
            "sellers_usd": sums.sellers_usd,
            "net": sums.net,
            "source": sums.source,
            "window_seconds": self.config.trigger.window_seconds,
            "trades_in_window": self.store.trade_count(self.mint),
            "cooldown_remaining_s": math.ceil(self.cooldown.remaining_ms() / 1000),
            "paused": self.paused,
            "last_wave": asdict(self.last_wave) if self.last_wave else None,
        }

    async def evaluate_and_execute(
        self, reason: str = "netflow", now_ms: int | None = None
    ) -> dict[str, Any]:
        """评估一次窗口; 始终返回结构化结果, 不向调用方抛异常"""
        if self.config.trigger.mode == "perbuy" and reason == "netflow":
            return {"ok": True, "mode": "perbuy", "reason": "handled by ingest-trade"}

        async with self._dispatch_lock:
            if self.paused:
                return {"ok": True, "reason": "paused"}
            try:
                sums = await self.store.evict_and_sum(self.mint, now_ms)
                decision = await self.engine.evaluate(sums, now_ms=now_ms, reason=reason)
            except Exception as e:
                logger.error(f"Evaluation failed: {e}")
                return {"ok": False, "error": str(e)}
            result = await self._dispatch(decision, now_ms)
            if isinstance(decision, NoSell):
                return result
            return {**result, "buyers_usd": sums.buyers_usd, "sellers_usd": sums.sellers_usd}

    async def _dispatch(self, decision: Decision, now_ms: int | None = None) -> dict[str, Any]:
        if isinstance(decision, NoSell):
            return {"ok": True, "reason": decision.reason, **decision.details}

        private_keys = self.config.wallets.resolve()
        if not private_keys:
            return {"ok": True, "reason": "no auto-sell config", "wallets_count": 0}

        intent = decision.intent
        started_at = now_ms if now_ms is not None else _now_ms()
        try:
            result = await self.resolver.execute(SellPayload.from_intent(intent, private_keys))
        except Exception as e:
            logger.error(f"Sell execution failed: {e}")
            return {"ok": False, "error": str(e)}

        await self._record_wave(intent.reason, intent.net_usd, intent.sell_usd, started_at, result)

        if result.successful >= 1:
            try:
                await self.cooldown.stamp(now_ms)
            except Exception as e:
                # 内存中的冷却戳已推进, 只是没有落盘
                logger.error(f"Failed to persist cooldown for {self.mint}: {e}")

        if not result.ok:
            return {
                "ok": False,
                "error": "Executor failed",
                "status": result.status,
                "details": result.data,
            }

        return {
            "ok": True,
            "mode": intent.reason,
            "net": intent.net_usd,
            "sell_usd": intent.sell_usd,
            "sell_tokens": intent.sell_tokens,
            "result": result.data,
        }

    async def _record_wave(
        self,
        reason: str,
        net_usd: float,
        sell_usd: float,
        started_at: int,
        result: ExecutionResult,
    ) -> None:
        summary = result.data.get("summary") or {}
        successful = result.successful
        wave = SellWave(
            id=None,
            mint=self.mint,
            started_at=started_at,
            reason=reason,
            net_usd=net_usd,
            sell_usd=sell_usd,
            successful=successful,
            failed=int(summary.get("failed", 0 if result.ok else 1)),
            total_sold_tokens=float(summary.get("totalSoldTokens", summary.get("total_sold_tokens", 0))),
            total_received_sol=float(
                summary.get("totalReceivedSOL", summary.get("total_received_sol", 0))
            ),
        )
        try:
            wave.id = await self.db.insert_sell_wave(wave)
        except Exception as e:
            logger.error(f"Failed to record sell wave: {e}")
        self.last_wave = wave

        if self.notifier:
            try:
                await self.notifier.send_message(
                    format_wave_report(wave, result.data.get("results"))
                )
            except Exception as e:
                logger.error(f"Failed to send wave report: {e}")

    async def _netflow_loop(self) -> None:
        """定时评估窗口净流入"""
        interval = self.config.trigger.poll_interval_seconds

        while self.running:
            await asyncio.sleep(interval)
            try:
                result = await self.evaluate_and_execute()
                if not result.get("ok"):
                    logger.warning(f"Netflow tick failed: {result.get('error')}")
                elif "result" in result:
                    logger.info(f"Netflow tick sold: net ${result['net']:,.2f}")
            except Exception as e:
                logger.error(f"Netflow tick error: {e}")

    async def _cleanup_old_data(self) -> None:
        """定时清理过期数据"""
        interval = self.config.database.cleanup_hours * 3600
        retention_days = self.config.database.retention_days

        while self.running:
            await asyncio.sleep(interval)
            try:
                deleted = await self.db.cleanup_old_data(retention_days)
                total = sum(deleted.values())
                if total > 0:
                    logger.info(f"Cleaned up {total} old records: {deleted}")
            except Exception as e:
                logger.error(f"Failed to cleanup old data: {e}")

    async def run(self) -> None:
        await self.init()
        self.running = True

        if self.netflow_source.configured:
            await self.poller.start()

        if self.notifier:
            await self.notifier.start_polling()

        if self.api:
            await self.api.start()

        tasks = [asyncio.create_task(self._cleanup_old_data())]
        if self.config.trigger.mode == "netflow":
            tasks.append(asyncio.create_task(self._netflow_loop()))

        logger.info(
            f"Auto-sell started for {self.mint} ({self.config.trigger.mode} mode, "
            f"{len(self.config.wallets.resolve())} wallets)"
        )

        stop_event = asyncio.Event()
        loop = asyncio.get_event_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_event.set)

        await stop_event.wait()

        self.running = False
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if self.poller.running:
            await self.poller.stop()
        if self.api:
            await self.api.stop()
        if self.notifier:
            await self.notifier.stop_polling()
        await self.close()

        logger.info("Auto-sell stopped")


async def main() -> None:
    config = load_config(Path("config.yaml"))
    service = AutoSellService(config)
    await service.run()


if __name__ == "__main__":
    asyncio.run(main())
