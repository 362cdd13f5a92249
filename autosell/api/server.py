# autosell/api/server.py
"""HTTP 入口: 成交推送, Helius webhook, 状态查询与手动触发"""

import json
import logging
import time
from typing import TYPE_CHECKING, Any, Literal

import pydantic
from aiohttp import web
from pydantic import BaseModel, Field

from autosell.collector.helius_webhook import extract_rows
from autosell.config import ApiConfig
from autosell.errors import AutoSellError
from autosell.storage.models import Trade

if TYPE_CHECKING:
    from autosell.main import AutoSellService

logger = logging.getLogger(__name__)


class TradeIn(BaseModel):
    ts: int = Field(gt=0)  # ms
    side: Literal["buy", "sell"]
    usd: float = Field(ge=0, allow_inf_nan=False)
    signature: str | None = None


class IngestBody(BaseModel):
    trades: list[TradeIn] | None = None
    buyers_usd: float | None = Field(default=None, ge=0, allow_inf_nan=False)
    sellers_usd: float | None = Field(default=None, ge=0, allow_inf_nan=False)
    window_seconds: int | None = Field(default=None, gt=0)


def _error(message: str, status: int = 400, **extra: Any) -> web.Response:
    return web.json_response({"ok": False, "error": message, **extra}, status=status)


class ApiServer:
    def __init__(self, service: "AutoSellService", config: ApiConfig | None = None):
        self.service = service
        self.config = config or ApiConfig()
        self.app = web.Application()
        self.runner: web.AppRunner | None = None
        self.start_time = time.time()

        self.app.router.add_post("/ingest-trade", self.ingest_trade_handler)
        self.app.router.add_post("/webhooks/helius", self.helius_webhook_handler)
        self.app.router.add_get("/status", self.status_handler)
        self.app.router.add_post("/tick", self.tick_handler)
        self.app.router.add_get("/health", self.health_handler)

    async def _read_json(self, request: web.Request) -> Any:
        try:
            return await request.json()
        except json.JSONDecodeError as e:
            raise web.HTTPBadRequest(
                text=json.dumps({"ok": False, "error": f"invalid JSON: {e}"}),
                content_type="application/json",
            ) from e

    async def ingest_trade_handler(self, request: web.Request) -> web.Response:
        raw = await self._read_json(request)
        try:
            body = IngestBody.model_validate(raw)
        except pydantic.ValidationError as e:
            return _error("invalid body", details=json.loads(e.json()))

        mint = self.service.mint
        recorded = 0
        results: list[dict[str, Any]] = []
        try:
            if body.buyers_usd is not None or body.sellers_usd is not None:
                await self.service.ingest_push(
                    body.buyers_usd or 0.0, body.sellers_usd or 0.0, body.window_seconds
                )
            for t in body.trades or []:
                result = await self.service.ingest_trade(
                    Trade(mint=mint, timestamp=t.ts, side=t.side, usd_amount=t.usd, signature=t.signature)
                )
                recorded += 1
                if "reason" in result or "result" in result or "error" in result:
                    results.append(result)
        except AutoSellError as e:
            return _error(str(e), recorded=recorded)

        return web.json_response({"ok": True, "recorded": recorded, "results": results})

    async def helius_webhook_handler(self, request: web.Request) -> web.Response:
        secret = self.config.webhook_secret
        if secret and request.headers.get("x-webhook-secret") != secret:
            return _error("Unauthorized", status=401)

        rows = extract_rows(await self._read_json(request))
        try:
            count = await self.service.ingest_webhook(rows)
        except AutoSellError as e:
            return _error(str(e))
        return web.json_response({"ok": True, "received": len(rows), "trades": count})

    async def status_handler(self, request: web.Request) -> web.Response:
        return web.json_response(await self.service.get_status())

    async def tick_handler(self, request: web.Request) -> web.Response:
        result = await self.service.evaluate_and_execute()
        return web.json_response(result, status=500 if result.get("error") else 200)

    async def health_handler(self, request: web.Request) -> web.Response:
        return web.json_response(
            {"ok": True, "uptime_seconds": int(time.time() - self.start_time)}
        )

    async def start(self) -> None:
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site = web.TCPSite(self.runner, self.config.host, self.config.port)
        await site.start()
        logger.info(f"API server listening on {self.config.host}:{self.config.port}")

    async def stop(self) -> None:
        if self.runner:
            await self.runner.cleanup()
            self.runner = None
