# autosell/execution/broadcast.py
"""广播通道并发竞速: 第一个返回签名的通道胜出, 其余被取消"""

import asyncio
import logging
from abc import ABC, abstractmethod

from autosell.client.bloxroute import BloxrouteClient
from autosell.client.solana_rpc import SolanaRpc
from autosell.errors import BroadcastError
from autosell.execution.signer import SignedTransaction
from autosell.execution.timeout import with_timeout

logger = logging.getLogger(__name__)


class BroadcastChannel(ABC):
    name: str = ""

    @abstractmethod
    async def submit(self, tx: SignedTransaction) -> str | None:
        pass


class RelayChannel(BroadcastChannel):
    name = "bloxroute"

    def __init__(self, client: BloxrouteClient):
        self.client = client

    async def submit(self, tx: SignedTransaction) -> str | None:
        signature = await self.client.submit(tx.base64)
        # 接口只回 200 时, 交易签名就是我们自己签出来的那个
        return signature or tx.signature


class RpcChannel(BroadcastChannel):
    name = "rpc"

    def __init__(self, rpc: SolanaRpc):
        self.rpc = rpc

    async def submit(self, tx: SignedTransaction) -> str | None:
        return await self.rpc.send_raw_transaction(tx.raw)


async def race_broadcast(
    channels: list[BroadcastChannel],
    tx: SignedTransaction,
    timeout_seconds: float = 8,
) -> tuple[str, str]:
    """返回 (签名, 通道名); 全部失败时抛出 BroadcastError"""
    if not channels:
        raise BroadcastError(["no broadcast channel available"])

    tasks: dict[asyncio.Task[str | None], BroadcastChannel] = {
        asyncio.create_task(
            with_timeout(channel.submit(tx), timeout_seconds, f"{channel.name} submit")
        ): channel
        for channel in channels
    }
    errors: list[str] = []
    pending: set[asyncio.Task[str | None]] = set(tasks)

    try:
        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            for task in sorted(done, key=lambda t: channels.index(tasks[t])):
                channel = tasks[task]
                exc = task.exception()
                if exc is not None:
                    errors.append(f"{channel.name}: {exc}")
                    continue
                signature = task.result()
                if signature:
                    logger.debug(f"Broadcast won by {channel.name}: {signature}")
                    return signature, channel.name
                errors.append(f"{channel.name}: no signature returned")
    finally:
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    raise BroadcastError(errors)
