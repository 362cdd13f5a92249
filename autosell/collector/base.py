# autosell/collector/base.py
import asyncio
import logging
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class BaseCollector(ABC):
    """后台采集任务基类: start 创建任务, stop 取消并等待退出"""

    def __init__(self, mint: str):
        self.mint = mint
        self.running = False
        self._task: asyncio.Task[None] | None = None

    async def close(self) -> None:
        pass

    async def start(self) -> None:
        self.running = True
        self._task = asyncio.create_task(self._run())
        logger.info(f"{self.__class__.__name__} started for {self.mint}")

    async def stop(self) -> None:
        self.running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await self.close()
        logger.info(f"{self.__class__.__name__} stopped for {self.mint}")

    @abstractmethod
    async def _run(self) -> None:
        pass
