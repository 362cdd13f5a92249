from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from autosell.errors import PhaseTimeout

T = TypeVar("T")


async def with_timeout(aw: Awaitable[T], seconds: float, phase: str) -> T:
    """
    Await with a deadline. If it takes longer than seconds, raise PhaseTimeout.

    The awaitable is cancelled on timeout; a request already sent to a remote
    service may still be processed there.
    """
    try:
        return await asyncio.wait_for(aw, timeout=seconds)
    except asyncio.TimeoutError as exc:
        raise PhaseTimeout(phase, seconds) from exc
