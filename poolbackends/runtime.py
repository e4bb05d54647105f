"""Choice of the runtime that runs timeouts and blocking work."""

from __future__ import annotations

import asyncio
import enum
import threading
from datetime import timedelta
from typing import Any, Awaitable, Callable, TypeVar

T = TypeVar("T")


class SpawnBlockingError(Exception):
    """Raised when a function run on a blocking thread fails."""

    def __init__(self, payload: BaseException) -> None:
        self.payload = payload
        super().__init__(f"SpawnBlockingError: Panic: {payload!r}")


def _seconds(duration: float | timedelta) -> float:
    if isinstance(duration, timedelta):
        return duration.total_seconds()
    return float(duration)


class Runtime(enum.Enum):
    """Runtime implementation used by the managers."""

    ASYNCIO = "asyncio"

    async def timeout(self, duration: float | timedelta, awaitable: Awaitable[T]) -> T | None:
        """Await ``awaitable`` for at most ``duration``.

        Returns its result, or ``None`` if the time ran out; in that case the
        awaitable is cancelled.
        """
        try:
            return await asyncio.wait_for(awaitable, _seconds(duration))
        except asyncio.TimeoutError:
            return None

    async def spawn_blocking(self, func: Callable[[], T]) -> T:
        """Run ``func`` on a thread where blocking is acceptable."""
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, func)
        except Exception as exc:
            raise SpawnBlockingError(exc) from exc

    def spawn_blocking_background(self, func: Callable[[], Any]) -> None:
        """Run ``func`` on a background thread without waiting for it."""
        threading.Thread(target=func, daemon=True).start()