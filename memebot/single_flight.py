"""Collapse concurrent calls for the same key into one upstream operation."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Tuple, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


class SingleFlight:
    """Per-key registry of in-flight tasks.

    The first caller for a key starts the operation as its own task; callers
    arriving while it runs await the same task. Every caller awaits through
    ``asyncio.shield``, so cancelling one caller (a timeout, a closed chat)
    leaves the shared work and the other callers untouched. Once the task
    settles the key is released and a later miss starts a fresh call.
    Failures are delivered to every caller.
    """

    def __init__(self) -> None:
        self._inflight: dict[str, asyncio.Task[Any]] = {}

    def in_flight(self, key: str) -> bool:
        return key in self._inflight

    async def run(self, key: str, func: Callable[[], Awaitable[T]]) -> Tuple[T, bool]:
        """Execute *func* once per concurrent key and return (result, is_owner)."""

        task = self._inflight.get(key)
        is_owner = task is None
        if task is None:
            task = asyncio.ensure_future(func())
            self._inflight[key] = task
            task.add_done_callback(lambda done: self._release(key, done))
        else:
            logger.debug("single-flight join key=%s", key)
        return await asyncio.shield(task), is_owner

    def _release(self, key: str, task: asyncio.Task[Any]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # mark retrieved so a failure nobody awaited does not warn at GC time
        if not task.cancelled():
            task.exception()

    async def do(self, key: str, func: Callable[[], Awaitable[T]]) -> T:
        result, _ = await self.run(key, func)
        return result


__all__ = ["SingleFlight"]
