"""Collapse concurrent identical work into one shared task.

The first caller for a key starts the work in its own task; callers arriving
while it runs await the same task. The task is shielded, so a caller that
gets cancelled (client hung up) neither cancels the work nor the other
waiters.
"""

import asyncio
from typing import Awaitable, Callable, Dict, Hashable, TypeVar

from core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class SingleFlight:
    """Per-key registry of in-flight tasks."""

    def __init__(self):
        self._flights: Dict[Hashable, asyncio.Task] = {}

    def in_flight(self, key: Hashable) -> bool:
        return key in self._flights

    def __len__(self) -> int:
        return len(self._flights)

    async def do(self, key: Hashable, fn: Callable[[], Awaitable[T]]) -> T:
        """Run ``fn`` for ``key`` unless a run is already in flight; share its outcome."""
        task = self._flights.get(key)
        if task is None:
            task = asyncio.ensure_future(fn())
            self._flights[key] = task
            task.add_done_callback(lambda t: self._forget(key, t))
        else:
            logger.debug("Joining in-flight request", key=str(key))
        return await asyncio.shield(task)

    def _forget(self, key: Hashable, task: asyncio.Task) -> None:
        if self._flights.get(key) is task:
            del self._flights[key]
        # Mark the exception retrieved; every waiter may have been cancelled
        if not task.cancelled():
            task.exception()
