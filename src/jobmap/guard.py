"""
Per-key deduplication of in-flight async work.

`FetchGuard.run(key, factory)` starts `factory()` as a task unless one is
already running for `key`, in which case the caller awaits the existing task.
Entries are dropped as soon as the task settles, whatever the outcome, so a
failed load never poisons the next one.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Generic, Hashable, TypeVar

from jobmap.errors import RequestAborted

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FetchGuard(Generic[T]):
    def __init__(self, name: str = "fetch") -> None:
        self.name = name
        self._pending: Dict[Hashable, "asyncio.Task[T]"] = {}

    def in_flight(self, key: Hashable) -> bool:
        return key in self._pending

    async def run(self, key: Hashable, factory: Callable[[], Awaitable[T]]) -> T:
        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._pending[key] = task
            task.add_done_callback(lambda t, k=key: self._settled(k, t))
        else:
            logger.debug("%s for %r already in flight; sharing it", self.name, key)

        try:
            # shield: one waiter being cancelled must not cancel the shared task
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                raise RequestAborted(f"{self.name} for {key!r} was cancelled")
            raise

    def cancel(self, key: Hashable) -> bool:
        """Abort the in-flight task for `key`; waiters get RequestAborted."""
        task = self._pending.get(key)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def _settled(self, key: Hashable, task: "asyncio.Task[T]") -> None:
        if self._pending.get(key) is task:
            del self._pending[key]
