from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class KeyedDebouncer(Generic[T]):
    """Trailing-edge debounce with one timer per key.

    Each ``schedule`` for a key cancels that key's pending timer and starts a
    new one; only the latest value is delivered. Timers run on the running
    event loop, so ``schedule`` must be called from inside it.
    """

    def __init__(
        self,
        delay: float,
        callback: Callable[[str, T], Awaitable[None]],
    ) -> None:
        self.delay = delay
        self._callback = callback
        self._handles: dict[str, asyncio.TimerHandle] = {}
        self._values: dict[str, T] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending_keys(self) -> set[str]:
        return set(self._handles)

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def schedule(self, key: str, value: T) -> None:
        loop = asyncio.get_running_loop()
        handle = self._handles.pop(key, None)
        if handle is not None:
            handle.cancel()
        self._values[key] = value
        self._handles[key] = loop.call_later(self.delay, self._fire, key)

    def cancel(self, key: str) -> None:
        handle = self._handles.pop(key, None)
        if handle is not None:
            handle.cancel()
        self._values.pop(key, None)

    def cancel_all(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()
        self._values.clear()

    async def flush(self) -> None:
        """Deliver every pending value now and wait for all deliveries."""
        keys = list(self._handles)
        for key in keys:
            self._handles.pop(key).cancel()
        for key in keys:
            self._start(key, self._values.pop(key))
        await self.drain()

    async def drain(self) -> None:
        while self._tasks:
            tasks = list(self._tasks)
            await asyncio.gather(*tasks, return_exceptions=True)
            self._tasks.difference_update(tasks)

    def _fire(self, key: str) -> None:
        self._handles.pop(key, None)
        if key in self._values:
            logger.debug("Debounce elapsed for %s", key)
            self._start(key, self._values.pop(key))

    def _start(self, key: str, value: T) -> None:
        task = asyncio.get_running_loop().create_task(self._callback(key, value))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
