"""Single-worker execution queue with retry, backoff and back-pressure.

Items run strictly one at a time, in enqueue order. The value an item returns
steers the queue:

  "full"   the provider has no free job slot; pause until the next enqueue
  "retry"  run the same item again after min(30, 2**(retries - 1)) seconds
  other    success, dequeue and move on

An item that raises is treated like "retry". Items retried more than
``max_retries`` times are dropped with a warning; the enqueuer is not told.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

FULL = "full"
RETRY = "retry"

DEFAULT_MAX_RETRIES = 5
MAX_BACKOFF = 30.0


@dataclass(eq=False)
class QueueItem:
    fn: Callable[..., Any]
    args: tuple[Any, ...] = ()
    kwargs: dict[str, Any] = field(default_factory=dict)
    retry_count: int = 0

    @property
    def name(self) -> str:
        return getattr(self.fn, "__name__", repr(self.fn))


def backoff_delay(retry_count: int) -> float:
    """Seconds to wait before re-running an item that has ``retry_count`` retries."""
    return min(MAX_BACKOFF, float(2 ** max(retry_count - 1, 0)))


class SerialQueue:
    """Run enqueued callables one at a time on the current event loop."""

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.max_retries = max_retries
        self._sleep = sleep
        self._items: deque[QueueItem] = deque()
        self._worker: asyncio.Task | None = None
        self._full = False
        self._idle = asyncio.Event()
        self._idle.set()

    def __len__(self) -> int:
        return len(self._items)

    @property
    def paused(self) -> bool:
        return self._full

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def enqueue(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        """Add a call to the queue and wake the worker. Clears a "full" pause."""
        self._full = False
        self._items.append(QueueItem(fn=fn, args=args, kwargs=kwargs))
        self._kick()

    def clear(self) -> None:
        """Drop every pending item. The item currently running finishes."""
        self._items.clear()

    async def join(self) -> None:
        """Wait until the queue is empty or paused."""
        await self._idle.wait()

    def _kick(self) -> None:
        if self._full or self.running or not self._items:
            return
        self._idle.clear()
        self._worker = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self) -> None:
        try:
            while self._items and not self._full:
                await self._run_one(self._items[0])
        finally:
            self._worker = None
            self._idle.set()

    async def _run_one(self, item: QueueItem) -> None:
        try:
            result = item.fn(*item.args, **item.kwargs)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.error("Queue item %s raised: %s", item.name, e)
            result = RETRY

        if result == FULL:
            logger.info("Queue is full, pausing until the next enqueue (%s)", item.name)
            self._full = True
            return

        if result == RETRY:
            item.retry_count += 1
            if item.retry_count > self.max_retries:
                logger.warning(
                    "Dropping queue item %s after %d retries", item.name, self.max_retries,
                )
                self._remove(item)
                return
            delay = backoff_delay(item.retry_count)
            logger.info(
                "Retrying queue item %s in %.0fs (retry %d/%d)",
                item.name, delay, item.retry_count, self.max_retries,
            )
            await self._sleep(delay)
            return

        self._remove(item)

    def _remove(self, item: QueueItem) -> None:
        try:
            self._items.remove(item)
        except ValueError:
            pass  # cleared while running
