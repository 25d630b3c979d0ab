"""Bounded-parallelism task queue for asyncio.

ConcurrencyLimiter caps how many tasks are in flight at once and starts the
rest in strict FIFO order as slots free up. Used by the OSV provider to fan
out per-package queries and by the npm registry helper.

Usage:
    limiter = ConcurrencyLimiter(5)
    results = await asyncio.gather(*(limiter.run(lambda n=n: fetch(n)) for n in names))
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

T = TypeVar("T")

Task = Callable[[], Awaitable[T]]


class ConcurrencyLimiter:
    """FIFO queue that runs at most ``concurrency`` tasks at a time.

    A task's exception is delivered only to its own future; the queue keeps
    draining. ``clear()`` cancels queued tasks that have not started yet and
    leaves running tasks alone.
    """

    def __init__(self, concurrency: int):
        if concurrency < 1:
            raise ValueError("Concurrency must be at least 1")
        self.concurrency = concurrency
        self._running = 0
        self._queue: deque[tuple[Task[Any], asyncio.Future]] = deque()
        self._tasks: set[asyncio.Task] = set()

    def run(self, task: Task[T]) -> asyncio.Future:
        """Queue ``task`` and return a future resolving with its result.

        Must be called with a running event loop.
        """
        future = asyncio.get_running_loop().create_future()
        self._queue.append((task, future))
        self._process()
        return future

    def _process(self) -> None:
        while self._running < self.concurrency and self._queue:
            task, future = self._queue.popleft()
            if future.done():
                # Caller cancelled before we got to it
                continue
            self._running += 1
            runner = asyncio.ensure_future(self._execute(task, future))
            self._tasks.add(runner)
            runner.add_done_callback(self._tasks.discard)

    async def _execute(self, task: Task[Any], future: asyncio.Future) -> None:
        try:
            result = await task()
        except asyncio.CancelledError:
            if not future.done():
                future.cancel()
            raise
        except Exception as e:
            if not future.done():
                future.set_exception(e)
        else:
            if not future.done():
                future.set_result(result)
        finally:
            self._running -= 1
            self._process()

    @property
    def queue_size(self) -> int:
        """Number of tasks waiting for a slot."""
        return len(self._queue)

    @property
    def active_count(self) -> int:
        """Number of tasks currently running."""
        return self._running

    def clear(self) -> None:
        """Drop every queued task that has not started."""
        while self._queue:
            _, future = self._queue.popleft()
            if not future.done():
                future.cancel()


def create_limit(concurrency: int) -> Callable[[Task[T]], asyncio.Future]:
    """Return a ``limit(task)`` function bound to a fresh ConcurrencyLimiter."""
    limiter = ConcurrencyLimiter(concurrency)
    return limiter.run
