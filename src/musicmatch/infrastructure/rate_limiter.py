"""
Request throttler for Spotify Web API calls.

Hey future me – this is the ONLY safety valve against Spotify's rate limit! Spotify doesn't
document the exact ceiling for the /me endpoints, and we never retry a failed request, so
EVERY network call in the client has to go through here.

ALGORITHM: FIFO batches
- Tasks are queued in submission order (unbounded queue)
- The processing loop takes up to max_parallel tasks as one batch and runs them concurrently
- The next batch only starts once the whole batch has settled
- Successive dispatches are at least min_delay_seconds apart (no bursts)

WHAT IT DOESN'T DO:
- No retries, no priorities, no cancellation
- A failing task only fails ITS OWN future - siblings and the queue keep going

USAGE:
    throttler = RequestThrottler.for_spotify(settings.spotify)

    future = throttler.submit(lambda: client.get(url))  # queued right away
    response = await future

    # or, when you don't need the future itself:
    response = await throttler.run(lambda: client.get(url))
"""

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from musicmatch.config.settings import SpotifySettings

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ThrottlerConfig:
    """Configuration for the request throttler.

    Attributes:
        max_parallel: Maximum number of tasks running at the same time (batch width)
        min_delay_seconds: Minimum time between two successive dispatches
    """

    max_parallel: int = 3
    min_delay_seconds: float = 0.025

    def __post_init__(self) -> None:
        if self.max_parallel < 1:
            raise ValueError("max_parallel must be at least 1")
        if self.min_delay_seconds < 0:
            raise ValueError("min_delay_seconds must not be negative")


@dataclass
class _QueuedTask:
    """A submitted task and the future its caller is waiting on."""

    task: Callable[[], Awaitable[Any]]
    future: asyncio.Future[Any]


class RequestThrottler:
    """Paces and parallel-limits outbound requests.

    Attributes:
        config: Batch width and pacing delay
        name: Label used in log messages
    """

    def __init__(self, config: ThrottlerConfig | None = None, name: str = "default") -> None:
        self.config = config or ThrottlerConfig()
        self.name = name
        self._queue: deque[_QueuedTask] = deque()
        self._processing = False
        self._worker: asyncio.Task[None] | None = None
        self._last_dispatch = float("-inf")
        self._in_flight = 0
        self._pacing_lock = asyncio.Lock()

    @classmethod
    def for_spotify(cls, settings: SpotifySettings) -> "RequestThrottler":
        """Create a throttler with the configured Spotify width and delay."""
        return cls(
            config=ThrottlerConfig(
                max_parallel=settings.max_parallel,
                min_delay_seconds=settings.min_delay_seconds,
            ),
            name="spotify",
        )

    @property
    def processing(self) -> bool:
        """True while the processing loop is draining the queue."""
        return self._processing

    @property
    def pending(self) -> int:
        """Number of tasks waiting for a batch slot."""
        return len(self._queue)

    @property
    def in_flight(self) -> int:
        """Number of tasks currently running."""
        return self._in_flight

    def submit(self, task: Callable[[], Awaitable[T]]) -> asyncio.Future[T]:
        """Queue a task and return a future for its result.

        The task is enqueued immediately (FIFO admission); the returned future
        resolves with the task's result or its exception.

        Args:
            task: Zero-argument callable returning an awaitable

        Returns:
            Future completed when the task has run
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[T] = loop.create_future()
        self._queue.append(_QueuedTask(task=task, future=future))

        if not self._processing:
            self._processing = True
            self._worker = loop.create_task(
                self._process_queue(), name=f"throttler-{self.name}"
            )
        return future

    async def run(self, task: Callable[[], Awaitable[T]]) -> T:
        """Submit a task and wait for its result."""
        return await self.submit(task)

    async def _process_queue(self) -> None:
        """Drain the queue batch by batch."""
        try:
            while self._queue:
                width = min(self.config.max_parallel, len(self._queue))
                batch = [self._queue.popleft() for _ in range(width)]
                logger.debug(
                    "Throttler[%s]: dispatching batch of %d (%d pending)",
                    self.name,
                    len(batch),
                    len(self._queue),
                )
                await asyncio.gather(*(self._dispatch(entry) for entry in batch))
        finally:
            self._processing = False
            self._worker = None

    async def _dispatch(self, entry: _QueuedTask) -> None:
        """Run one task after pacing, routing its outcome to its future."""
        await self._wait_for_dispatch_slot()
        self._in_flight += 1
        try:
            result = await entry.task()
        except Exception as e:
            if not entry.future.done():
                entry.future.set_exception(e)
            return
        finally:
            self._in_flight -= 1

        if not entry.future.done():
            entry.future.set_result(result)

    # Hey future me – the lock only covers the PACING, not the request itself! Tasks in one
    # batch still run concurrently; they just leave the gate min_delay_seconds apart.
    async def _wait_for_dispatch_slot(self) -> None:
        async with self._pacing_lock:
            elapsed = time.monotonic() - self._last_dispatch
            wait_time = self.config.min_delay_seconds - elapsed
            if wait_time > 0:
                await asyncio.sleep(wait_time)
            self._last_dispatch = time.monotonic()


__all__ = ["RequestThrottler", "ThrottlerConfig"]
