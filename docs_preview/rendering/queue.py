"""Bounded-concurrency render queue with request coalescing."""

import asyncio

from loguru import logger

from ..exceptions import RenderError, RenderFailure
from ..types import DiagramKey, QueueStats
from .cache import RenderCache
from .protocols import Executor


def _mark_retrieved(future: "asyncio.Future[bytes]") -> None:
    # Waiters may all be gone by the time a job fails.
    if not future.cancelled():
        future.exception()


class RenderQueue:
    """Runs render jobs with at most ``concurrency`` executor calls at a time.

    Submissions for a key that is already in flight attach to the running job
    instead of starting another one. Jobs run as their own tasks, so a caller
    that goes away does not abort a render other callers may be waiting on.
    """

    def __init__(self, executor: Executor, cache: RenderCache, concurrency: int = 5) -> None:
        if concurrency < 1:
            raise ValueError("Concurrency must be at least 1")
        self.executor = executor
        self.cache = cache
        self.concurrency = concurrency
        self._semaphore = asyncio.Semaphore(concurrency)
        self._lock = asyncio.Lock()
        self._in_flight: dict[DiagramKey, asyncio.Future[bytes]] = {}
        self._tasks: set[asyncio.Task[None]] = set()
        self._pending = 0
        self._running = 0

    async def submit(self, key: DiagramKey, source: str) -> bytes:
        """Render ``source`` or join the render already running for ``key``.

        Raises:
            RenderError: The render failed; every waiter gets the same error.
        """
        async with self._lock:
            future = self._in_flight.get(key)
            if future is not None:
                logger.debug(f"Joining in-flight render for {key[:12]}")
            else:
                entry = self.cache.peek(key)
                if entry is not None:
                    return entry.data

                future = asyncio.get_running_loop().create_future()
                future.add_done_callback(_mark_retrieved)
                self._in_flight[key] = future
                self._pending += 1
                task = asyncio.create_task(self._run(key, source, future))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
                logger.info(
                    f"Queued render for {key[:12]} "
                    f"(queue size: {self._pending}, running: {self._running})"
                )

        return await asyncio.shield(future)

    def stats(self) -> QueueStats:
        """Current queue occupancy."""
        return {
            "pending": self._pending,
            "running": self._running,
            "in_flight": len(self._in_flight),
            "concurrency": self.concurrency,
        }

    async def drain(self) -> None:
        """Wait for every queued and running job to finish."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def _run(self, key: DiagramKey, source: str, future: "asyncio.Future[bytes]") -> None:
        try:
            image = await self._render(key, source)
            # Cache first, so callers released below always find the entry.
            await self.cache.store(key, image)
        except RenderError as e:
            logger.warning(f"Render failed for {key[:12]}: {e.reason.value}")
            future.set_exception(e)
        except Exception as e:  # noqa: BLE001
            logger.exception(f"Unexpected error rendering {key[:12]}")
            future.set_exception(RenderError(RenderFailure.TOOL_FAILURE, str(e)))
        else:
            logger.info(f"Rendered {key[:12]} ({len(image)} bytes)")
            future.set_result(image)
        finally:
            if not future.done():
                future.cancel()
            async with self._lock:
                if self._in_flight.get(key) is future:
                    del self._in_flight[key]

    async def _render(self, key: DiagramKey, source: str) -> bytes:
        acquired = False
        try:
            async with self._semaphore:
                acquired = True
                self._pending -= 1
                self._running += 1
                try:
                    logger.info(f"Starting render for {key[:12]}")
                    return await self.executor.execute(source)
                finally:
                    self._running -= 1
        finally:
            if not acquired:
                self._pending -= 1
