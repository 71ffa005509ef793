"""
Global Rate Limiter for Messaging Platforms.

Centralizes outgoing message requests and ensures compliance with rate limits
using a leaky bucket algorithm (aiolimiter) and a task queue.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Awaitable, Callable, Any, Optional, List, Dict, Tuple
from aiolimiter import AsyncLimiter

logger = logging.getLogger(__name__)

_Task = Tuple[Callable[[], Awaitable[Any]], List[asyncio.Future]]


def _retry_after_seconds(error: Exception) -> Optional[float]:
    """Seconds the backend asked us to wait, if the error carries that hint."""
    retry_after = getattr(error, "retry_after", None)
    if retry_after is None:
        return None
    if isinstance(retry_after, timedelta):
        return retry_after.total_seconds()
    try:
        return float(retry_after)
    except (TypeError, ValueError):
        return None


def _fail_pending(futures: List[asyncio.Future], error: Exception) -> None:
    for f in futures:
        if not f.done():
            f.set_exception(error)


class GlobalRateLimiter:
    """
    Rate limiter shared by every outbound call of one platform.

    Uses a custom queue with task compaction (deduplication) so that only the
    latest version of a message edit is processed; every waiter of a
    compacted task receives the result of the call that actually ran.
    """

    def __init__(self, calls: int = 1, period: float = 1.0):
        self.limiter = AsyncLimiter(calls, period)
        # Custom queue state
        self._queue_list: List[str] = []  # dedup keys in order
        self._queue_map: Dict[str, _Task] = {}
        self._condition: Optional[asyncio.Condition] = None
        self._worker_task: Optional[asyncio.Task] = None
        self._paused_until = 0.0
        self._counter = 0

        logger.info(
            f"GlobalRateLimiter initialized ({calls} req / {period}s with Task Compaction)"
        )

    @property
    def running(self) -> bool:
        return self._worker_task is not None and not self._worker_task.done()

    def start(self) -> None:
        """Start the background worker on the running loop."""
        if self.running:
            return
        self._condition = asyncio.Condition()
        self._worker_task = asyncio.create_task(self._worker())

    async def stop(self) -> None:
        """Stop the worker and fail every queued task."""
        if self._worker_task is not None:
            self._worker_task.cancel()
            try:
                await self._worker_task
            except asyncio.CancelledError:
                pass
            self._worker_task = None

        for _, futures in self._queue_map.values():
            _fail_pending(futures, RuntimeError("Rate limiter stopped"))
        self._queue_map.clear()
        self._queue_list.clear()

    async def _worker(self) -> None:
        """Background worker that processes queued messaging tasks."""
        logger.info("GlobalRateLimiter worker started")
        loop = asyncio.get_running_loop()
        while True:
            futures: List[asyncio.Future] = []
            try:
                async with self._condition:
                    while not self._queue_list:
                        await self._condition.wait()

                    dedup_key = self._queue_list.pop(0)
                    func, futures = self._queue_map.pop(dedup_key)

                # Check for manual pause (FloodWait)
                now = loop.time()
                if self._paused_until > now:
                    wait_time = self._paused_until - now
                    logger.warning(f"Limiter worker paused, waiting {wait_time:.1f}s more...")
                    await asyncio.sleep(wait_time)

                # Wait for rate limit capacity
                async with self.limiter:
                    try:
                        result = await func()
                    except Exception as e:
                        seconds = _retry_after_seconds(e)
                        if seconds is not None:
                            logger.error(f"FloodWait detected! Pausing for {seconds}s")
                            self._paused_until = loop.time() + seconds
                            # Re-queue at the front so it runs first after the pause
                            await self._enqueue_internal(func, futures, dedup_key, front=True)
                        else:
                            _fail_pending(futures, e)
                    else:
                        for f in futures:
                            if not f.done():
                                f.set_result(result)
            except asyncio.CancelledError:
                # the running task is no longer in the queue map, so stop() cannot see it
                _fail_pending(futures, RuntimeError("Rate limiter stopped"))
                break
            except Exception as e:
                logger.error(f"Error in limiter worker: {e}", exc_info=True)
                await asyncio.sleep(1)

    async def _enqueue_internal(
        self,
        func: Callable[[], Awaitable[Any]],
        futures: List[asyncio.Future],
        dedup_key: str,
        front: bool = False,
    ) -> None:
        async with self._condition:
            if dedup_key in self._queue_map:
                # Compaction: newest func wins, every waiter gets its result
                _, old_futures = self._queue_map[dedup_key]
                old_futures.extend(futures)
                self._queue_map[dedup_key] = (func, old_futures)
                logger.debug(
                    f"Compacted task for key: {dedup_key} (now {len(old_futures)} futures)"
                )
            else:
                self._queue_map[dedup_key] = (func, futures)
                if front:
                    self._queue_list.insert(0, dedup_key)
                else:
                    self._queue_list.append(dedup_key)
                self._condition.notify_all()

    async def enqueue(
        self, func: Callable[[], Awaitable[Any]], dedup_key: Optional[str] = None
    ) -> Any:
        """
        Enqueue a messaging task and wait for its result.

        If dedup_key is provided, a later task with the same key replaces this
        one while it is still queued.
        """
        if not self.running:
            raise RuntimeError("Rate limiter is not running")
        if dedup_key is None:
            # Unique key to avoid deduplication
            self._counter += 1
            dedup_key = f"task_{self._counter}"

        future = asyncio.get_running_loop().create_future()
        await self._enqueue_internal(func, [future], dedup_key)
        return await future
