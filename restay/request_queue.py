"""
Bounded-concurrency priority queue for outbound requests.

Operations are coroutine factories. Higher priority runs first, and equal
priorities run in arrival order. At most ``max_concurrent`` operations are
in flight at any time.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from restay.exceptions import RequestCancelledError

logger = logging.getLogger("request_queue")

DEFAULT_MAX_CONCURRENT = 2
DEFAULT_RETRY_DELAY_SECONDS = 0.1


@dataclass
class QueuedRequest:
    """A request waiting for a free concurrency slot."""
    id: str
    operation: Callable[[], Awaitable[Any]]
    priority: int
    future: asyncio.Future


class PriorityRequestQueue:
    """
    Schedules queued operations by priority under a concurrency bound.

    Draining:
    - Enqueue appends and schedules a drain on the next loop iteration, so
      requests enqueued together are ordered as a whole
    - A drain pass starts the highest-priority items until the bound is hit
    - Every settled operation frees its slot and triggers another pass
    - A pass that leaves items queued schedules a retry after retry_delay
    """

    def __init__(
        self,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        retry_delay: float = DEFAULT_RETRY_DELAY_SECONDS,
    ):
        self.max_concurrent = max_concurrent
        self.retry_delay = retry_delay
        self._queue: List[QueuedRequest] = []
        self._active: Set[str] = set()
        self._tasks: Dict[str, asyncio.Task] = {}
        self._draining = False
        self._scheduled_drain: Optional[asyncio.Handle] = None

    def enqueue(
        self,
        operation: Callable[[], Awaitable[Any]],
        priority: int = 0,
    ) -> asyncio.Future:
        """
        Add an operation to the queue.

        Args:
            operation: Coroutine factory performing the request
            priority: Higher numbers run first

        Returns:
            Future settling with the operation's own result or error
        """
        loop = asyncio.get_running_loop()
        request = QueuedRequest(
            id=uuid.uuid4().hex,
            operation=operation,
            priority=priority,
            future=loop.create_future(),
        )
        self._queue.append(request)
        logger.debug(f"Queued request {request.id} (priority={priority}, queued={len(self._queue)})")
        self._schedule_drain(0)
        return request.future

    def _schedule_drain(self, delay: float) -> None:
        if self._scheduled_drain is not None:
            return
        loop = asyncio.get_running_loop()
        if delay > 0:
            self._scheduled_drain = loop.call_later(delay, self._run_scheduled_drain)
        else:
            self._scheduled_drain = loop.call_soon(self._run_scheduled_drain)

    def _run_scheduled_drain(self) -> None:
        self._scheduled_drain = None
        self._drain()

    def _drain(self) -> None:
        """Start queued operations while concurrency slots are free."""
        if self._draining:
            return

        self._draining = True
        try:
            while self._queue and len(self._active) < self.max_concurrent:
                # list.sort is stable: equal priorities keep arrival order
                self._queue.sort(key=lambda r: -r.priority)
                request = self._queue.pop(0)
                if request.future.done():
                    # Caller gave up while the request was still queued
                    continue
                self._start(request)
        finally:
            self._draining = False

        if self._queue:
            self._schedule_drain(self.retry_delay)

    def _start(self, request: QueuedRequest) -> None:
        self._active.add(request.id)
        self._tasks[request.id] = asyncio.get_running_loop().create_task(self._run(request))
        logger.debug(
            f"Started request {request.id} (priority={request.priority}, "
            f"active={len(self._active)})"
        )

    async def _run(self, request: QueuedRequest) -> None:
        try:
            result = await request.operation()
        except asyncio.CancelledError:
            request.future.cancel()
            raise
        except Exception as e:
            if not request.future.done():
                request.future.set_exception(e)
        else:
            if not request.future.done():
                request.future.set_result(result)
        finally:
            self._active.discard(request.id)
            self._tasks.pop(request.id, None)
            self._drain()

    def clear_queue(self) -> int:
        """
        Cancel every request that has not started yet.

        Active requests are unaffected and run to completion.

        Returns:
            Number of requests cancelled
        """
        pending, self._queue = self._queue, []
        cancelled = 0
        for request in pending:
            if not request.future.done():
                request.future.set_exception(RequestCancelledError())
                cancelled += 1
        if cancelled:
            logger.info(f"Cancelled {cancelled} queued requests")
        return cancelled

    @property
    def queue_length(self) -> int:
        """Number of requests waiting for a slot."""
        return len(self._queue)

    @property
    def active_count(self) -> int:
        """Number of requests currently in flight."""
        return len(self._active)

    @property
    def is_processing(self) -> bool:
        return bool(self._active)

    def get_stats(self) -> Dict[str, Any]:
        """Get queue statistics."""
        return {
            "queue_length": len(self._queue),
            "active_requests": len(self._active),
            "max_concurrent": self.max_concurrent,
            "is_processing": self.is_processing,
        }
