"""
Request governor: the single entry point for outbound calls.

Combines the response cache, in-flight coalescing, per-key spacing, the
global quota and the priority queue:

    cache hit -> join in-flight -> quota -> spacing (defer) -> queue -> transport
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from config.settings import settings
from restay.cache import RequestCoalescer, ResponseCache, make_cache_key
from restay.request_queue import PriorityRequestQueue
from restay.throttle import RateLimiter, RequestQuota
from restay.transport import HttpTransport

logger = logging.getLogger("governor")

# Spacing history is pruned once it tracks more keys than this
RATE_LIMITER_CLEANUP_THRESHOLD = 1000


@dataclass
class _PendingCall:
    future: asyncio.Future
    fn: Callable[[], Awaitable[Any]]
    handle: Optional[asyncio.TimerHandle] = None


class Debouncer:
    """
    Collapses bursts of identical calls.

    Each call for a key restarts that key's timer. When the timer finally
    fires, the latest call runs once and every caller from the burst
    receives its outcome.
    """

    def __init__(self, delay: float = settings.debounce_seconds):
        self.delay = delay
        self._pending: Dict[str, _PendingCall] = {}
        self._tasks: Set[asyncio.Task] = set()

    async def call(self, key: str, fn: Callable[[], Awaitable[Any]]) -> Any:
        if self.delay <= 0:
            return await fn()

        loop = asyncio.get_running_loop()
        pending = self._pending.get(key)
        if pending is None:
            pending = _PendingCall(future=loop.create_future(), fn=fn)
            self._pending[key] = pending
        else:
            pending.handle.cancel()
            pending.fn = fn
            logger.debug(f"Debounced call superseded: {key}")

        pending.handle = loop.call_later(self.delay, self._fire, key, pending)
        return await asyncio.shield(pending.future)

    def _fire(self, key: str, pending: _PendingCall) -> None:
        if self._pending.get(key) is pending:
            del self._pending[key]

        task = asyncio.get_running_loop().create_task(pending.fn())
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._settle(t, pending.future))

    def _settle(self, task: asyncio.Task, future: asyncio.Future) -> None:
        self._tasks.discard(task)
        if future.done():
            return
        if task.cancelled():
            future.cancel()
        elif task.exception() is not None:
            future.set_exception(task.exception())
            future.exception()
        else:
            future.set_result(task.result())

    @property
    def pending_count(self) -> int:
        return len(self._pending)


class RequestGovernor:
    """
    Governs outbound requests for one logical client.

    - Cache hits return immediately without touching the queue
    - Concurrent calls for one key share a single dispatch
    - The global quota is a hard cap; exhausting it raises QuotaExceededError
    - A key dispatched too recently is deferred, not rejected
    - Dispatches run through the bounded-concurrency priority queue
    """

    def __init__(
        self,
        cache: Optional[ResponseCache] = None,
        coalescer: Optional[RequestCoalescer] = None,
        rate_limiter: Optional[RateLimiter] = None,
        quota: Optional[RequestQuota] = None,
        queue: Optional[PriorityRequestQueue] = None,
        transport: Optional[HttpTransport] = None,
        debounce_seconds: float = settings.debounce_seconds,
    ):
        self.cache = cache or ResponseCache(ttl_seconds=settings.cache_ttl_seconds)
        self.coalescer = coalescer or RequestCoalescer()
        self.rate_limiter = rate_limiter or RateLimiter(
            min_spacing=settings.rate_limit_spacing_seconds
        )
        self.quota = quota or RequestQuota(
            max_requests=settings.quota_max_requests,
            window_seconds=settings.quota_window_seconds,
        )
        self.queue = queue or PriorityRequestQueue(
            max_concurrent=settings.queue_max_concurrent,
            retry_delay=settings.queue_retry_delay_seconds,
        )
        self.transport = transport or HttpTransport()
        self.debouncer = Debouncer(delay=debounce_seconds)
        self.rate_limiter_cleanup_threshold = RATE_LIMITER_CLEANUP_THRESHOLD

    async def request(
        self,
        key: str,
        operation: Callable[[], Awaitable[Any]],
        priority: int = 0,
    ) -> Any:
        """
        Run operation under cache, coalescing, quota, spacing and queueing.

        Args:
            key: Cache key identifying the logical request
            operation: Coroutine factory performing the network call
            priority: Queue priority (higher runs first)

        Returns:
            Cached or freshly fetched data

        Raises:
            QuotaExceededError: If the global quota is exhausted
            RequestCancelledError: If the queued dispatch was cancelled
            Exception: Any error from operation, shared by all joined callers
        """
        entry = self.cache.get_entry(key)
        if entry is not None:
            logger.debug(f"CACHE HIT: {key}")
            return entry.data

        if self.coalescer.is_in_flight(key):
            return await self.coalescer.get_or_fetch(key, operation)

        # Quota is spent on the dispatch decision, never on hits or joins
        self.quota.acquire()

        delay = self.rate_limiter.wait_time(key)
        if delay > 0:
            logger.info(f"RATE LIMITED: {key}, deferring {delay:.2f}s")

        return await self.coalescer.get_or_fetch(
            key,
            lambda: self._dispatch(key, operation, priority, delay),
        )

    async def _dispatch(
        self,
        key: str,
        operation: Callable[[], Awaitable[Any]],
        priority: int,
        delay: float,
    ) -> Any:
        if delay > 0:
            await asyncio.sleep(delay)

        # Recorded on dispatch so a failing endpoint is still spaced out
        self.rate_limiter.record(key)
        if self.rate_limiter.tracked_keys > self.rate_limiter_cleanup_threshold:
            removed = self.rate_limiter.cleanup()
            logger.debug(f"Pruned {removed} rate limiter keys")
        logger.debug(f"DISPATCH: {key} (priority={priority})")
        result = await self.queue.enqueue(operation, priority)
        self.cache.set(key, result)
        return result

    async def make_request(
        self,
        url: str,
        method: str = "GET",
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        body: Optional[Any] = None,
        priority: int = 0,
    ) -> Any:
        """
        Debounced, governed HTTP request.

        The cache key is derived from the URL, method, query parameters and
        body. Headers are not part of the key.
        """
        options: Dict[str, Any] = {"method": method.upper()}
        if params:
            options["params"] = params
        if body is not None:
            options["body"] = body
        key = make_cache_key(url, options)

        def operation():
            return self.transport.fetch(url, method, params=params, headers=headers, body=body)

        return await self.debouncer.call(
            key, lambda: self.request(key, operation, priority)
        )

    def clear_cache(self, pattern: Optional[str] = None) -> int:
        return self.cache.clear(pattern)

    def clear_queue(self) -> int:
        return self.queue.clear_queue()

    def get_stats(self) -> Dict[str, Any]:
        """Get governor statistics for load monitoring."""
        return {
            "queue_length": self.queue.queue_length,
            "is_processing": self.queue.is_processing,
            "active_requests": self.queue.active_count,
            "in_flight": self.coalescer.active_requests,
            "remaining_requests": self.quota.remaining(),
            "max_requests": self.quota.max_requests,
            "reset_time": self.quota.reset_at(),
            "cache": self.cache.get_stats(),
        }


# Global governor instance
_governor: Optional[RequestGovernor] = None


def get_governor() -> RequestGovernor:
    """Get or create the global request governor."""
    global _governor
    if _governor is None:
        _governor = RequestGovernor()
    return _governor
