"""
Request coalescing to prevent duplicate upstream calls.

When multiple concurrent requests ask for the same key, only one
underlying call is made and all requesters share the outcome.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

logger = logging.getLogger("cache.coalescer")


@dataclass
class InFlightRequest:
    """Tracks an in-progress upstream request."""
    future: asyncio.Future
    started_at: float = field(default_factory=time.time)
    waiter_count: int = 0


class RequestCoalescer:
    """
    Ensures concurrent requests for the same key share one upstream call.

    Pattern:
    - First request for a key initiates the fetch
    - Subsequent requests for the same key await the shared future
    - When the fetch settles, every waiter observes the same result or error
    - The key is released on settlement, whatever the outcome

    Usage:
        coalescer = RequestCoalescer()
        result = await coalescer.get_or_fetch(
            "/api/rooms{\"pg\":1}",
            fetch_fn=lambda: transport.fetch("/api/rooms", params={"pg": 1}),
        )
    """

    def __init__(self, timeout: Optional[float] = None):
        """
        Initialize the coalescer.

        Args:
            timeout: Max seconds a joining caller waits for an in-flight
                request. None waits for as long as the initiator takes.
        """
        self._in_flight: Dict[str, InFlightRequest] = {}
        self._timeout = timeout

    def is_in_flight(self, key: str) -> bool:
        return key in self._in_flight

    async def get_or_fetch(
        self,
        key: str,
        fetch_fn: Callable[[], Awaitable[Any]],
    ) -> Any:
        """
        Either join an existing in-flight request or initiate a new one.

        Args:
            key: Unique key for this request
            fetch_fn: Coroutine factory to call if we need to fetch

        Returns:
            The fetched data (shared among all concurrent callers)

        Raises:
            asyncio.TimeoutError: If waiting for an in-flight request times out
            Exception: Any error from fetch_fn is propagated to every caller
        """
        in_flight = self._in_flight.get(key)
        if in_flight is not None:
            in_flight.waiter_count += 1
            logger.debug(f"Coalescing request for {key} (waiters: {in_flight.waiter_count})")
            return await self._wait(key, in_flight)

        in_flight = InFlightRequest(future=asyncio.get_running_loop().create_future())
        self._in_flight[key] = in_flight
        logger.debug(f"Initiating fetch for {key}")

        try:
            result = await fetch_fn()
        except asyncio.CancelledError:
            in_flight.future.cancel()
            raise
        except Exception as e:
            if not in_flight.future.done():
                in_flight.future.set_exception(e)
                # Mark retrieved so an unobserved failure does not warn
                in_flight.future.exception()
            logger.warning(f"Fetch failed for {key}: {e}")
            raise
        else:
            if not in_flight.future.done():
                in_flight.future.set_result(result)
            return result
        finally:
            if self._in_flight.get(key) is in_flight:
                del self._in_flight[key]

    async def _wait(self, key: str, in_flight: InFlightRequest) -> Any:
        # Shield so a cancelled waiter does not cancel the shared outcome
        shared = asyncio.shield(in_flight.future)
        if self._timeout is None:
            return await shared
        try:
            return await asyncio.wait_for(shared, timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.error(f"Timeout waiting for coalesced request: {key}")
            raise

    @property
    def active_requests(self) -> int:
        """Number of currently in-flight requests."""
        return len(self._in_flight)

    def get_stats(self) -> Dict[str, Any]:
        """Get coalescer statistics."""
        return {
            "active_requests": len(self._in_flight),
            "active_keys": list(self._in_flight.keys()),
        }
