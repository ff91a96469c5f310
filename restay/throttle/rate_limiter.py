"""Minimum spacing between dispatches of the same request."""

import time
from typing import Callable, Dict, Optional

# Configuration
RATE_LIMIT_SPACING_SECONDS = 1.0  # Min time between dispatches for one key


class RateLimiter:
    """
    Per-key spacing limiter for outbound requests.

    A key may be dispatched again once min_spacing seconds have passed since
    its last recorded dispatch. Only real dispatches are recorded; cache hits
    and coalesced joins never touch the limiter.
    """

    def __init__(
        self,
        min_spacing: float = RATE_LIMIT_SPACING_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.min_spacing = min_spacing
        self._clock = clock
        self._last_request: Dict[str, float] = {}

    def is_allowed(self, key: str) -> bool:
        """
        Check if a request for key may be dispatched now.

        Args:
            key: Cache key of the request

        Returns:
            True if nothing was recorded for key or the spacing has elapsed
        """
        last = self._last_request.get(key)
        if last is None:
            return True
        return self._clock() - last >= self.min_spacing

    def wait_time(self, key: str) -> float:
        """Seconds until key may be dispatched again (0 if allowed now)."""
        last = self._last_request.get(key)
        if last is None:
            return 0.0
        return max(0.0, last + self.min_spacing - self._clock())

    def record(self, key: str) -> None:
        """Record a dispatch for key at the current time."""
        self._last_request[key] = self._clock()

    def last_request_time(self, key: str) -> Optional[float]:
        return self._last_request.get(key)

    @property
    def tracked_keys(self) -> int:
        """Number of keys with a recorded dispatch."""
        return len(self._last_request)

    def reset(self, key: str) -> None:
        """
        Forget the last dispatch for a specific key.

        Useful for testing or admin override.
        """
        self._last_request.pop(key, None)

    def cleanup(self) -> int:
        """
        Remove keys whose spacing has already elapsed.

        Returns the number of keys cleaned up.
        """
        now = self._clock()
        stale = [
            key for key, last in self._last_request.items()
            if now - last >= self.min_spacing
        ]
        for key in stale:
            del self._last_request[key]
        return len(stale)
