"""Global request quota over a rolling window."""

import logging
import math
import time
from typing import Callable

from restay.exceptions import QuotaExceededError

logger = logging.getLogger("throttle.quota")

# Configuration
QUOTA_MAX_REQUESTS = 4  # Max dispatches per window
QUOTA_WINDOW_SECONDS = 60  # Window size in seconds


class RequestQuota:
    """
    Hard cap on dispatches per window, independent of any per-key state.

    The window is reset as a whole once it has elapsed, rather than sliding
    continuously. Exceeding the cap is a failure, not a deferral.
    """

    def __init__(
        self,
        max_requests: int = QUOTA_MAX_REQUESTS,
        window_seconds: float = QUOTA_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._request_count = 0
        self._window_start = clock()

    def _roll_window(self) -> None:
        now = self._clock()
        if now - self._window_start >= self.window_seconds:
            if self._request_count:
                logger.debug(f"Quota window rolled over after {self._request_count} requests")
            self._request_count = 0
            self._window_start = now

    def is_available(self) -> bool:
        """Check if another dispatch fits in the current window."""
        self._roll_window()
        return self._request_count < self.max_requests

    def acquire(self) -> None:
        """
        Consume one unit of quota.

        Raises:
            QuotaExceededError: If the window is exhausted. The error carries
                the seconds left until the window resets.
        """
        if not self.is_available():
            wait = self.wait_time()
            logger.warning(f"Request quota exhausted, resets in {math.ceil(wait)}s")
            raise QuotaExceededError(wait)
        self._request_count += 1

    def remaining(self) -> int:
        """Number of dispatches left in the current window."""
        if self._clock() - self._window_start >= self.window_seconds:
            return self.max_requests
        return max(0, self.max_requests - self._request_count)

    def reset_at(self) -> float:
        """Epoch time at which the current window ends."""
        return self._window_start + self.window_seconds

    def wait_time(self) -> float:
        """Seconds until the current window ends."""
        return max(0.0, self.reset_at() - self._clock())

    def reset(self) -> None:
        """Start a fresh window with no requests counted."""
        self._request_count = 0
        self._window_start = self._clock()

    @property
    def request_count(self) -> int:
        return self._request_count
