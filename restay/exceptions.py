"""Errors raised by the request governor."""
import math
from typing import Optional


class GovernorError(Exception):
    """Base error for governed requests."""


class QuotaExceededError(GovernorError):
    """The global request quota for the current window is used up."""

    def __init__(self, wait_seconds: float):
        self.wait_seconds = wait_seconds
        super().__init__(
            f"Rate limit exceeded. Please wait {math.ceil(wait_seconds)} seconds."
        )


class TransportError(GovernorError):
    """An outbound HTTP call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class RequestCancelledError(GovernorError):
    """A queued request was cancelled before it started."""

    def __init__(self, message: str = "Request cancelled"):
        super().__init__(message)
