"""Per-key request spacing and the global request quota."""
from .rate_limiter import RateLimiter, RATE_LIMIT_SPACING_SECONDS
from .quota import RequestQuota, QUOTA_MAX_REQUESTS, QUOTA_WINDOW_SECONDS

__all__ = [
    "RateLimiter",
    "RATE_LIMIT_SPACING_SECONDS",
    "RequestQuota",
    "QUOTA_MAX_REQUESTS",
    "QUOTA_WINDOW_SECONDS",
]
