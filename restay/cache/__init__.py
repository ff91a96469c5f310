"""
Response caching with fixed TTL and in-flight request coalescing.
"""
from .core import CacheEntry, make_cache_key
from .store import ResponseCache, DEFAULT_TTL_SECONDS
from .coalescer import RequestCoalescer

__all__ = [
    # Core types
    "CacheEntry",
    "make_cache_key",
    # Store
    "ResponseCache",
    "DEFAULT_TTL_SECONDS",
    # Coalescing
    "RequestCoalescer",
]
