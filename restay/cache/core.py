"""
Core cache data structures.
"""
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class CacheEntry:
    """
    A cached response with its creation and expiry timestamps.

    Timestamps are epoch seconds. An entry is valid while now <= expiry.
    """
    data: Any
    timestamp: float
    expiry: float

    def is_valid(self, now: float) -> bool:
        """Check if the entry can still be served."""
        return now <= self.expiry

    def approximate_size(self) -> int:
        """Approximate serialized size in bytes."""
        return len(json.dumps(
            {"data": self.data, "timestamp": self.timestamp, "expiry": self.expiry},
            default=str,
        ))


def make_cache_key(base: str, params: Optional[Dict[str, Any]] = None) -> str:
    """
    Build a deterministic cache key from a base identifier and its parameters.

    Parameters are serialized with sorted keys so that logically identical
    requests collide regardless of field insertion order.
    """
    if not params:
        return base
    return base + json.dumps(params, sort_keys=True, separators=(",", ":"), default=str)
