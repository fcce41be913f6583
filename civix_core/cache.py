"""
Fallback Cache
==============
In-memory TTL cache used by reads as a fallback data source.

Entries expire lazily: reading an expired entry deletes it. There is no
background sweep and no capacity bound; callers key entries per entity so
the key space stays bounded.
"""

import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union


@dataclass
class CacheEntry:
    data: Any
    timestamp: float
    ttl: float


class CacheManager:
    """
    Keyed store with time-to-live measured from write time.

    Example:
        cache = CacheManager(default_ttl=300)
        cache.set("issue_1", {"title": "pothole"})
        cache.get("issue_1")
    """

    def __init__(self, default_ttl: float = 300.0):
        """
        Args:
            default_ttl: TTL in seconds for entries written without one
        """
        self.default_ttl = default_ttl
        self._entries: Dict[str, CacheEntry] = {}

    def set(self, key: str, data: Any, ttl: Optional[float] = None) -> None:
        self._entries[key] = CacheEntry(
            data=data,
            timestamp=time.monotonic(),
            ttl=self.default_ttl if ttl is None else ttl,
        )

    def get(self, key: str) -> Any:
        """Return cached data, or None on a miss or an expired entry."""
        entry = self._entries.get(key)
        if entry is None:
            return None

        if time.monotonic() - entry.timestamp > entry.ttl:
            del self._entries[key]
            return None

        return entry.data

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def get_stats(self) -> Dict[str, Union[int, List[str]]]:
        return {
            "size": len(self._entries),
            "keys": list(self._entries),
        }
