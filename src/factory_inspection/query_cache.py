"""
Client-side query cache.

Entries are keyed by tuples such as ``("/api/factories",)`` or
``("/api/factories", "7")``. Invalidation is by key prefix, so invalidating
``("/api/factories",)`` drops the list and every item entry beneath it. The
cache is an ordinary object handed to the hooks that use it; there is no
module-level instance.

A load that was already running when its key was invalidated returns its
result to the caller but does not store it.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

QueryKey = Tuple[str, ...]
T = TypeVar("T")

_MISSING = object()


@dataclass
class CacheEntry:
    value: Any
    stored_at: float


class QueryCache:
    def __init__(self, stale_time: Optional[float] = None, clock: Callable[[], float] = time.monotonic) -> None:
        """
        Args:
            stale_time: Seconds after which an entry is treated as absent;
                None keeps entries until they are invalidated
            clock: Monotonic time source
        """
        self.stale_time = stale_time
        self._clock = clock
        self._entries: Dict[QueryKey, CacheEntry] = {}
        self._generations: Dict[QueryKey, int] = {}

    def _fresh(self, entry: CacheEntry) -> bool:
        return self.stale_time is None or self._clock() - entry.stored_at < self.stale_time

    def get(self, key: QueryKey, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None or not self._fresh(entry):
            return default
        return entry.value

    def __contains__(self, key: QueryKey) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[QueryKey]:
        return iter(list(self._entries))

    def set(self, key: QueryKey, value: Any) -> None:
        self._entries[key] = CacheEntry(value=value, stored_at=self._clock())

    def invalidate(self, prefix: QueryKey) -> List[QueryKey]:
        """
        Drop every entry whose key starts with ``prefix``.

        Returns:
            The keys that were removed
        """
        for key in self._generations:
            if key[: len(prefix)] == prefix:
                self._generations[key] += 1
        removed = [key for key in self._entries if key[: len(prefix)] == prefix]
        for key in removed:
            del self._entries[key]
        if removed:
            logger.debug(f"Invalidated {len(removed)} cached queries under {prefix}")
        return removed

    def clear(self) -> None:
        self._entries.clear()
        for key in self._generations:
            self._generations[key] += 1

    async def fetch(self, key: QueryKey, loader: Callable[[], Awaitable[T]]) -> T:
        """Return the cached value for ``key`` or load, store and return it."""
        cached = self.get(key, _MISSING)
        if cached is not _MISSING:
            return cached
        generation = self._generations.setdefault(key, 0)
        value = await loader()
        if self._generations[key] == generation:
            self.set(key, value)
        else:
            logger.debug(f"Discarding result for {key}: invalidated while loading")
        return value
