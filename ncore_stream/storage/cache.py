"""
An in-memory query cache with a time-to-live (TTL) and a bounded size.
"""

import asyncio
import logging
import time
from collections import OrderedDict
from collections.abc import Callable, Mapping
from contextlib import suppress
from dataclasses import dataclass
from typing import Any, Generic, TypeVar
from urllib.parse import urlencode

K = TypeVar("K")
V = TypeVar("V")

log = logging.getLogger(__name__)


def normalize_query_key(params: Mapping[str, Any]) -> str:
    """
    Builds a stable cache key from query parameters: keys sorted, values
    stringified and stripped, None values dropped.
    """
    return urlencode(
        sorted((k, str(v).strip()) for k, v in params.items() if v is not None)
    )


@dataclass
class CacheEntry(Generic[V]):
    key: str
    value: V
    inserted_at: float


class QueryCache(Generic[K, V]):
    """
    Maps queries to values for a bounded time. Entries older than the TTL are
    never returned; once the entry count exceeds `max_entries` the oldest
    entries are evicted first.
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int,
        key_fn: Callable[[K], str] = str,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            ttl_seconds: Maximum age of an entry in seconds.
            max_entries: Maximum number of entries held at once.
            key_fn: Derives the cache key from a query.
            clock: Monotonic time source, injectable for tests.
        """
        if ttl_seconds <= 0 or max_entries < 1:
            raise ValueError("ttl_seconds and max_entries must be positive")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._key_fn = key_fn
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry[V]] = OrderedDict()
        self._cleanup_task: asyncio.Task | None = None

    def __len__(self) -> int:
        return len(self._entries)

    def _is_expired(self, entry: CacheEntry[V], now: float) -> bool:
        return now - entry.inserted_at > self.ttl_seconds

    def get(self, query: K) -> V | None:
        """
        Returns the cached value for a query, or None if it is missing or expired.
        """
        key = self._key_fn(query)
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._is_expired(entry, self._clock()):
            del self._entries[key]
            return None
        return entry.value

    def set(self, query: K, value: V) -> None:
        """Stores a value, evicting the oldest entries beyond capacity."""
        key = self._key_fn(query)
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(key=key, value=value, inserted_at=self._clock())
        while len(self._entries) > self.max_entries:
            evicted_key, _ = self._entries.popitem(last=False)
            log.debug(f"Cache full, evicted oldest entry '{evicted_key}'.")

    def purge_expired(self) -> int:
        """Removes every expired entry and returns how many were dropped."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if self._is_expired(e, now)]
        for key in expired:
            del self._entries[key]
        if expired:
            log.debug(f"Cache cleanup: removed {len(expired)} expired entries.")
        return len(expired)

    async def start_background_cleanup(self, interval: float | None = None):
        """Starts the periodic purge of expired entries."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(
                self._cleanup_loop(interval or self.ttl_seconds)
            )
            log.debug("Started cache background cleanup task.")

    async def _cleanup_loop(self, interval: float):
        while True:
            await asyncio.sleep(interval)
            self.purge_expired()

    async def stop_background_cleanup(self):
        """Stops the background cleanup task gracefully."""
        if self._cleanup_task and not self._cleanup_task.done():
            self._cleanup_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._cleanup_task
            log.debug("Stopped cache background cleanup task.")
