"""TTL-bounded cache of model-backed classifications."""

from __future__ import annotations

import asyncio
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass

from loguru import logger

from query_router.models import QueryClassification


@dataclass(frozen=True)
class CacheEntry:
    classification: QueryClassification
    cached_at: float


class ClassificationCache:
    """Process-local map from a normalized query key to a classification.

    Entries older than ``ttl_s`` are treated as absent. Expired entries are
    only removed by ``sweep()`` (called on overflow, or periodically by the
    optional background sweeper); correctness never depends on it.

    Keys are the lowercased, trimmed query truncated to ``key_prefix_length``
    characters, so long queries that share a prefix share an entry.
    """

    def __init__(
        self,
        ttl_s: float = 60.0,
        key_prefix_length: int = 100,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ttl_s = ttl_s
        self._key_prefix_length = key_prefix_length
        self._max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()
        self._sweeper: asyncio.Task | None = None

    @property
    def ttl_s(self) -> float:
        return self._ttl_s

    def key_for(self, query: str) -> str:
        return query.strip().lower()[: self._key_prefix_length]

    def get(self, query: str) -> QueryClassification | None:
        key = self.key_for(query)
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.cached_at >= self._ttl_s:
            return None
        return entry.classification

    def set(self, query: str, classification: QueryClassification) -> None:
        """Store ``classification``; last write for a key wins."""
        key = self.key_for(query)
        with self._lock:
            self._entries[key] = CacheEntry(classification, self._clock())
            self._entries.move_to_end(key)
            if len(self._entries) > self._max_entries:
                self._sweep_locked()
                while len(self._entries) > self._max_entries:
                    self._entries.popitem(last=False)

    def sweep(self) -> int:
        """Drop expired entries. Returns how many were removed."""
        with self._lock:
            return self._sweep_locked()

    def _sweep_locked(self) -> int:
        now = self._clock()
        expired = [k for k, e in self._entries.items() if now - e.cached_at >= self._ttl_s]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.info("Classification cache cleared")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # --- Background sweeping ---

    def start_sweeper(self, interval_s: float | None = None) -> None:
        """Start a periodic sweep task on the running event loop."""
        if self._sweeper and not self._sweeper.done():
            return
        self._sweeper = asyncio.create_task(self._sweep_loop(interval_s or self._ttl_s))
        logger.debug("Classification cache: started sweeper")

    async def stop_sweeper(self) -> None:
        if self._sweeper and not self._sweeper.done():
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
        self._sweeper = None

    async def _sweep_loop(self, interval_s: float) -> None:
        while True:
            await asyncio.sleep(interval_s)
            removed = self.sweep()
            if removed:
                logger.debug(f"Classification cache: swept {removed} expired entries")
