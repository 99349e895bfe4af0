"""
Process-wide keyed cache of server data.

Features:
- Query keys are tuples, e.g. ``("/api/cart", 7)``
- Prefix matching for invalidation, so ``("/api/cart",)`` hits every cart
- Concurrent reads of one key share a single in-flight fetch
- Invalidation marks entries stale and refetches the ones with a fetcher
- ``clear()`` starts a new generation; fetches begun earlier are not stored
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Hashable, Sequence
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

QueryKey = tuple[Hashable, ...]
Fetcher = Callable[[], Awaitable[Any]]


def normalize_key(key: Sequence[Hashable] | Hashable) -> QueryKey:
    if isinstance(key, tuple):
        return key
    if isinstance(key, list):
        return tuple(key)
    return (key,)


def key_matches(key: QueryKey, prefix: QueryKey) -> bool:
    """True when ``prefix`` is a leading slice of ``key``."""
    return key[: len(prefix)] == prefix


@dataclass
class QueryEntry:
    """Cached value of one query key with fetch metadata."""

    key: QueryKey
    data: Any = None
    updated_at: float | None = None
    is_invalidated: bool = False
    fetcher: Fetcher | None = None
    error: BaseException | None = None
    fetch_count: int = 0

    @property
    def has_data(self) -> bool:
        return self.updated_at is not None

    def is_stale(self, stale_time: float | None) -> bool:
        """None stale time means data never goes stale on its own."""
        if not self.has_data or self.is_invalidated:
            return True
        if stale_time is None:
            return False
        return time.time() - self.updated_at > stale_time


@dataclass
class QueryCacheStats:
    hits: int = 0
    misses: int = 0
    fetches: int = 0
    invalidations: int = 0
    dropped: int = 0
    entries: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "fetches": self.fetches,
            "invalidations": self.invalidations,
            "dropped": self.dropped,
            "entries": self.entries,
        }


class QueryCache:
    """Keyed cache of server state shared by every service of one client."""

    def __init__(self, stale_time: float | None = None) -> None:
        self.stale_time = stale_time
        self._entries: dict[QueryKey, QueryEntry] = {}
        self._inflight: dict[QueryKey, asyncio.Future] = {}
        self._generation = 0
        self._stats = QueryCacheStats()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get_query_data(self, key: Sequence[Hashable] | Hashable) -> Any | None:
        entry = self._entries.get(normalize_key(key))
        return entry.data if entry else None

    def get_entry(self, key: Sequence[Hashable] | Hashable) -> QueryEntry | None:
        return self._entries.get(normalize_key(key))

    def keys(self) -> list[QueryKey]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def is_fetching(self, prefix: Sequence[Hashable] | Hashable | None = None) -> bool:
        if prefix is None:
            return bool(self._inflight)
        prefix = normalize_key(prefix)
        return any(key_matches(key, prefix) for key in self._inflight)

    @property
    def generation(self) -> int:
        return self._generation

    def get_stats(self) -> dict[str, Any]:
        self._stats.entries = len(self._entries)
        return self._stats.to_dict()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def set_query_data(self, key: Sequence[Hashable] | Hashable, data: Any) -> None:
        key = normalize_key(key)
        entry = self._entries.setdefault(key, QueryEntry(key=key))
        entry.data = data
        entry.updated_at = time.time()
        entry.is_invalidated = False
        entry.error = None

    async def fetch_query(self, key: Sequence[Hashable] | Hashable, fetcher: Fetcher) -> Any:
        """Return cached data, fetching it first when missing or stale."""
        key = normalize_key(key)
        entry = self._entries.setdefault(key, QueryEntry(key=key))
        entry.fetcher = fetcher

        if not entry.is_stale(self.stale_time):
            self._stats.hits += 1
            return entry.data

        self._stats.misses += 1
        return await self._start_fetch(key, fetcher, force=False)

    async def invalidate_queries(
        self, prefix: Sequence[Hashable] | Hashable, refetch: bool = True
    ) -> int:
        """Mark matching entries stale and refetch those that have a fetcher.

        Refetch failures are logged, not raised: the entry keeps its previous
        data and stays invalidated so the next read retries.
        """
        prefix = normalize_key(prefix)
        matched = [entry for key, entry in self._entries.items() if key_matches(key, prefix)]
        for entry in matched:
            entry.is_invalidated = True
        self._stats.invalidations += len(matched)
        logger.debug("Invalidated %d queries for %s", len(matched), prefix)

        if refetch:
            active = [entry for entry in matched if entry.fetcher is not None]
            results = await asyncio.gather(
                *(self._start_fetch(entry.key, entry.fetcher, force=True) for entry in active),
                return_exceptions=True,
            )
            for entry, result in zip(active, results):
                if isinstance(result, Exception):
                    logger.warning("Refetch of %s failed: %s", entry.key, result)
        return len(matched)

    def remove_queries(self, prefix: Sequence[Hashable] | Hashable) -> int:
        prefix = normalize_key(prefix)
        doomed = [key for key in self._entries if key_matches(key, prefix)]
        for key in doomed:
            del self._entries[key]
            self._inflight.pop(key, None)
        return len(doomed)

    def clear(self) -> int:
        """Drop every entry; in-flight fetches finish but are not stored."""
        count = len(self._entries)
        self._entries.clear()
        self._inflight.clear()
        self._generation += 1
        logger.debug("Query cache cleared (%d entries), generation %d", count, self._generation)
        return count

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------
    async def _start_fetch(self, key: QueryKey, fetcher: Fetcher, force: bool) -> Any:
        task = self._inflight.get(key)
        if task is None or force:
            task = asyncio.ensure_future(self._run_fetch(key, fetcher, self._generation))
            self._inflight[key] = task
        return await asyncio.shield(task)

    async def _run_fetch(self, key: QueryKey, fetcher: Fetcher, generation: int) -> Any:
        self._stats.fetches += 1
        try:
            data = await fetcher()
        except Exception as exc:
            entry = self._entries.get(key)
            if entry is not None and generation == self._generation:
                entry.error = exc
            raise
        finally:
            if self._inflight.get(key) is asyncio.current_task():
                del self._inflight[key]

        if generation != self._generation:
            self._stats.dropped += 1
            logger.debug("Dropping result for %s fetched before cache clear", key)
            return data

        entry = self._entries.setdefault(key, QueryEntry(key=key))
        entry.data = data
        entry.updated_at = time.time()
        entry.is_invalidated = False
        entry.error = None
        entry.fetch_count += 1
        return data
