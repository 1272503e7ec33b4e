from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Hashable, Optional

from loguru import logger


QueryKey = tuple[Hashable, ...]
Loader = Callable[[], Any]


def as_key(key: Hashable | QueryKey) -> QueryKey:
    if isinstance(key, tuple):
        return key
    return (key,)


def _matches(key: QueryKey, prefix: QueryKey) -> bool:
    return key[: len(prefix)] == prefix


@dataclass
class CacheEntry:
    data: Any
    fetched_at: float
    last_access: float
    loader: Optional[Loader] = None
    invalidated: bool = False


class QueryCache:
    """Process-wide keyed cache of server responses.

    Keys are tuples such as ``("/api/users", 3, "work")``. ``invalidate`` marks
    every entry whose key starts with the given prefix as stale so the next
    ``fetch`` reloads it. With ``refetch=True`` entries that were loaded through
    ``fetch`` are reloaded right away, the way an active query refreshes after a
    mutation; a failed reload leaves the old data readable and the entry stale.
    """

    def __init__(
        self,
        stale_seconds: float = 300,
        gc_seconds: float = 600,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.stale_seconds = stale_seconds
        self.gc_seconds = gc_seconds
        self._clock = clock
        self._entries: dict[QueryKey, CacheEntry] = {}
        self._lock = threading.RLock()

    def __contains__(self, key: Hashable | QueryKey) -> bool:
        with self._lock:
            return as_key(key) in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def keys(self) -> list[QueryKey]:
        with self._lock:
            return list(self._entries)

    def _is_stale(self, entry: CacheEntry, now: float) -> bool:
        return entry.invalidated or now - entry.fetched_at >= self.stale_seconds

    def is_stale(self, key: Hashable | QueryKey) -> bool:
        with self._lock:
            entry = self._entries.get(as_key(key))
            if entry is None:
                return True
            return self._is_stale(entry, self._clock())

    def peek(self, key: Hashable | QueryKey, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(as_key(key))
            if entry is None:
                return default
            entry.last_access = self._clock()
            return entry.data

    def set(self, key: Hashable | QueryKey, data: Any, loader: Optional[Loader] = None) -> None:
        now = self._clock()
        cache_key = as_key(key)
        with self._lock:
            previous = self._entries.get(cache_key)
            if loader is None and previous is not None:
                loader = previous.loader
            self._entries[cache_key] = CacheEntry(data=data, fetched_at=now, last_access=now, loader=loader)

    def fetch(self, key: Hashable | QueryKey, loader: Loader) -> Any:
        """Return fresh cached data for ``key`` or load, store and return it.

        Errors raised by ``loader`` propagate and leave the cache untouched.
        """
        cache_key = as_key(key)
        self.collect_garbage()
        with self._lock:
            entry = self._entries.get(cache_key)
            now = self._clock()
            if entry is not None and not self._is_stale(entry, now):
                entry.last_access = now
                return entry.data
        data = loader()
        self.set(cache_key, data, loader=loader)
        return data

    def invalidate(self, key_prefix: Hashable | QueryKey, *, refetch: bool = False) -> int:
        prefix = as_key(key_prefix)
        reload: list[tuple[QueryKey, Loader]] = []
        count = 0
        with self._lock:
            for key, entry in self._entries.items():
                if not _matches(key, prefix):
                    continue
                entry.invalidated = True
                count += 1
                if refetch and entry.loader is not None:
                    reload.append((key, entry.loader))
        logger.debug("invalidated {} cache entries under {}", count, prefix)
        for key, loader in reload:
            try:
                data = loader()
            except Exception as exc:
                logger.warning("refetch of {} failed: {}: {}", key, type(exc).__name__, exc)
                continue
            self.set(key, data, loader=loader)
        return count

    def remove(self, key_prefix: Hashable | QueryKey) -> int:
        prefix = as_key(key_prefix)
        with self._lock:
            doomed = [key for key in self._entries if _matches(key, prefix)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def collect_garbage(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [
                key for key, entry in self._entries.items() if now - entry.last_access >= self.gc_seconds
            ]
            for key in expired:
                del self._entries[key]
        return len(expired)
