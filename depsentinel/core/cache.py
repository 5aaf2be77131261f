"""Result cache — keyed TTL store used to memoize scan results.

Purely an optimisation: results are a pure function of their cache key, so
concurrent writers to the same key simply overwrite each other.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class ResultCache(Protocol):
    """Interface consumed by the scan service."""

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None: ...


class MemoryCache:
    """In-process expiring map.

    Expired entries are swept lazily, at most once per *sweep_interval*
    seconds and at most *sweep_batch* entries per sweep. When the map grows
    beyond *max_entries* the oldest insertions are evicted first.
    """

    def __init__(
        self,
        *,
        max_entries: int = 5000,
        sweep_interval: float = 30.0,
        sweep_batch: int = 600,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: dict[str, tuple[Any, float]] = {}
        self._max_entries = max_entries
        self._sweep_interval = sweep_interval
        self._sweep_batch = sweep_batch
        self._clock = clock
        self._last_sweep = float("-inf")

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> Any | None:
        if not key:
            return None
        now = self._clock()
        entry = self._entries.get(key)
        if entry is not None and entry[1] <= now:
            del self._entries[key]
            entry = None
        self._sweep(now)
        return entry[0] if entry is not None else None

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        if not key:
            return
        # TTL <= 0 means "expire immediately"
        if ttl_seconds <= 0:
            self._entries.pop(key, None)
            return
        now = self._clock()
        # Re-insert so that overwrites count as the newest entry for eviction.
        self._entries.pop(key, None)
        self._entries[key] = (value, now + ttl_seconds)
        self._sweep(now)

    def _sweep(self, now: float) -> None:
        if not self._entries or now - self._last_sweep < self._sweep_interval:
            return
        self._last_sweep = now

        expired = []
        for checked, (key, (_, expires_at)) in enumerate(self._entries.items()):
            if checked >= self._sweep_batch:
                break
            if expires_at <= now:
                expired.append(key)
        for key in expired:
            del self._entries[key]

        overflow = len(self._entries) - self._max_entries
        if overflow > 0:
            for key in list(self._entries)[:overflow]:
                del self._entries[key]
