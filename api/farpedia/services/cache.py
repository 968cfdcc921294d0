"""Small in-process TTL cache with an injectable clock.

Holds per-fid Neynar profiles and user point summaries for a short window
so repeated page loads do not fan out to the store and the provider.
Entries live for ttl_seconds from the moment they are set.
"""

import time
from collections.abc import Awaitable, Callable, Hashable
from typing import Generic, Optional, TypeVar

V = TypeVar("V")


class TTLCache(Generic[V]):
    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int = 10_000,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._max_entries = max_entries
        self._entries: dict[Hashable, tuple[float, V]] = {}

    def get(self, key: Hashable) -> Optional[V]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: Hashable, value: V) -> None:
        if len(self._entries) >= self._max_entries and key not in self._entries:
            self._evict_expired()
            if len(self._entries) >= self._max_entries:
                # Oldest insertion goes first
                self._entries.pop(next(iter(self._entries)))
        self._entries[key] = (self._clock() + self.ttl_seconds, value)

    def invalidate(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    async def get_or_load(self, key: Hashable, loader: Callable[[], Awaitable[V]]) -> V:
        """Return the cached value or await loader() and cache its result.

        None results are not cached, so a missing upstream record is looked
        up again on the next call.
        """
        cached = self.get(key)
        if cached is not None:
            return cached
        value = await loader()
        if value is not None:
            self.set(key, value)
        return value

    def _evict_expired(self) -> None:
        now = self._clock()
        for key in [k for k, (expires_at, _) in self._entries.items() if now >= expires_at]:
            del self._entries[key]
