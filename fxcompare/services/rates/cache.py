"""Time-bounded memoization for provider rates."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Generic, Hashable, TypeVar

V = TypeVar("V")

DEFAULT_TTL_SECONDS = 60 * 60


@dataclass(slots=True)
class CacheEntry(Generic[V]):
    value: V
    stored_at: float


class TTLCache(Generic[V]):
    """In-process cache whose entries expire ``ttl_seconds`` after being stored.

    Expiry is checked lazily on lookup; there is no background eviction. One
    instance is owned by each provider so caches never share keys.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[Hashable, CacheEntry[V]] = {}

    def get(self, key: Hashable) -> V | None:
        """Return the cached value or ``None`` when absent or expired."""

        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at > self.ttl_seconds:
            del self._entries[key]
            return None
        return entry.value

    def set(self, key: Hashable, value: V) -> None:
        self._entries[key] = CacheEntry(value=value, stored_at=self._clock())

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key) is not None


__all__ = ["CacheEntry", "DEFAULT_TTL_SECONDS", "TTLCache"]
