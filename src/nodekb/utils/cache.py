"""Caller-owned TTL + LRU cache for memoized service payloads."""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import Generic, TypeVar

V = TypeVar("V")

Clock = Callable[[], float]


@dataclass(slots=True)
class _Entry(Generic[V]):
    value: V
    expires_at: float


class TTLCache(Generic[V]):
    """Bounded mapping whose entries expire ``ttl_seconds`` after being stored.

    The clock is injectable so expiry can be tested without sleeping. Eviction beyond
    ``max_entries`` drops the least recently used entry.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float,
        max_entries: int = 256,
        clock: Clock = time.monotonic,
    ) -> None:
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds must be >= 0")
        if max_entries <= 0:
            raise ValueError("max_entries must be > 0")
        self._ttl = float(ttl_seconds)
        self._max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[Hashable, _Entry[V]] = OrderedDict()
        self._hits = 0
        self._misses = 0

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def __len__(self) -> int:
        self._purge_expired()
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return self._live_entry(key) is not None

    def get(self, key: Hashable) -> V | None:
        entry = self._live_entry(key)
        if entry is None:
            self._misses += 1
            return None
        self._hits += 1
        self._entries.move_to_end(key)
        return entry.value

    def set(self, key: Hashable, value: V) -> None:
        self._entries[key] = _Entry(value=value, expires_at=self._clock() + self._ttl)
        self._entries.move_to_end(key)
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    def get_or_set(self, key: Hashable, factory: Callable[[], V]) -> V:
        entry = self._live_entry(key)
        if entry is not None:
            self._hits += 1
            self._entries.move_to_end(key)
            return entry.value
        self._misses += 1
        value = factory()
        self.set(key, value)
        return value

    def invalidate(self, key: Hashable | None = None) -> None:
        """Drop one key, or every entry when ``key`` is None."""

        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def snapshot(self) -> dict[str, float | int]:
        return {
            "entries": len(self),
            "max_entries": self._max_entries,
            "ttl_seconds": self._ttl,
            "hits": self._hits,
            "misses": self._misses,
        }

    def _live_entry(self, key: Hashable) -> _Entry[V] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            return None
        return entry

    def _purge_expired(self) -> None:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
        for key in expired:
            del self._entries[key]


__all__ = ["Clock", "TTLCache"]
