"""TTL cache tests driven by a fake clock."""

from __future__ import annotations

import pytest

from nodekb.utils.cache import TTLCache


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_entries_expire_after_ttl() -> None:
    clock = _Clock()
    cache: TTLCache[str] = TTLCache(ttl_seconds=10, clock=clock)
    cache.set("a", "value")

    clock.now = 9.9
    assert cache.get("a") == "value"
    clock.now = 10.0
    assert cache.get("a") is None
    assert "a" not in cache


def test_get_or_set_calls_factory_once_per_lifetime() -> None:
    clock = _Clock()
    cache: TTLCache[int] = TTLCache(ttl_seconds=5, clock=clock)
    calls: list[int] = []

    def factory() -> int:
        calls.append(1)
        return len(calls)

    assert cache.get_or_set("k", factory) == 1
    assert cache.get_or_set("k", factory) == 1
    clock.now = 6
    assert cache.get_or_set("k", factory) == 2
    assert cache.snapshot()["hits"] == 1
    assert cache.snapshot()["misses"] == 2


def test_least_recently_used_entry_is_evicted() -> None:
    cache: TTLCache[str] = TTLCache(ttl_seconds=60, max_entries=2, clock=_Clock())
    cache.set("a", "1")
    cache.set("b", "2")
    cache.get("a")

    cache.set("c", "3")

    assert "a" in cache
    assert "b" not in cache
    assert len(cache) == 2


def test_invalidate_single_key_and_all() -> None:
    cache: TTLCache[str] = TTLCache(ttl_seconds=60, clock=_Clock())
    cache.set(("essentials", "nodes-base.slack"), "x")
    cache.set(("versions", "nodes-base.slack"), "y")

    cache.invalidate(("essentials", "nodes-base.slack"))
    assert len(cache) == 1
    cache.invalidate()
    assert len(cache) == 0


def test_zero_ttl_never_serves_entries() -> None:
    cache: TTLCache[str] = TTLCache(ttl_seconds=0, clock=_Clock())
    cache.set("a", "1")

    assert cache.get("a") is None


@pytest.mark.parametrize(
    ("kwargs", "message"),
    [({"ttl_seconds": -1}, "ttl_seconds"), ({"ttl_seconds": 1, "max_entries": 0}, "max_entries")],
)
def test_rejects_invalid_bounds(kwargs: dict[str, float], message: str) -> None:
    with pytest.raises(ValueError, match=message):
        TTLCache(**kwargs)  # type: ignore[arg-type]
