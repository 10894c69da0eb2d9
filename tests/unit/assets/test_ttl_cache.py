from __future__ import annotations

from datetime import datetime, timedelta, timezone

from src.offload.utils.clock import utcnow
from src.offload.utils.ttl_cache import InMemoryTTLCache


def test_entries_expire_after_ttl() -> None:
    now = [datetime(2024, 1, 1, tzinfo=timezone.utc)]
    cache = InMemoryTTLCache(clock=lambda: now[0])

    cache.set("key", 42, ttl_seconds=10)
    assert cache.get("key") == 42

    now[0] += timedelta(seconds=10)
    assert cache.get("key") is None
    assert len(cache) == 0


def test_delete_prefix_only_drops_matching_keys() -> None:
    cache = InMemoryTTLCache()
    cache.set("stats:optimization", 1, 60)
    cache.set("stats:migration", 2, 60)
    cache.set("resolver:a.jpg", 3, 60)

    cache.delete_prefix("stats:")
    cache.delete("absent")

    assert cache.get("stats:optimization") is None
    assert cache.get("resolver:a.jpg") == 3


def test_default_clock_is_timezone_aware_utc() -> None:
    now = utcnow()

    assert now.tzinfo is not None
    assert now.utcoffset() == timedelta(0)
