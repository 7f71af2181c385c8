"""Tests for the TTL cache and request contexts in attom_gateway/cache.py."""

from __future__ import annotations

from attom_gateway.cache import (
    CacheEntry,
    RequestContext,
    RequestContextStore,
    TTLCache,
    address_key,
    ttl_for_path,
)


# ---------------------------------------------------------------------------
# 1. Expiry
# ---------------------------------------------------------------------------
class TestExpiry:
    def test_value_available_before_ttl(self, cache, clock) -> None:
        cache.set("k", {"a": 1}, ttl_seconds=10)
        clock.advance(9.999)
        assert cache.get("k") == {"a": 1}

    def test_value_available_at_exact_ttl(self, cache, clock) -> None:
        cache.set("k", "v", ttl_seconds=10)
        clock.advance(10)
        assert cache.get("k") == "v"

    def test_expired_entry_is_absent_and_removed(self, cache, clock) -> None:
        cache.set("k", "v", ttl_seconds=10)
        clock.advance(10.5)
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_expired_entry_stays_until_read(self, cache, clock) -> None:
        cache.set("k", "v", ttl_seconds=1)
        clock.advance(5)
        assert len(cache) == 1
        assert "k" not in cache
        assert len(cache) == 0

    def test_overwrite_resets_timestamp(self, cache, clock) -> None:
        cache.set("k", "old", ttl_seconds=10)
        clock.advance(8)
        cache.set("k", "new", ttl_seconds=10)
        clock.advance(8)
        assert cache.get("k") == "new"

    def test_entry_expiry_rule(self) -> None:
        entry = CacheEntry(data=1, stored_at_ms=1000, ttl_ms=500)
        assert entry.is_expired(1500) is False
        assert entry.is_expired(1501) is True


# ---------------------------------------------------------------------------
# 2. Bookkeeping
# ---------------------------------------------------------------------------
class TestBookkeeping:
    def test_delete_and_clear(self, cache) -> None:
        cache.set("a", 1, 60)
        cache.set("b", 2, 60)
        assert cache.delete("a") is True
        assert cache.delete("a") is False
        cache.clear()
        assert len(cache) == 0

    def test_stats_track_hits_and_misses(self, cache) -> None:
        cache.set("a", 1, 60)
        cache.get("a")
        cache.get("missing")
        stats = cache.stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == 0.5

    def test_default_clock_is_wall_time(self) -> None:
        cache = TTLCache()
        cache.set("k", "v", 60)
        assert cache.get("k") == "v"


# ---------------------------------------------------------------------------
# 3. Path TTLs
# ---------------------------------------------------------------------------
class TestPathTtl:
    def test_known_paths(self) -> None:
        assert ttl_for_path("/propertyapi/v1.0.0/property/detail") == 86400
        assert ttl_for_path("/v4/school/profile") == 259200
        assert ttl_for_path("/v4/neighborhood/community") == 604800

    def test_comparables_prefix(self) -> None:
        assert ttl_for_path("/property/v2/salescomparables/propid/1") == 86400

    def test_unknown_path_uses_default(self) -> None:
        assert ttl_for_path("/something/else", default=42) == 42


# ---------------------------------------------------------------------------
# 4. Request contexts
# ---------------------------------------------------------------------------
class TestRequestContext:
    def test_merge_never_removes_keys(self) -> None:
        context = RequestContext(geo_ids={"N2": "N2abc"})
        context.merge_geo_ids({"SB": "SBdef", "N2": "", "ZI": None})
        assert context.geo_ids == {"N2": "N2abc", "SB": "SBdef"}

    def test_merge_overwrites_with_non_empty(self) -> None:
        context = RequestContext(geo_ids={"N2": "old"})
        context.merge_geo_ids({"N2": "new"})
        assert context.geo_ids["N2"] == "new"

    def test_remember_id_ignores_empty(self) -> None:
        context = RequestContext(resolved_id="1")
        context.remember_id(None)
        context.remember_id("")
        assert context.resolved_id == "1"

    def test_address_key_is_normalized(self) -> None:
        assert address_key(" 123  Main St ", "Springfield, IL") == address_key("123 main st", "SPRINGFIELD, IL")

    def test_store_creates_lazily_and_reuses(self) -> None:
        store = RequestContextStore()
        first = store.for_address("1 A St", "Town, CA")
        first.remember_id("42")
        assert store.for_address("1 a st", "town, ca").resolved_id == "42"
        assert store.for_id("42") is not first
        assert len(store) == 2
        store.clear()
        assert len(store) == 0
