import pytest

from themetree.cache.keys import key_kind, make_key, pair_key
from themetree.cache.response_cache import ResponseCache
from themetree.config.analysis_config import CacheConfig


def test_keys_are_deterministic_and_order_insensitive_for_pairs():
    a = {"name": "Auth", "files": ["a.py", "b.py"]}
    b = {"name": "Tokens", "files": ["c.py"]}
    assert make_key("expansion", {"x": 1, "y": 2}) == make_key("expansion", {"y": 2, "x": 1})
    assert make_key("expansion", {"x": 1}) != make_key("expansion", {"x": 2})
    assert pair_key("similarity", a, b) == pair_key("similarity", b, a)
    assert key_kind(pair_key("similarity", a, b)) == "similarity"


def test_set_then_get_within_ttl(clock):
    cache = ResponseCache(CacheConfig(), clock=clock)
    key = make_key("expansion", {"theme": "t1"})
    cache.set(key, {"should_expand": False})
    clock.advance(1799)
    assert cache.get(key) == {"should_expand": False}
    assert key in cache


def test_expired_entry_is_a_miss(clock):
    cache = ResponseCache(CacheConfig(), clock=clock)
    key = make_key("expansion", {"theme": "t1"})
    cache.set(key, {"v": 1})
    clock.advance(1800)
    assert cache.get(key) is None
    m = cache.metrics()
    assert m["expirations"] == 1
    assert m["misses"] == 1
    assert m["entries"] == 0


def test_per_kind_ttl(clock):
    cache = ResponseCache(CacheConfig(), clock=clock)
    exp = make_key("expansion", {"t": 1})
    sim = make_key("similarity", {"t": 1})
    cache.set(exp, {"v": 1})
    cache.set(sim, {"v": 2})
    clock.advance(45 * 60)
    assert cache.get(exp) is None
    assert cache.get(sim) == {"v": 2}


def test_explicit_ttl_wins(clock):
    cache = ResponseCache(CacheConfig(), clock=clock)
    key = make_key("expansion", {"t": 1})
    cache.set(key, {"v": 1}, ttl=5)
    clock.advance(5)
    assert cache.get(key) is None


def test_oldest_entries_evicted_over_budget(clock):
    cache = ResponseCache(CacheConfig(max_bytes=400), clock=clock)
    keys = [make_key("expansion", {"i": i}) for i in range(6)]
    for key in keys:
        cache.set(key, {"payload": "x" * 60})
    assert cache.memory_usage <= 400
    assert cache.get(keys[0]) is None
    assert cache.get(keys[-1]) is not None
    assert cache.metrics()["evictions"] > 0


def test_lru_keeps_recently_read_entries(clock):
    cache = ResponseCache(CacheConfig(max_bytes=400, lru=True), clock=clock)
    keys = [make_key("expansion", {"i": i}) for i in range(6)]
    for key in keys[:3]:
        cache.set(key, {"payload": "x" * 60})
    cache.get(keys[0])
    cache.set(keys[3], {"payload": "x" * 60})
    assert cache.get(keys[1]) is None
    assert cache.get(keys[0]) is not None


def test_oversized_and_none_values_are_not_stored(clock):
    cache = ResponseCache(CacheConfig(max_bytes=50), clock=clock)
    cache.set(make_key("expansion", {"i": 1}), {"payload": "x" * 500})
    cache.set(make_key("expansion", {"i": 2}), None)
    assert len(cache) == 0


def test_disabled_cache_stores_nothing(clock):
    cache = ResponseCache(CacheConfig(enabled=False), clock=clock)
    key = make_key("expansion", {"i": 1})
    cache.set(key, {"v": 1})
    assert cache.get(key) is None


def test_clear_by_kind_and_purge(clock):
    cache = ResponseCache(CacheConfig(), clock=clock)
    cache.set(make_key("expansion", {"i": 1}), {"v": 1})
    cache.set(make_key("similarity", {"i": 1}), {"v": 2})
    cache.set(make_key("similarity", {"i": 2}), {"v": 3}, ttl=10)
    assert cache.clear("expansion") == 1
    clock.advance(10)
    assert cache.purge_expired() == 1
    assert len(cache) == 1
    assert cache.clear() == 1
    assert cache.memory_usage == 0


def test_metrics_and_report(clock):
    cache = ResponseCache(CacheConfig(), clock=clock)
    key = make_key("cross_level", {"i": 1})
    cache.set(key, {"v": 1})
    cache.get(key)
    cache.get(make_key("cross_level", {"i": 2}))
    m = cache.metrics()
    assert m["hits"] == 1
    assert m["misses"] == 1
    assert m["hit_rate"] == pytest.approx(0.5)
    assert m["hits_by_kind"] == {"cross_level": 1}
    assert m["memory_usage"] > 0
    # reading metrics does not change them
    assert cache.metrics() == m
    assert "hit rate" in cache.efficiency_report()


def test_get_batch(clock):
    cache = ResponseCache(CacheConfig(), clock=clock)
    k1, k2 = make_key("expansion", {"i": 1}), make_key("expansion", {"i": 2})
    cache.set(k1, {"v": 1})
    assert cache.get_batch([k1, k2]) == [{"v": 1}, None]


@pytest.mark.asyncio
async def test_warm_fills_only_misses(clock):
    cache = ResponseCache(CacheConfig(), clock=clock)
    k1, k2 = make_key("expansion", {"i": 1}), make_key("expansion", {"i": 2})
    cache.set(k1, {"v": "old"})
    produced = []

    async def producer(key):
        produced.append(key)
        return {"v": "new"}

    assert await cache.warm([k1, k2], producer) == 1
    assert produced == [k2]
    assert cache.get(k1) == {"v": "old"}


@pytest.mark.asyncio
@pytest.mark.parametrize("config", [CacheConfig(enabled=False), CacheConfig(max_bytes=50)])
async def test_warm_counts_only_stored_entries(clock, config):
    cache = ResponseCache(config, clock=clock)
    keys = [make_key("expansion", {"i": i}) for i in range(3)]

    async def producer(key):
        return {"payload": "x" * 500}

    assert await cache.warm(keys, producer) == 0
    assert len(cache) == 0
