import time
import pytest
from difygen.tools.cache import CacheConfig, LRUCache, create_cache, get_cache_config


def test_lru_eviction():
    cache = LRUCache(max_size=3)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("c", 3)
    # aに触れるとbが最も古くなる
    assert cache.get("a") == 1
    cache.set("d", 4)

    assert cache.get("b") is None
    assert cache.get("a") == 1
    assert cache.get("c") == 3
    assert cache.get("d") == 4
    assert len(cache) == 3


def test_overwrite_does_not_evict():
    cache = LRUCache(max_size=2)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("a", 10)
    assert cache.size() == 2
    assert cache.get("a") == 10
    assert cache.get("b") == 2


def test_expired_entry_is_removed(monkeypatch):
    now = [1000.0]
    monkeypatch.setattr("difygen.tools.cache.time.monotonic", lambda: now[0])
    cache = LRUCache(max_size=10, ttl=5)
    cache.set("key", "value")
    assert cache.get("key") == "value"

    now[0] += 6
    assert cache.get("key") is None
    assert "key" not in cache
    assert cache.size() == 0


def test_per_entry_ttl_overrides_default(monkeypatch):
    now = [0.0]
    monkeypatch.setattr("difygen.tools.cache.time.monotonic", lambda: now[0])
    cache = LRUCache(max_size=10, ttl=100)
    cache.set("short", 1, ttl=1)
    cache.set("long", 2)
    now[0] = 2
    assert cache.keys() == ["long"]


def test_stats():
    cache = LRUCache(max_size=5, enable_stats=True)
    cache.set("a", 1)
    cache.get("a")
    cache.get("a")
    cache.get("missing")
    stats = cache.stats()
    assert stats.hits == 2
    assert stats.misses == 1
    assert stats.hit_rate == pytest.approx(2 / 3)

    cache.reset_stats()
    assert cache.stats().hits == 0


def test_get_or_set_calls_factory_once():
    cache = LRUCache(max_size=5)
    calls = []

    def factory():
        calls.append(1)
        return "computed"

    assert cache.get_or_set("k", factory) == "computed"
    assert cache.get_or_set("k", factory) == "computed"
    assert len(calls) == 1


def test_invalid_max_size():
    with pytest.raises(ValueError):
        LRUCache(max_size=0)


def test_config_from_env(monkeypatch):
    monkeypatch.setenv("TEMPLATE_CACHE_ENABLED", "false")
    monkeypatch.setenv("TEMPLATE_CACHE_MAX_SIZE", "42")
    monkeypatch.setenv("TEMPLATE_CACHE_TTL", "30")
    config = get_cache_config("TEMPLATE")
    assert config.enabled is False
    assert config.max_size == 42
    assert config.ttl == 30.0
    assert create_cache(config) is None


def test_config_from_env_ignores_bad_numbers(monkeypatch):
    monkeypatch.setenv("CACHE_MAX_SIZE", "many")
    config = get_cache_config()
    assert config.max_size == 100
    assert isinstance(create_cache(CacheConfig()), LRUCache)


def test_real_clock_ttl():
    cache = LRUCache(max_size=2, ttl=0.01)
    cache.set("a", 1)
    time.sleep(0.05)
    assert cache.get("a") is None
