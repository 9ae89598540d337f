from common.cache import CacheService, cache_key


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_ttl_expiry():
    clock = FakeClock()
    cache = CacheService(default_ttl=10, clock=clock)
    cache.set("k", "v")
    assert cache.get("k") == "v"
    clock.now += 9.9
    assert cache.get("k") == "v"
    clock.now += 0.1
    assert cache.get("k") is None


def test_get_or_set_loads_once():
    cache = CacheService(clock=FakeClock())
    calls = []

    def loader():
        calls.append(1)
        return {"total": 3}

    assert cache.get_or_set("summary", loader) == {"total": 3}
    assert cache.get_or_set("summary", loader) == {"total": 3}
    assert len(calls) == 1


def test_prefix_invalidation_is_tenant_scoped():
    cache = CacheService(clock=FakeClock())
    cache.set(cache_key("shop-a", "stock", "summary"), 1)
    cache.set(cache_key("shop-a", "rates", "current"), 2)
    cache.set(cache_key("shop-b", "stock", "summary"), 3)

    assert cache.invalidate_prefix(cache_key("shop-a", "stock", "")) == 1
    assert cache.get(cache_key("shop-a", "stock", "summary")) is None
    assert cache.get(cache_key("shop-a", "rates", "current")) == 2
    assert cache.get(cache_key("shop-b", "stock", "summary")) == 3


def test_falsy_values_are_cached():
    cache = CacheService(clock=FakeClock())
    calls = []
    cache.get_or_set("empty", lambda: calls.append(1) or [])
    cache.get_or_set("empty", lambda: calls.append(1) or [])
    assert len(calls) == 1


def test_delete_and_clear():
    cache = CacheService(clock=FakeClock())
    cache.set("a", 1)
    cache.set("b", 2)
    cache.delete("a")
    assert cache.get("a") is None
    cache.clear()
    assert cache.get("b") is None
