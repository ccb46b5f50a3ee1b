import pytest

from ncore_stream.storage.cache import QueryCache, normalize_query_key


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


def test_normalize_query_key_is_order_independent():
    a = normalize_query_key({"mire": " tt1 ", "oldal": 1, "miben": "imdb"})
    b = normalize_query_key({"miben": "imdb", "oldal": "1", "mire": "tt1"})
    assert a == b


def test_normalize_query_key_drops_none_values():
    assert normalize_query_key({"a": "1", "b": None}) == normalize_query_key({"a": "1"})


def test_hit_within_ttl_returns_same_value(clock):
    cache = QueryCache(ttl_seconds=60, max_entries=10, clock=clock)
    value = ("x", "y")
    cache.set("q", value)
    clock.now += 59
    assert cache.get("q") is value


def test_entry_expires_after_ttl(clock):
    cache = QueryCache(ttl_seconds=60, max_entries=10, clock=clock)
    cache.set("q", "value")
    clock.now += 61
    assert cache.get("q") is None
    assert len(cache) == 0


def test_oldest_entry_is_evicted_beyond_capacity(clock):
    cache = QueryCache(ttl_seconds=60, max_entries=2, clock=clock)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("c", 3)
    assert cache.get("a") is None
    assert cache.get("b") == 2
    assert cache.get("c") == 3


def test_key_fn_is_applied(clock):
    cache = QueryCache(
        ttl_seconds=60, max_entries=10, key_fn=normalize_query_key, clock=clock
    )
    cache.set({"b": "2", "a": "1"}, "value")
    assert cache.get({"a": "1", "b": "2"}) == "value"


def test_purge_expired(clock):
    cache = QueryCache(ttl_seconds=60, max_entries=10, clock=clock)
    cache.set("old", 1)
    clock.now += 30
    cache.set("new", 2)
    clock.now += 31
    assert cache.purge_expired() == 1
    assert cache.get("new") == 2


@pytest.mark.asyncio
async def test_background_cleanup_can_be_stopped(clock):
    cache = QueryCache(ttl_seconds=60, max_entries=10, clock=clock)
    await cache.start_background_cleanup(interval=0.01)
    await cache.stop_background_cleanup()
