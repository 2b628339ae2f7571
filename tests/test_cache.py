from jobmap.models.cache import ResultCache, make_key


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def test_keys_distinguish_absent_and_empty_location():
    assert make_key("java") != make_key("java", "")
    assert make_key("java", None) == make_key("java")
    assert make_key("a:b") != make_key("a", "b")


def test_hit_within_ttl():
    clock = FakeClock()
    cache = ResultCache(ttl=300, clock=clock)
    cache.set("k", ["job"])
    clock.now += 299
    assert cache.get("k") == ["job"]


def test_expired_entry_is_a_miss_and_is_evicted():
    clock = FakeClock()
    cache = ResultCache(ttl=300, clock=clock)
    cache.set("k", ["job"])
    clock.now += 300
    assert len(cache) == 1
    assert cache.get("k") is None
    assert len(cache) == 0


def test_invalidate_all():
    cache = ResultCache()
    cache.set("a", [])
    cache.set("b", [])
    cache.invalidate_all()
    assert cache.get("a") is None
    assert len(cache) == 0


def test_oldest_entries_pruned_past_capacity():
    clock = FakeClock()
    cache = ResultCache(max_entries=2, clock=clock)
    for key in ("first", "second", "third"):
        cache.set(key, [key])
        clock.now += 1
    assert cache.get("first") is None
    assert cache.get("third") == ["third"]
    assert len(cache) == 2
