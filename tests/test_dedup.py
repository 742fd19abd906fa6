import threading

from agentchannels.application.dedup import DedupCache


def test_first_sighting_is_not_duplicate():
    cache = DedupCache(ttl_ms=1000, max_size=10)
    assert cache.check("a", now=0) is False
    assert cache.check("a", now=500) is True


def test_hit_refreshes_timestamp():
    cache = DedupCache(ttl_ms=1000, max_size=10)
    cache.check("a", now=0)
    assert cache.check("a", now=900) is True
    # refreshed at 900, so still inside the window at 1800
    assert cache.check("a", now=1800) is True
    assert cache.check("a", now=2900) is False


def test_empty_key_never_recorded():
    cache = DedupCache()
    assert cache.check("") is False
    assert cache.check(None) is False
    assert len(cache) == 0


def test_zero_ttl_never_expires():
    cache = DedupCache(ttl_ms=0, max_size=10)
    cache.check("a", now=0)
    assert cache.check("a", now=10**12) is True


def test_entry_expires_exactly_at_ttl():
    cache = DedupCache(ttl_ms=1000, max_size=10)
    cache.check("k", now=0)
    assert cache.check("k", now=999) is True
    cache = DedupCache(ttl_ms=1000, max_size=10)
    cache.check("k", now=0)
    assert cache.check("k", now=1000) is False


def test_oldest_key_evicted_past_max_size():
    cache = DedupCache(ttl_ms=60_000, max_size=3)
    for now, key in enumerate(["k0", "k1", "k2", "k3"], start=1):
        assert cache.check(key, now=now) is False
    assert len(cache) == 3
    assert "k0" not in cache
    assert all(key in cache for key in ("k1", "k2", "k3"))


def test_size_bound_evicts_least_recently_seen():
    cache = DedupCache(ttl_ms=0, max_size=2)
    cache.check("a", now=1)
    cache.check("b", now=2)
    cache.check("a", now=3)  # a becomes most recent
    cache.check("c", now=4)
    assert len(cache) == 2
    assert "b" not in cache
    assert "a" in cache and "c" in cache


def test_expired_entries_pruned_on_miss():
    cache = DedupCache(ttl_ms=100, max_size=10)
    cache.check("a", now=0)
    cache.check("b", now=50)
    cache.check("c", now=200)
    assert "a" not in cache
    assert "b" not in cache
    assert len(cache) == 1


def test_negative_bounds_are_clamped():
    cache = DedupCache(ttl_ms=-5, max_size=-1)
    assert cache.ttl_ms == 0
    assert cache.max_size == 0
    assert cache.check("a", now=1) is False
    assert len(cache) == 0


def test_concurrent_checks_report_one_new_sighting():
    cache = DedupCache()
    results: list[bool] = []
    lock = threading.Lock()

    def worker():
        seen = cache.check("same-key")
        with lock:
            results.append(seen)

    threads = [threading.Thread(target=worker) for _ in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(False) == 1
    assert results.count(True) == 15


def test_clear():
    cache = DedupCache()
    cache.check("a")
    cache.clear()
    assert len(cache) == 0
    assert cache.check("a") is False
