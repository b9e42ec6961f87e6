import threading

import pytest

from storage.cache import OpportunityCache


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return OpportunityCache(ttls={'opportunities': 15.0}, max_sizes={'opportunities': 3}, clock=clock)


def test_get_within_ttl_hits(cache, clock):
    cache.set('opportunities', 'latest', ['a'])
    clock.advance(14.9)

    assert cache.get('opportunities', 'latest') == ['a']
    assert cache.stats()['hits'] == 1


def test_get_after_ttl_misses_and_evicts(cache, clock):
    cache.set('opportunities', 'latest', ['a'])
    clock.advance(15.0)

    assert cache.get('opportunities', 'latest') is None
    assert cache.size('opportunities') == 0
    stats = cache.stats()
    assert stats['misses'] == 1
    assert stats['expirations'] == 1


def test_capacity_evicts_exactly_the_oldest_accessed(cache, clock):
    for key in ('k1', 'k2', 'k3'):
        cache.set('opportunities', key, key)
        clock.advance(1)
    # Touch k1 so k2 becomes the least recently accessed
    assert cache.get('opportunities', 'k1') == 'k1'
    clock.advance(1)

    cache.set('opportunities', 'k4', 'k4')

    assert cache.size('opportunities') == 3
    assert cache.get('opportunities', 'k2') is None
    assert cache.get('opportunities', 'k1') == 'k1'
    assert cache.get('opportunities', 'k3') == 'k3'
    assert cache.get('opportunities', 'k4') == 'k4'
    assert cache.stats()['evictions'] == 1


def test_overwriting_existing_key_never_evicts(cache):
    for key in ('k1', 'k2', 'k3'):
        cache.set('opportunities', key, key)
    cache.set('opportunities', 'k2', 'updated')

    assert cache.size('opportunities') == 3
    assert cache.stats()['evictions'] == 0
    assert cache.get('opportunities', 'k2') == 'updated'


def test_namespaces_have_independent_ttls(clock):
    cache = OpportunityCache(clock=clock)
    cache.set('prices', 'snapshot', {'USDC/WETH': {}})
    cache.set('opportunities', 'latest', [])
    clock.advance(20)

    assert cache.get('opportunities', 'latest') is None
    assert cache.get('prices', 'snapshot') == {'USDC/WETH': {}}


def test_sweep_removes_expired_entries(clock):
    cache = OpportunityCache(clock=clock)
    cache.set('opportunities', 'latest', [])
    cache.set('pools', 'USDC/WETH', {})
    clock.advance(30)

    assert cache.sweep() == 1
    assert cache.size('opportunities') == 0
    assert cache.size('pools') == 1


def test_disabled_cache_always_misses(clock):
    cache = OpportunityCache(enabled=False, clock=clock)
    cache.set('prices', 'snapshot', {'x': 1})

    assert cache.get('prices', 'snapshot') is None
    assert cache.stats()['sets'] == 0


def test_set_enabled_false_clears_entries(cache):
    cache.set('opportunities', 'latest', [1])
    cache.set_enabled(False)

    assert cache.size('opportunities') == 0
    assert cache.get('opportunities', 'latest') is None


def test_invalidate_single_namespace(clock):
    cache = OpportunityCache(clock=clock)
    cache.set('prices', 'snapshot', 1)
    cache.set('pools', 'USDC/WETH', 2)
    cache.invalidate('prices')

    assert cache.size('prices') == 0
    assert cache.size('pools') == 1


def test_set_ttl_changes_visibility(cache, clock):
    cache.set('opportunities', 'latest', [1])
    cache.set_ttl('opportunities', 5)
    clock.advance(6)

    assert cache.get('opportunities', 'latest') is None
    with pytest.raises(ValueError):
        cache.set_ttl('opportunities', 0)


def test_unknown_namespace_raises(cache):
    with pytest.raises(KeyError):
        cache.get('nope', 'key')


def test_hit_rate(cache):
    cache.set('opportunities', 'latest', [1])
    cache.get('opportunities', 'latest')
    cache.get('opportunities', 'missing')

    stats = cache.stats()
    assert stats['hit_rate'] == 50.0
    assert stats['sizes']['opportunities'] == 1


def test_concurrent_writers_respect_capacity(clock):
    cache = OpportunityCache(max_sizes={'pools': 50}, clock=clock)

    def writer(prefix):
        for i in range(200):
            cache.set('pools', f"{prefix}-{i}", i)
            cache.get('pools', f"{prefix}-{i}")

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert cache.size('pools') == 50
    assert cache.stats()['sets'] == 800
