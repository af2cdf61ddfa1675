# backend/tests/test_cache_layer.py

import datetime
import json
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from prayer_engine.models import Coordinates
from prayer_engine.services.prayer_time.cache_layer import MultiTierCache
from prayer_engine.services.prayer_time.key_utils import generate_daily_cache_key
from prayer_engine.services.prayer_time.notifier import subscribe_to_refreshes, unsubscribe_from_refreshes
from prayer_engine.services.prayer_time.storage import MemoryStore

from factories import ADDIS, FakeProvider, make_timings

DAY = datetime.date(2025, 3, 15)
TTL = 24 * 3600


def key_for(day=DAY, coordinates=ADDIS):
    return generate_daily_cache_key(day, coordinates, "MWL")


def test_put_then_get_returns_equal_value(cache):
    timings = make_timings(DAY)
    cache.put(DAY, ADDIS, timings)
    assert cache.get(DAY, ADDIS) == timings


def test_key_rounds_coordinates_to_four_places():
    key = generate_daily_cache_key(DAY, Coordinates(9.01084, 38.76126), "MWL")
    assert key == "prayer_times:v1:2025-03-15:9.0108_38.7613:MWL"


def test_entry_expires_after_ttl(cache, store, clock):
    cache.put(DAY, ADDIS, make_timings(DAY))

    clock.advance(TTL)
    assert cache.get(DAY, ADDIS) is not None

    clock.advance(0.001)
    assert cache.get(DAY, ADDIS) is None
    # Expired durable entries are removed on read.
    assert store.get(key_for()) is None


def test_durable_hit_is_promoted_to_volatile(store, clock, calculated_provider, mocker):
    timings = make_timings(DAY)
    writer = MultiTierCache(store, [calculated_provider], clock=clock)
    writer.put(DAY, ADDIS, timings)

    reader = MultiTierCache(store, [calculated_provider], clock=clock)
    spy = mocker.spy(store, 'get')
    assert reader.get(DAY, ADDIS) == timings
    assert reader.get(DAY, ADDIS) == timings
    assert spy.call_count == 1
    writer.close()
    reader.close()


def test_get_instant_never_computes(cache, calculated_provider):
    assert cache.get_instant(DAY, ADDIS) is None
    assert calculated_provider.calls == 0

    cache.resolve(DAY, ADDIS)
    assert cache.get_instant(DAY, ADDIS) == make_timings(DAY)


def test_resolve_twice_invokes_provider_once(cache, calculated_provider):
    first = cache.resolve(DAY, ADDIS)
    second = cache.resolve(DAY, ADDIS)
    assert first == second
    assert calculated_provider.calls == 1


def test_skip_cache_forces_a_fresh_load(cache, calculated_provider):
    cache.resolve(DAY, ADDIS)
    cache.resolve(DAY, ADDIS, skip_cache=True)
    assert calculated_provider.calls == 2


def test_provider_chain_falls_through_on_miss(store, clock):
    remote = FakeProvider(name="remote", result=None)
    calculator = FakeProvider(name="calculator", result=make_timings(DAY))
    cache = MultiTierCache(store, [remote, calculator], clock=clock)

    assert cache.resolve(DAY, ADDIS).source == "calculator"
    assert remote.calls == 1
    assert calculator.calls == 1
    cache.close()


def test_first_provider_hit_wins(store, clock):
    remote = FakeProvider(name="remote", result=make_timings(DAY, source="remote"))
    calculator = FakeProvider(name="calculator", result=make_timings(DAY))
    cache = MultiTierCache(store, [remote, calculator], clock=clock)

    assert cache.resolve(DAY, ADDIS).source == "remote"
    assert calculator.calls == 0
    cache.close()


def test_no_provider_result_raises(store, clock):
    cache = MultiTierCache(store, [FakeProvider(result=None)], clock=clock)
    with pytest.raises(LookupError):
        cache.resolve(DAY, ADDIS)
    # A failed load does not leave the key stuck in flight.
    assert not cache.in_flight(DAY, ADDIS)
    cache.close()


def test_concurrent_resolves_share_one_load(store, clock):
    gate = threading.Event()
    provider = FakeProvider(result=make_timings(DAY), gate=gate)
    cache = MultiTierCache(store, [provider], clock=clock)

    with ThreadPoolExecutor(max_workers=2) as pool:
        first = pool.submit(cache.resolve, DAY, ADDIS)
        assert provider.started.wait(timeout=5)
        assert cache.in_flight(DAY, ADDIS)
        second = pool.submit(cache.resolve, DAY, ADDIS)
        gate.set()
        assert first.result(timeout=5) == second.result(timeout=5)

    assert provider.calls == 1
    cache.close()


def test_quota_failure_evicts_expired_entries_and_retries(clock):
    store = MemoryStore()
    old_day = DAY - datetime.timedelta(days=3)
    cache = MultiTierCache(store, [FakeProvider(result=make_timings(DAY))], clock=clock)
    cache.put(old_day, ADDIS, make_timings(old_day))
    one_entry = sum(len(k) + len(store.get(k)) for k in store.keys())

    # Room for one entry, not two.
    store.capacity_bytes = int(one_entry * 1.5)
    clock.advance(TTL + 1)

    cache.put(DAY, ADDIS, make_timings(DAY))

    assert store.get(key_for(old_day)) is None
    assert store.get(key_for()) is not None
    cache.close()


def test_dropped_durable_write_is_still_served_from_volatile(clock):
    store = MemoryStore(capacity_bytes=16)
    cache = MultiTierCache(store, [FakeProvider(result=make_timings(DAY))], clock=clock)

    timings = cache.resolve(DAY, ADDIS)

    assert store.keys() == []
    assert cache.get(DAY, ADDIS) == timings
    cache.close()


def test_unreadable_durable_entry_is_a_miss(cache, store):
    store.set(key_for(), "{not json")
    assert cache.get(DAY, ADDIS) is None
    assert store.get(key_for()) is None


def test_evict_expired_keeps_fresh_entries(cache, store, clock):
    old_day = DAY - datetime.timedelta(days=2)
    cache.put(old_day, ADDIS, make_timings(old_day))
    clock.advance(TTL + 1)
    cache.put(DAY, ADDIS, make_timings(DAY))
    store.set(key_for(DAY + datetime.timedelta(days=1)), json.dumps({"payload": {}}))
    store.set("qibla:9.0108_38.7613", json.dumps({"bearing": 5, "written_at": 0}))

    assert cache.evict_expired() == 2
    assert store.keys("prayer_times:") == [key_for()]
    assert store.get("qibla:9.0108_38.7613") is not None


def test_background_refresh_serves_stale_and_notifies(store, clock):
    fresh = make_timings(DAY, {"fajr": "04:58"}, source="remote")
    provider = FakeProvider(result=make_timings(DAY))
    executor = ThreadPoolExecutor(max_workers=1)
    cache = MultiTierCache(store, [provider], clock=clock, executor=executor)
    cache.resolve(DAY, ADDIS)

    received = []

    def receiver(sender, date, timings):
        received.append((sender, date, timings))

    subscribe_to_refreshes(receiver)
    try:
        provider.result = fresh
        served = cache.resolve(DAY, ADDIS, background_refresh=True)
        executor.shutdown(wait=True)
    finally:
        unsubscribe_from_refreshes(receiver)

    assert served.source == "calculator"
    assert received == [(cache, DAY, fresh)]
    assert cache.get(DAY, ADDIS) == fresh


def test_background_refresh_is_not_duplicated(store, clock):
    gate = threading.Event()
    provider = FakeProvider(result=make_timings(DAY), gate=gate)
    executor = ThreadPoolExecutor(max_workers=2)
    cache = MultiTierCache(store, [provider], clock=clock, executor=executor)

    first = cache.refresh_in_background(DAY, ADDIS)
    second = cache.refresh_in_background(DAY, ADDIS)
    gate.set()
    executor.shutdown(wait=True)

    assert first is second
    assert provider.calls == 1


def test_failed_background_refresh_keeps_cached_value(store, clock):
    provider = FakeProvider(result=make_timings(DAY))
    executor = ThreadPoolExecutor(max_workers=1)
    cache = MultiTierCache(store, [provider], clock=clock, executor=executor)
    cached = cache.resolve(DAY, ADDIS)

    provider.error = RuntimeError("source down")
    future = cache.refresh_in_background(DAY, ADDIS)
    executor.shutdown(wait=True)

    assert isinstance(future.exception(), RuntimeError)
    assert cache.get(DAY, ADDIS) == cached


def test_clear_volatile_falls_back_to_durable(cache, store, mocker):
    cache.put(DAY, ADDIS, make_timings(DAY))
    cache.clear_volatile()
    spy = mocker.spy(store, 'get')
    assert cache.get(DAY, ADDIS) == make_timings(DAY)
    assert spy.call_count == 1


class RacingStore(MemoryStore):
    """Lands a fresh put after the durable value has been read but before it is promoted."""

    def __init__(self):
        super().__init__()
        self.on_read = None

    def get(self, key):
        raw = super().get(key)
        if self.on_read is not None:
            callback, self.on_read = self.on_read, None
            callback()
        return raw


def test_promotion_does_not_overwrite_a_newer_put(clock, calculated_provider):
    store = RacingStore()
    stale = make_timings(DAY, source="calculator")
    fresh = make_timings(DAY, {"fajr": "05:05"}, source="remote")
    writer = MultiTierCache(store, [calculated_provider], clock=clock)
    writer.put(DAY, ADDIS, stale)
    writer.close()

    cache = MultiTierCache(store, [calculated_provider], clock=clock)
    store.on_read = lambda: cache.put(DAY, ADDIS, fresh)

    assert cache.get(DAY, ADDIS) == fresh
    assert cache.get(DAY, ADDIS) == fresh
    cache.close()


def test_failing_provider_falls_through_to_the_next(store, clock):
    remote = FakeProvider(name="remote", error=RuntimeError("unexpected payload"))
    calculator = FakeProvider(name="calculator", result=make_timings(DAY))
    cache = MultiTierCache(store, [remote, calculator], clock=clock)

    assert cache.resolve(DAY, ADDIS) == make_timings(DAY)
    assert (remote.calls, calculator.calls) == (1, 1)
    cache.close()


def test_last_provider_error_propagates(store, clock):
    cache = MultiTierCache(store, [FakeProvider(error=RuntimeError("calculator broke"))], clock=clock)
    with pytest.raises(RuntimeError):
        cache.resolve(DAY, ADDIS)
    assert not cache.in_flight(DAY, ADDIS)
    cache.close()
