import threading
import time
from datetime import timedelta

import pytest

from packetrelay.ttl_map import (
    Clock,
    MapLocked,
    OccupiedEntry,
    TimedValue,
    TtlMap,
    VacantEntry,
)


class ManualTime:
    def __init__(self, start=0.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


ONE = ("127.0.0.1", 8080)
TWO = ("127.0.0.2", 8080)
THREE = ("127.0.0.3", 8080)


@pytest.fixture
def manual_time():
    return ManualTime()


@pytest.fixture
def make_map(manual_time):
    created = []

    def factory(ttl=10, poll_interval=None):
        m = TtlMap(ttl, poll_interval, Clock(time_fn=manual_time))
        created.append(m)
        return m

    yield factory
    for m in created:
        m.close()


def test_len(make_map):
    m = make_map()
    m.insert(ONE, 1)
    assert len(m) == 1
    m.insert(TWO, 2)
    assert len(m) == 2


def test_insert_and_get(make_map):
    m = make_map()
    m.insert(ONE, 1)
    m.insert(TWO, 2)
    assert m.get(ONE).value == 1
    assert m.get(TWO).value == 2


def test_get_missing_returns_none(make_map):
    m = make_map()
    assert m.get(ONE) is None


def test_insert_returns_previous_value(make_map):
    m = make_map()
    assert m.insert(ONE, 1) is None
    assert m.insert(ONE, 7) == 1
    assert m.get(ONE).value == 7


def test_insert_and_get_expiration(make_map, manual_time):
    m = make_map()
    m.insert(ONE, 1)
    exp1 = m.get(ONE).expiration_secs()
    manual_time.advance(2)
    exp2 = m.get(ONE).expiration_secs()
    manual_time.advance(3)
    exp3 = m.get(ONE).expiration_secs()
    assert exp1 < exp2
    assert exp2 - exp1 == 2
    assert exp2 < exp3
    assert exp3 - exp2 == 3


def test_contains_key(make_map):
    m = make_map()
    m.insert(ONE, 1)
    m.insert(TWO, 2)
    assert ONE in m
    assert THREE not in m
    assert TWO in m


def test_entry_occupied_insert_and_get(make_map):
    m = make_map()
    m.insert(ONE, 1)
    entry = m.entry(ONE)
    assert isinstance(entry, OccupiedEntry)
    assert entry.get().value == 1
    entry.insert(5)
    assert m.get(ONE).value == 5


def test_entry_occupied_get_mut(make_map):
    m = make_map()
    m.insert(ONE, 1)
    entry = m.entry(ONE)
    assert isinstance(entry, OccupiedEntry)
    entry.get_mut().value = 5
    assert m.get(ONE).value == 5


def test_entry_vacant_insert(make_map):
    m = make_map()
    entry = m.entry(ONE)
    assert isinstance(entry, VacantEntry)
    stored = entry.insert(1)
    assert stored.value == 1
    stored.value = 5
    assert m.get(ONE).value == 5


def test_entry_occupied_get_expiration(make_map, manual_time):
    m = make_map()
    m.insert(ONE, 1)
    exp1 = m.get(ONE).expiration_secs()
    manual_time.advance(2)
    entry = m.entry(ONE)
    assert isinstance(entry, OccupiedEntry)
    exp2 = entry.get().expiration_secs()
    assert exp1 < exp2
    assert exp2 - exp1 == 2


def test_entry_occupied_get_mut_expiration(make_map, manual_time):
    m = make_map()
    m.insert(ONE, 1)
    exp1 = m.get(ONE).expiration_secs()
    manual_time.advance(2)
    entry = m.entry(ONE)
    assert isinstance(entry, OccupiedEntry)
    exp2 = entry.get_mut().expiration_secs()
    assert exp1 < exp2
    assert exp2 - exp1 == 2


def test_entry_occupied_insert_expiration(make_map, manual_time):
    m = make_map()
    m.insert(ONE, 1)
    exp1 = m.get(ONE).expiration_secs()
    manual_time.advance(2)
    entry = m.entry(ONE)
    assert isinstance(entry, OccupiedEntry)
    old = entry.insert(9)
    old_exp1 = old.expiration_secs()
    exp2 = m.get(ONE).expiration_secs()
    assert old.value == 1
    assert exp1 == old_exp1
    assert exp1 < exp2
    assert exp2 - exp1 == 2


def test_entry_vacant_expiration(make_map, manual_time):
    m = make_map()
    entry = m.entry(ONE)
    assert isinstance(entry, VacantEntry)
    exp1 = entry.insert(9).expiration_secs()
    manual_time.advance(2)
    exp2 = m.get(ONE).expiration_secs()
    assert exp1 == 10
    assert exp1 < exp2
    assert exp2 - exp1 == 2


def test_expiration_ttl(make_map):
    m = make_map(ttl=12)
    entry = m.entry(ONE)
    assert isinstance(entry, VacantEntry)
    assert entry.insert(9).expiration_secs() == 12


def test_ttl_accepts_timedelta(manual_time):
    with TtlMap(timedelta(seconds=7), None, Clock(time_fn=manual_time)) as m:
        m.insert(ONE, 1)
        assert m.get(ONE).expiration_secs() == 7


def test_cleanup_expired_entries(make_map, manual_time):
    m = make_map(ttl=5)
    m.insert(ONE, 1)
    m.insert(TWO, 2)
    assert ONE in m
    assert TWO in m

    manual_time.advance(4)
    m.prune()
    assert m.get(TWO).value == 2

    manual_time.advance(4)
    m.prune()
    assert ONE not in m
    assert TWO in m
    assert len(m) == 1

    manual_time.advance(3)
    m.prune()
    assert ONE not in m
    assert TWO not in m
    assert len(m) == 0


def test_prune_keeps_unexpired(make_map, manual_time):
    m = make_map(ttl=5)
    m.insert(ONE, 1)
    manual_time.advance(4)
    m.prune()
    assert m.get(ONE).value == 1


def test_background_cleanup(manual_time):
    with TtlMap(5, 0.01, Clock(time_fn=manual_time)) as m:
        m.insert(ONE, 1)
        manual_time.advance(6)
        deadline = time.monotonic() + 2.0
        while len(m) and time.monotonic() < deadline:
            time.sleep(0.01)
        assert len(m) == 0


def test_try_get_present_and_absent(make_map, manual_time):
    m = make_map()
    m.insert(ONE, 1)
    manual_time.advance(3)
    found = m.try_get(ONE)
    assert found.value == 1
    assert found.expiration_secs() == 13
    assert m.try_get(TWO) is None


def test_try_get_raises_when_locked(make_map):
    m = make_map()
    m.insert(ONE, 1)
    held = threading.Event()
    release = threading.Event()

    def hold():
        with m.entry(ONE):
            held.set()
            release.wait(5)

    worker = threading.Thread(target=hold)
    worker.start()
    try:
        assert held.wait(5)
        with pytest.raises(MapLocked):
            m.try_get(ONE)
    finally:
        release.set()
        worker.join(5)
    assert m.try_get(ONE).value == 1


def test_entry_context_manager_returns_entry(make_map):
    m = make_map()
    with m.entry(ONE) as entry:
        stored = entry.insert(3)
    assert stored.value == 3
    assert m.get(ONE).value == 3


def test_now_relative_secs(make_map, manual_time):
    m = make_map()
    manual_time.advance(42.9)
    assert m.now_relative_secs() == 42


def test_now_relative_secs_defaults_to_zero_before_base():
    with TtlMap(10, None, Clock(time_fn=lambda: 5.0, base=100.0)) as m:
        assert m.now_relative_secs() == 0


def test_clock_before_base_raises():
    clock = Clock(time_fn=lambda: 5.0, base=100.0)
    with pytest.raises(ValueError):
        clock.now_relative_secs()


def test_clock_compute_expiration(manual_time):
    clock = Clock(time_fn=manual_time)
    manual_time.advance(3)
    assert clock.compute_expiration_secs(10) == 13
    assert clock.now_relative_secs() == 3


def test_timed_value_update_expiration(manual_time):
    clock = Clock(time_fn=manual_time)
    stored = TimedValue("x", 10, clock)
    assert stored.expiration_secs() == 10
    manual_time.advance(5)
    stored.update_expiration(1)
    assert stored.expiration_secs() == 6


def test_invalid_poll_interval():
    with pytest.raises(ValueError):
        TtlMap(10, 0)


def test_default_map_uses_system_clock():
    with TtlMap() as m:
        m.insert(ONE, 1)
        expiration = m.get(ONE).expiration_secs()
        assert abs(expiration - (int(time.time()) + 60)) <= 1