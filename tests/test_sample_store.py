"""Tests for the circular sample store."""

from datetime import datetime

import pytest

from gpioscope.errors import BufferOverflow, CapacityExceeded
from gpioscope.sample_store import SampleStore
from .test_utils import make_store


def _count_invariant(store: SampleStore) -> int:
    return (store.write_pos - store.read_pos + store.capacity) % store.capacity + 1


def test_empty_store():
    store = SampleStore(4)
    assert store.is_empty
    assert len(store) == 0
    assert store.write_pos == -1
    assert store.last_level is None
    assert store.records() == []


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        SampleStore(0)


def test_first_append_sets_origin():
    store = SampleStore(4)
    store.append(1234, 0x5)

    assert not store.is_empty
    assert store.tick_origin == 1234
    assert (store.read_pos, store.write_pos, store.count) == (0, 0, 1)
    assert store.at(0) == (1234, 0x5)


def test_count_invariant_holds_while_appending():
    store = SampleStore(3)
    for i in range(3):
        store.append(i * 10, i)
        assert store.count == _count_invariant(store)
    assert store.is_full


def test_overflow_raises_and_leaves_store_unchanged():
    store = make_store([(10, 1), (20, 2)], capacity=2)
    with pytest.raises(BufferOverflow) as exc_info:
        store.append(30, 3)

    assert exc_info.value.capacity == 2
    assert store.records() == [(10, 1), (20, 2)]


def test_ring_wraps_after_dropping_oldest():
    store = make_store([(10, 1), (20, 2), (30, 3)], capacity=3)
    for tick, level in [(40, 4), (50, 5)]:
        store.drop_oldest()
        store.append(tick, level)

    assert store.records() == [(30, 3), (40, 4), (50, 5)]
    assert store.read_pos == 2
    assert store.write_pos == 1
    assert store.count == _count_invariant(store)
    assert store.first_tick == 30
    assert store.last_tick == 50
    assert store.last_level == 5



def test_dropping_last_record_keeps_wall_clock_origin():
    store = make_store([(10, 1)], capacity=1)
    store.time_origin = datetime(2024, 5, 1, 12, 0, 0)
    store.drop_oldest()
    store.append(20, 2)

    assert store.records() == [(20, 2)]
    assert store.tick_origin == 20
    assert store.time_origin == datetime(2024, 5, 1, 12, 0, 0)


def test_physical_and_logical_positions():
    store = make_store([(10, 1), (20, 2), (30, 3)], capacity=3)
    store.drop_oldest()
    store.append(40, 4)

    assert store.physical(0) == 1
    assert store.physical(2) == 0
    assert store.offset_of(0) == 2
    assert store.next_index(2) == 0
    assert store.prev_index(0) == 2


def test_clear_resets_origin():
    store = make_store([(500, 1), (600, 2)])
    store.time_origin = datetime(2024, 5, 1, 12, 0, 0)
    store.clear()

    assert store.is_empty
    assert store.tick_origin == 0
    assert store.time_origin is None
    store.append(900, 7)
    assert store.tick_origin == 900


def test_levels_are_32_bit():
    store = SampleStore(2)
    store.append(1, 0x1FFFFFFFF)
    assert store.last_level == 0xFFFFFFFF


def test_bulk_load_replaces_contents():
    store = make_store([(1, 1), (2, 2), (3, 3)], capacity=4)
    store.bulk_load([(0, 0xA), (5, 0xB)], tick_origin=0)

    assert store.records() == [(0, 0xA), (5, 0xB)]
    assert (store.read_pos, store.write_pos) == (0, 1)
    assert store.tick_origin == 0


def test_bulk_load_over_capacity_leaves_store_untouched():
    store = make_store([(1, 1)], capacity=2)
    with pytest.raises(CapacityExceeded) as exc_info:
        store.bulk_load([(0, 0), (1, 1), (2, 2)])

    assert exc_info.value.requested == 3
    assert store.records() == [(1, 1)]


def test_bulk_load_empty_empties_store():
    store = make_store([(1, 1)], capacity=2)
    store.bulk_load([])
    assert store.is_empty


def test_same_tick_records_keep_arrival_order():
    store = make_store([(100, 1), (150, 2), (150, 3)])
    assert store.records() == [(100, 1), (150, 2), (150, 3)]
