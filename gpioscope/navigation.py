"""Binary search and cursor navigation over the sample store.

The store is circular, so searches work on a logical window that may wrap
past the physical end of the arrays. ``lower_bound`` is the workhorse and
speaks in logical offsets (0 is the oldest record); ``bsearch`` is the
physical-index form used when a caller already holds buffer positions.
"""

from typing import Optional

from .data_model import ALL_CHANNELS, Level, Tick
from .sample_store import SampleStore
from .trigger_engine import TriggerEngine


def bsearch(store: SampleStore, lo: int, hi: int, target: Tick) -> int:
    """Physical index of the first record in ``[lo, hi]`` with ``tick >= target``.

    ``hi`` may be physically before ``lo`` when the window wraps. Equal
    ticks resolve to the earliest index. If every tick in the window is
    below ``target`` the index one past ``hi`` is returned.
    """
    capacity = store.capacity
    if hi < lo:
        hi += capacity

    s1, s2 = lo, hi + 1
    while s1 < s2:
        mid = s1 + (s2 - s1) // 2
        if store.tick_at(mid % capacity) < target:
            s1 = mid + 1
        else:
            s2 = mid

    return s1 % capacity


def lower_bound(store: SampleStore, target: Tick) -> int:
    """Number of stored records with ``tick < target``.

    Equivalently, the logical offset of the first record with
    ``tick >= target``; ``len(store)`` if there is none.
    """
    if store.is_empty:
        return 0
    lo, hi = 0, store.count
    while lo < hi:
        mid = lo + (hi - lo) // 2
        if store.tick_at(store.physical(mid)) < target:
            lo = mid + 1
        else:
            hi = mid
    return lo


def _level(store: SampleStore, offset: int) -> Level:
    return store.level_at(store.physical(offset))


def _tick(store: SampleStore, offset: int) -> Tick:
    return store.tick_at(store.physical(offset))


def search_edge(store: SampleStore, cursor: Tick, forward: bool,
                mask: Level = ALL_CHANNELS) -> Optional[Tick]:
    """Tick of the next level change on the masked channels.

    Forward: the first record after ``cursor`` whose masked level differs
    from the level in effect at ``cursor``. Backward: the most recent
    transition before ``cursor`` into the masked level in effect just
    before ``cursor``.

    Returns:
        The tick to move the cursor to, or None if there is no such edge
    """
    if store.is_empty:
        return None
    if mask == 0:
        mask = ALL_CHANNELS

    count = store.count
    if forward:
        k = lower_bound(store, cursor + 1)
        if k >= count:
            return None
        reference = _level(store, max(k - 1, 0)) & mask
        for offset in range(k, count):
            if (_level(store, offset) & mask) != reference:
                return _tick(store, offset)
        return None

    j = lower_bound(store, cursor) - 1
    if j < 0:
        return None
    reference = _level(store, j) & mask
    for offset in range(j - 1, -1, -1):
        if (_level(store, offset) & mask) != reference:
            return _tick(store, offset + 1)
    return None


def search_trigger(store: SampleStore, triggers: TriggerEngine, cursor: Tick,
                   forward: bool) -> Optional[Tick]:
    """Tick of the next stored transition matching any legal trigger.

    Matching ignores the enabled flag, fire state and counters.
    """
    if store.is_empty:
        return None

    count = store.count
    if forward:
        k = max(lower_bound(store, cursor + 1), 1)
        for offset in range(k, count):
            if triggers.match(_level(store, offset), _level(store, offset - 1), enabled_only=False):
                return _tick(store, offset)
        return None

    j = lower_bound(store, cursor) - 1
    for offset in range(j, 0, -1):
        if triggers.match(_level(store, offset), _level(store, offset - 1), enabled_only=False):
            return _tick(store, offset)
    return None
