"""Fixed-capacity circular buffer of channel transitions.

The store keeps two parallel preallocated arrays (ticks and level masks)
and three cursors:

    read_pos   physical index of the oldest record
    write_pos  physical index of the newest record, -1 when empty
    count      number of records, 0..capacity

When non-empty, ``count == (write_pos - read_pos + capacity) % capacity + 1``.
Ticks are non-decreasing from ``read_pos`` to ``write_pos``; two records may
share a tick when the device reports two transitions in the same
microsecond, in which case they keep their arrival order.

The store has no locking. Appends and view reads must be serialized by the
caller (see ``capture_scheduler``).
"""

from array import array
from datetime import datetime
from typing import Iterable, Iterator, List, Optional

from .config import CAPTURE
from .data_model import Level, SampleRecord, Tick
from .errors import BufferOverflow, CapacityExceeded


class SampleStore:
    """Ring buffer of (tick, level) transition records."""

    def __init__(self, capacity: int = CAPTURE.SAMPLES) -> None:
        if capacity < 1:
            raise ValueError(f"Capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._ticks = array('q', [0]) * capacity
        self._levels = array('L', [0]) * capacity
        self.read_pos = 0
        self.write_pos = -1
        self.count = 0
        # Tick of the first record since the last clear; saved files are relative to it
        self.tick_origin: Tick = 0
        # Wall-clock time corresponding to tick_origin
        self.time_origin: Optional[datetime] = None

    # ---- State ----
    @property
    def is_empty(self) -> bool:
        return self.write_pos < 0

    @property
    def is_full(self) -> bool:
        return self.count >= self.capacity

    def __len__(self) -> int:
        return self.count

    # ---- Mutation ----
    def append(self, tick: Tick, level: Level) -> None:
        """Store a transition after the newest record.

        The first record after a clear becomes the tick origin.

        Raises:
            BufferOverflow: If the store is at capacity
        """
        if self.write_pos < 0:
            self.tick_origin = tick
            self.read_pos = 0
            self.write_pos = 0
            self.count = 1
            self._ticks[0] = tick
            self._levels[0] = level & 0xFFFFFFFF
            return

        if self.count >= self.capacity:
            raise BufferOverflow(self.capacity)

        pos = self.write_pos + 1
        if pos >= self.capacity:
            pos = 0
        self._ticks[pos] = tick
        self._levels[pos] = level & 0xFFFFFFFF
        self.write_pos = pos
        self.count += 1

    def drop_oldest(self) -> None:
        """Evict the oldest record, making room for one append."""
        if self.count == 0:
            return
        if self.count == 1:
            self.read_pos = 0
            self.write_pos = -1
            self.count = 0
            return
        self.read_pos += 1
        if self.read_pos >= self.capacity:
            self.read_pos = 0
        self.count -= 1

    def clear(self) -> None:
        self.read_pos = 0
        self.write_pos = -1
        self.count = 0
        self.tick_origin = 0
        self.time_origin = None

    def bulk_load(self, records: Iterable[SampleRecord], tick_origin: Tick = 0) -> None:
        """Replace the whole contents with ``records`` in the given order.

        Raises:
            CapacityExceeded: If there are more records than the capacity;
                the store is left untouched in that case
        """
        items = list(records)
        if len(items) > self.capacity:
            raise CapacityExceeded(len(items), self.capacity)

        for i, (tick, level) in enumerate(items):
            self._ticks[i] = tick
            self._levels[i] = level & 0xFFFFFFFF
        self.read_pos = 0
        self.count = len(items)
        self.write_pos = len(items) - 1
        self.tick_origin = tick_origin

    # ---- Physical access ----
    def at(self, index: int) -> SampleRecord:
        """Record at a physical buffer index."""
        return SampleRecord(self._ticks[index], self._levels[index])

    def tick_at(self, index: int) -> Tick:
        return self._ticks[index]

    def level_at(self, index: int) -> Level:
        return self._levels[index]

    def next_index(self, index: int) -> int:
        index += 1
        return 0 if index >= self.capacity else index

    def prev_index(self, index: int) -> int:
        index -= 1
        return self.capacity - 1 if index < 0 else index

    def offset_of(self, index: int) -> int:
        """Logical position of a physical index, 0 being the oldest record."""
        return (index - self.read_pos) % self.capacity

    def physical(self, offset: int) -> int:
        """Physical index of the ``offset``-th oldest record."""
        return (self.read_pos + offset) % self.capacity

    # ---- Convenience ----
    @property
    def first_tick(self) -> Tick:
        return self._ticks[self.read_pos]

    @property
    def last_tick(self) -> Tick:
        return self._ticks[self.write_pos]

    @property
    def last_level(self) -> Optional[Level]:
        if self.is_empty:
            return None
        return self._levels[self.write_pos]

    def __iter__(self) -> Iterator[SampleRecord]:
        pos = self.read_pos
        for _ in range(self.count):
            yield SampleRecord(self._ticks[pos], self._levels[pos])
            pos += 1
            if pos >= self.capacity:
                pos = 0

    def records(self) -> List[SampleRecord]:
        """Snapshot of all records, oldest first."""
        return list(self)
