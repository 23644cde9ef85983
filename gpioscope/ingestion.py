"""Ingestion pipeline: device reports in, transition records out.

Reports arrive as a byte stream of fixed-size records. Each complete report
goes through the tick clock, is dropped if it does not change the channel
levels, and is otherwise appended to the sample store and evaluated by the
trigger engine. In LIVE mode a fired trigger arms a post-trigger countdown;
when it runs out the view is switched to PAUSE.

State machine:

    UNINITIALIZED --poll--> RUNNING --suspend--> DORMANT --start--> UNINITIALIZED
          any --quit--> QUIT (terminal)
"""

import logging
import struct
import time
from datetime import datetime
from typing import Callable, List, NamedTuple, Optional

from .config import CAPTURE
from .data_model import IngestState, Level, ViewMode
from .errors import BufferOverflow
from .sample_store import SampleStore
from .tick_clock import TickClock
from .trigger_engine import TriggerEngine
from .view_window import ViewWindow

logger = logging.getLogger(__name__)

# u16 seqno, u16 flags, u32 tick, u32 level
REPORT_STRUCT = struct.Struct('<HHII')


class GpioReport(NamedTuple):
    seqno: int
    flags: int
    tick: int
    level: int


class ReportDecoder:
    """Splits a byte stream into reports, holding back any partial tail."""

    def __init__(self) -> None:
        self._pending = bytearray()

    @property
    def pending_bytes(self) -> int:
        return len(self._pending)

    def reset(self) -> None:
        self._pending.clear()

    def feed(self, data: bytes) -> List[GpioReport]:
        self._pending.extend(data)
        size = REPORT_STRUCT.size
        complete = len(self._pending) - (len(self._pending) % size)
        reports = [GpioReport(*fields) for fields in REPORT_STRUCT.iter_unpack(self._pending[:complete])]
        del self._pending[:complete]
        return reports


def next_report_budget(budget: int, reports: int, elapsed_micros: int,
                       time_slot_micros: int = CAPTURE.time_slot_micros) -> int:
    """Per-cycle report budget for the next input pass.

    A pass that handled at least ``BUDGET_MIN_REPORTS`` reports measures the
    achieved rate; the budget grows to the share of that rate that fits in
    ``HEADROOM_PERCENT`` of the time slot. It never shrinks.
    """
    if reports < CAPTURE.BUDGET_MIN_REPORTS or elapsed_micros <= 0:
        return budget
    achievable = (time_slot_micros * reports) // elapsed_micros
    achievable = (CAPTURE.BUDGET_HEADROOM_PERCENT * achievable) // 100
    return max(budget, achievable)


TriggerCallback = Callable[[int, int], None]
Callback = Callable[[], None]


class IngestionPipeline:
    """Feeds device reports into the sample store and trigger engine."""

    def __init__(
        self,
        store: SampleStore,
        triggers: TriggerEngine,
        view: ViewWindow,
        on_trigger: Optional[TriggerCallback] = None,
        on_capture_complete: Optional[Callback] = None,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.triggers = triggers
        self.view = view
        self.on_trigger = on_trigger
        self.on_capture_complete = on_capture_complete
        self._now = now

        self.state = IngestState.UNINITIALIZED
        self.clock = TickClock()
        self.decoder = ReportDecoder()
        self.report_budget = CAPTURE.INITIAL_REPORT_BUDGET
        # Remaining transitions before a live capture pauses; None when not armed
        self.capture_countdown: Optional[int] = None
        self.dropped = 0
        self._last_level: Optional[Level] = None

    # ---- State machine ----
    def start(self) -> None:
        """Begin a fresh session on a new connection."""
        if self.state == IngestState.QUIT:
            return
        self.reset_session()
        self.state = IngestState.UNINITIALIZED

    def suspend(self) -> None:
        if self.state != IngestState.QUIT:
            self.state = IngestState.DORMANT

    def quit(self) -> None:
        self.state = IngestState.QUIT

    def reset_session(self) -> None:
        """Forget wraparound and last-level tracking from a previous session."""
        self.clock.reset()
        self.decoder.reset()
        self._last_level = None

    def rearm(self) -> None:
        """Clear any pending capture countdown (used when going LIVE)."""
        self.capture_countdown = None

    # ---- Ingestion ----
    def on_report(self, raw_tick: int, level: Level) -> bool:
        """Process one report.

        Returns:
            True if a record was stored
        """
        tick = self.clock.tick(raw_tick)
        store = self.store

        if store.is_empty:
            store.append(tick, level)
            store.time_origin = self._now()
            self._last_level = level
            return True

        if self._last_level is None:
            self._last_level = store.last_level
        if level == self._last_level:
            return False

        try:
            store.append(tick, level)
        except BufferOverflow:
            if self.view.mode != ViewMode.LIVE:
                # History under review stays frozen
                self.dropped += 1
                return False
            store.drop_oldest()
            store.append(tick, level)

        old_level = self._last_level
        self._last_level = level

        live = self.view.mode == ViewMode.LIVE
        matched = self.triggers.evaluate(level, old_level)
        if matched:
            if self.on_trigger is not None:
                self.on_trigger(matched, tick)
            if live:
                countdown = self.triggers.fire(matched)
                if countdown is not None:
                    if self.capture_countdown is None or countdown > self.capture_countdown:
                        self.capture_countdown = countdown

        if live and self.capture_countdown is not None:
            self.capture_countdown -= 1
            if self.capture_countdown < 0:
                self.capture_countdown = None
                self.view.mode = ViewMode.PAUSE
                logger.info("Trigger capture complete at tick %d, pausing", tick)
                if self.on_capture_complete is not None:
                    self.on_capture_complete()

        return True

    def feed(self, data: bytes) -> int:
        """Decode a chunk of the report stream and ingest every complete report.

        Returns:
            Number of complete reports processed
        """
        reports = self.decoder.feed(data)
        for report in reports:
            self.on_report(report.tick, report.level)
        return len(reports)

    def poll(self, read: Callable[[int], bytes]) -> int:
        """One input pass: drain available data up to the report budget.

        Args:
            read: Non-blocking reader returning at most the requested number
                of bytes, or ``b""`` when nothing is available

        Returns:
            Number of reports processed
        """
        if self.state == IngestState.UNINITIALIZED:
            self.state = IngestState.RUNNING
        elif self.state != IngestState.RUNNING:
            return 0

        started = time.perf_counter()
        reports = 0
        max_bytes = CAPTURE.MAX_REPORTS_PER_READ * CAPTURE.REPORT_SIZE

        while reports <= self.report_budget:
            data = read(max_bytes - self.decoder.pending_bytes)
            if not data:
                break
            reports += self.feed(data)

        if reports >= CAPTURE.BUDGET_MIN_REPORTS:
            elapsed = int((time.perf_counter() - started) * 1000000)
            budget = next_report_budget(self.report_budget, reports, elapsed)
            if budget != self.report_budget:
                logger.debug("Report budget raised from %d to %d", self.report_budget, budget)
                self.report_budget = budget

        return reports
