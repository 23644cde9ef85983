"""View window: the visible time range and the store indices that cover it.

The window is recomputed every output cycle from the playback mode:

- LIVE: the end follows the newest record, truncated to the refresh grid.
- PLAY: the centre advances by one refresh interval scaled by the play speed.
- PAUSE: the centre stays where the user left it.

The window is then clamped against the first and last stored records and
mapped to sample indices by binary search. The start index is backed up by
one so that the level in effect at the left edge is drawn.
"""

from dataclasses import dataclass
from typing import Optional

from .config import CAPTURE, VIEW
from .data_model import Tick, ViewFrame, ViewMode
from .navigation import lower_bound
from .sample_store import SampleStore


def play_step_ticks(refresh_ticks: int, play_speed: int) -> int:
    """Ticks the PLAY centre advances per output cycle.

    Speed 0 is real time; each step below doubles and each step above
    halves the rate.
    """
    shift = -VIEW.MIN_PLAY_SPEED
    return (refresh_ticks << shift) >> (play_speed + shift)


def play_speed_label(play_speed: int) -> str:
    if play_speed <= 0:
        return f"{1 << -play_speed}X"
    return f"1/{1 << play_speed}"


@dataclass
class ViewWindow:
    mode: ViewMode = ViewMode.PAUSE
    zoom_level: int = VIEW.DEFAULT_ZOOM_LEVEL
    play_speed: int = VIEW.DEFAULT_PLAY_SPEED
    width_px: int = VIEW.DEFAULT_WIDTH_PX

    center_tick: Tick = 0
    start_tick: Tick = 0
    end_tick: Tick = 0
    start_sample: int = 0
    end_sample: int = 0

    # ---- Zoom / speed ----
    @property
    def deci_micros_per_pixel(self) -> int:
        return VIEW.ZOOM_DECI_MICROS_PER_PIXEL[self.zoom_level]

    @property
    def span_ticks(self) -> Tick:
        """Window width in ticks."""
        return (self.width_px * self.deci_micros_per_pixel) // 10

    def zoom_in(self) -> bool:
        if self.zoom_level > 0:
            self.zoom_level -= 1
            return True
        return False

    def zoom_out(self) -> bool:
        if self.zoom_level < len(VIEW.ZOOM_DECI_MICROS_PER_PIXEL) - 1:
            self.zoom_level += 1
            return True
        return False

    def zoom_default(self) -> bool:
        changed = self.zoom_level != VIEW.DEFAULT_ZOOM_LEVEL
        self.zoom_level = VIEW.DEFAULT_ZOOM_LEVEL
        return changed

    def speed_up(self) -> bool:
        if self.play_speed > VIEW.MIN_PLAY_SPEED:
            self.play_speed -= 1
            return True
        return False

    def slow_down(self) -> bool:
        if self.play_speed < VIEW.MAX_PLAY_SPEED:
            self.play_speed += 1
            return True
        return False

    def speed_default(self) -> None:
        self.play_speed = VIEW.DEFAULT_PLAY_SPEED

    @property
    def play_speed_label(self) -> str:
        return play_speed_label(self.play_speed)

    @property
    def label_decimals(self) -> int:
        """Fractional second digits worth showing at the current mode."""
        if self.mode == ViewMode.LIVE:
            return 1
        if self.mode == ViewMode.PLAY:
            decimals = (self.play_speed - VIEW.MIN_PLAY_SPEED) // 3 - 1
            return max(0, min(6, decimals))
        return 6

    # ---- Positioning ----
    def go_first(self, store: SampleStore) -> None:
        if not store.is_empty:
            self.center_tick = store.first_tick + self.span_ticks // 2

    def go_last(self, store: SampleStore) -> None:
        if not store.is_empty:
            self.center_tick = store.last_tick - self.span_ticks // 2

    def page(self, forward: bool) -> None:
        step = (VIEW.PAGE_STEP_NUMERATOR * self.span_ticks) // VIEW.PAGE_STEP_DENOMINATOR
        self.center_tick += step if forward else -step

    def reveal(self, tick: Tick) -> None:
        """Recentre so a tick beyond either window edge becomes visible."""
        lead = int(VIEW.SEARCH_RECENTRE_FRACTION * self.span_ticks)
        if tick > self.end_tick:
            self.center_tick = tick + lead
        elif tick < self.start_tick:
            self.center_tick = tick - lead

    # ---- Per-cycle recompute ----
    def recompute(self, store: SampleStore, refresh_ticks: int = CAPTURE.refresh_ticks) -> Optional[ViewFrame]:
        """Recompute the window against the current store contents.

        Returns:
            The frame for the renderer, or None while the store is empty
        """
        if store.is_empty:
            return None

        first = store.first_tick
        last = store.last_tick
        span = self.span_ticks
        half = span // 2

        if self.mode == ViewMode.LIVE:
            end = (last // refresh_ticks) * refresh_ticks
            start = end - span
            center = end - half
        else:
            if self.mode == ViewMode.PLAY:
                self.center_tick += play_step_ticks(refresh_ticks, self.play_speed)
            center = self.center_tick
            end = center + half
            start = end - span

        if start > first:
            start_offset = lower_bound(store, start)
        else:
            start_offset = 0
            start = first
            end = start + span
            center = end - half

        if end < last:
            end_offset = lower_bound(store, end)
        else:
            end_offset = store.count - 1
            end = last
            start = end - span
            center = end - half
            start_offset = lower_bound(store, start) if start > first else 0

        if start_offset > 0:
            start_offset -= 1
        start_offset = min(start_offset, end_offset)

        self.center_tick = center
        self.start_tick = start
        self.end_tick = end
        self.start_sample = store.physical(start_offset)
        self.end_sample = store.physical(end_offset)

        capacity = store.capacity
        return ViewFrame(
            mode=self.mode,
            start_tick=start,
            end_tick=end,
            center_tick=center,
            start_sample=self.start_sample,
            end_sample=self.end_sample,
            deci_micros_per_pixel=self.deci_micros_per_pixel,
            buffer_used=store.count / capacity,
            window_offset=start_offset / capacity,
            window_width=(end_offset - start_offset) / capacity,
        )
