"""Reconstruction of 64-bit ticks from the device's wrapping 32-bit counter."""

from typing import Optional, Tuple

from .config import CAPTURE
from .data_model import Tick


def reconstruct(raw_tick: int, prior_raw_tick: int, wrap_count: int) -> Tuple[Tick, int]:
    """Combine a raw 32-bit tick with the accumulated wrap count.

    A counter that was near the top of its range (above ``WRAP_HIGH``) and
    is now near the bottom (below ``WRAP_LOW``) has rolled over once.

    Returns:
        Tuple of (tick, updated wrap count)
    """
    if prior_raw_tick > CAPTURE.WRAP_HIGH and raw_tick < CAPTURE.WRAP_LOW:
        wrap_count += 1
    return (wrap_count << 32) | (raw_tick & 0xFFFFFFFF), wrap_count


class TickClock:
    """Wrap-tracking state for one ingestion session."""

    def __init__(self) -> None:
        self._prior_raw: Optional[int] = None
        self.wrap_count = 0

    def reset(self) -> None:
        self._prior_raw = None
        self.wrap_count = 0

    def tick(self, raw_tick: int) -> Tick:
        """Reconstruct the tick of the next report in arrival order."""
        if self._prior_raw is None:
            result = (self.wrap_count << 32) | raw_tick
        else:
            result, self.wrap_count = reconstruct(raw_tick, self._prior_raw, self.wrap_count)
        self._prior_raw = raw_tick
        return result
