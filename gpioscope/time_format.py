"""Tick to wall-clock and relative-time labels."""

from datetime import datetime, timedelta
from typing import Optional

from .data_model import Tick

_MICROS = 1000000

WALL_CLOCK_FORMAT = "%Y-%m-%d %H:%M:%S"


def tick_datetime(tick: Tick, tick_origin: Tick, time_origin: datetime) -> datetime:
    """Wall-clock time of a tick given the wall-clock time of the origin tick."""
    return time_origin + timedelta(microseconds=tick - tick_origin)


def _fraction(micros: int, decimals: int) -> str:
    return f"{micros // 10 ** (6 - decimals):0{decimals}d}"


def format_wall_clock(tick: Tick, tick_origin: Tick, time_origin: Optional[datetime],
                      decimals: int = 0) -> str:
    """``YYYY-MM-DD HH:MM:SS`` with up to six truncated fractional digits."""
    when = tick_datetime(tick, tick_origin, time_origin or datetime.now())
    text = when.strftime(WALL_CLOCK_FORMAT)
    if decimals > 0:
        text += "." + _fraction(when.microsecond, decimals)
    return text


def format_offset(tick: Tick, tick_origin: Tick, decimals: int = 0) -> str:
    """Seconds since the origin tick, e.g. ``"12.345"``."""
    seconds, micros = divmod(tick - tick_origin, _MICROS)
    if decimals > 0:
        return f"{seconds}.{_fraction(micros, decimals)}"
    return str(seconds)
