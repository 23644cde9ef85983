"""Events published by the scope controller."""

from dataclasses import dataclass, field
from typing import Literal, Optional
import time

from gpioscope.data_model import Tick, ViewMode


@dataclass(frozen=True, kw_only=True)
class Event:
    """Base class for all events."""
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True, kw_only=True)
class ModeChangedEvent(Event):
    """Emitted when the view switches between LIVE, PLAY and PAUSE."""
    old_mode: ViewMode
    new_mode: ViewMode


@dataclass(frozen=True, kw_only=True)
class TriggerFiredEvent(Event):
    """Emitted for every stored transition that matches enabled triggers."""
    matched: int  # bit i set for trigger index i
    tick: Tick
    counts: tuple[int, ...]


@dataclass(frozen=True, kw_only=True)
class CaptureCompleteEvent(Event):
    """Emitted when a trigger's post-trigger countdown pauses a live capture."""
    tick: Tick


@dataclass(frozen=True, kw_only=True)
class BufferClearedEvent(Event):
    pass


@dataclass(frozen=True, kw_only=True)
class SamplesLoadedEvent(Event):
    """Emitted after a capture file replaced the store contents."""
    file_path: str
    record_count: int


@dataclass(frozen=True, kw_only=True)
class ConnectionChangedEvent(Event):
    """Emitted on connect, disconnect and failed connection attempts."""
    connected: bool
    address: str
    error: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class CursorMovedEvent(Event):
    """Emitted when one of the cursor marks moves."""
    mark: Literal['gold', 'blue', 'mark1', 'mark2']
    old_tick: Tick
    new_tick: Tick
