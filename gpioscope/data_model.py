"""Core data structures for gpioscope.

This module defines the value types shared by the capture core: ticks and
level masks, transition records, trigger settings, cursor marks and the
frame handed to a renderer each output cycle.

    ScopeSession                      (see session.py)
    ├── store: SampleStore            (ring of SampleRecord(tick, level))
    ├── triggers: TriggerEngine       (4 x TriggerSpec + runtime state)
    ├── view: ViewWindow              (mode, zoom, speed, start/end ticks)
    ├── marks: CursorMarks            (gold, blue, mark1, mark2)
    └── pipeline: IngestionPipeline   (tick clock + report decoder)

A level mask holds one bit per channel (bit n = channel n), so a record
marks the state of all 32 channels immediately after a transition.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import List, NamedTuple, Optional

from .config import CAPTURE, LINK

Tick = int  # 64-bit microsecond count since an arbitrary device origin
Level = int  # 32-bit channel mask

ALL_CHANNELS: Level = 0xFFFFFFFF


class SampleRecord(NamedTuple):
    """Channel state immediately after a transition."""
    tick: Tick
    level: Level


class ViewMode(Enum):
    LIVE = "live"      # follow the buffer tail in real time
    PLAY = "play"      # auto-advance through history
    PAUSE = "pause"    # frozen for manual inspection


class IngestState(Enum):
    UNINITIALIZED = "uninitialized"
    RUNNING = "running"
    DORMANT = "dormant"
    QUIT = "quit"


class TriggerType(IntEnum):
    """Per-channel trigger condition (persisted by value)."""
    DONT_CARE = 0
    LOW = 1
    HIGH = 2
    EDGE = 3
    FALLING = 4
    RISING = 5


class TriggerWhen(IntEnum):
    """What a matching trigger does to a live capture (persisted by value)."""
    COUNT = 0
    SAMPLE_FROM = 1
    SAMPLE_AROUND = 2
    SAMPLE_TO = 3


class SaveFormat(Enum):
    VCD = "vcd"
    TEXT = "text"


@dataclass
class TriggerSettings:
    """Persisted form of one trigger."""
    enabled: bool = False
    action: int = TriggerWhen.COUNT
    channel_types: List[int] = field(default_factory=lambda: [0] * CAPTURE.CHANNELS)


@dataclass
class ScopeSettings:
    """Everything the configuration collaborator supplies and persists."""
    server_address: str = LINK.DEFAULT_SERVER_ADDRESS
    server_port: int = LINK.DEFAULT_SERVER_PORT
    active_channels: Optional[List[int]] = None  # None means all usable channels
    trigger_samples: int = CAPTURE.DEFAULT_TRIGGER_SAMPLES_INDEX  # index into TRIGGER_SAMPLE_CHOICES
    triggers: List[TriggerSettings] = field(
        default_factory=lambda: [TriggerSettings() for _ in range(CAPTURE.TRIGGERS)])


@dataclass
class CursorMarks:
    """User-placed tick marks; 0 means unset."""
    gold: Tick = 0
    blue: Tick = 0
    mark1: Tick = 0
    mark2: Tick = 0

    def clear(self) -> None:
        self.gold = 0
        self.blue = 0
        self.mark1 = 0
        self.mark2 = 0

    @property
    def has_selection(self) -> bool:
        return self.mark1 != 0 or self.mark2 != 0


@dataclass(frozen=True)
class ViewFrame:
    """What the renderer needs for one output cycle.

    Records ``start_sample`` through ``end_sample`` (inclusive, in circular
    order) are read directly from the store.
    """
    mode: ViewMode
    start_tick: Tick
    end_tick: Tick
    center_tick: Tick
    start_sample: int
    end_sample: int
    deci_micros_per_pixel: int
    buffer_used: float = 0.0     # fraction of store capacity in use
    window_offset: float = 0.0   # window start as a fraction of capacity
    window_width: float = 0.0    # window sample span as a fraction of capacity
