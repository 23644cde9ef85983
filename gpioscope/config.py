"""Centralized configuration for gpioscope.

This module contains the capture, view and device-link constants used
throughout the package, grouped into frozen dataclasses.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

# Per-channel trigger type characters, indexed by TriggerType value
TRIGGER_TYPE_CHARS: str = "-01EFR"


@dataclass(frozen=True)
class CaptureConfig:
    """Sample store, trigger and ingestion settings."""
    SAMPLES: int = 1000000
    TRIGGERS: int = 4
    CHANNELS: int = 32
    MAX_REPORTS_PER_READ: int = 1000
    REPORT_SIZE: int = 12  # u16 seqno, u16 flags, u32 tick, u32 level

    # Adaptive ingestion budget
    INITIAL_REPORT_BUDGET: int = 2000
    BUDGET_MIN_REPORTS: int = 500  # cycles with fewer reports are not measured
    BUDGET_HEADROOM_PERCENT: int = 80

    # Periodic task rates
    INPUT_UPDATE_HZ: int = 40
    OUTPUT_UPDATE_HZ: int = 20

    # Trigger sample choices, selected by index
    TRIGGER_SAMPLE_CHOICES: Optional[Tuple[int, ...]] = None  # Will be set in __post_init__
    DEFAULT_TRIGGER_SAMPLES_INDEX: int = 0

    # Tick clock wraparound thresholds
    WRAP_HIGH: int = 0xF0000000
    WRAP_LOW: int = 0x10000000

    def __post_init__(self) -> None:
        if self.TRIGGER_SAMPLE_CHOICES is None:
            object.__setattr__(self, 'TRIGGER_SAMPLE_CHOICES',
                               (100, 200, 500, 1000, 2000, 5000, 10000, 20000, 50000))

    @property
    def time_slot_micros(self) -> int:
        """Microseconds available to one input pass."""
        return 1000000 // (self.INPUT_UPDATE_HZ + 4 * self.OUTPUT_UPDATE_HZ)

    @property
    def refresh_ticks(self) -> int:
        """Ticks (microseconds) between two output passes."""
        return 1000000 // self.OUTPUT_UPDATE_HZ


@dataclass(frozen=True)
class ViewConfig:
    """View window settings."""
    # Time per output pixel in tenths of a microsecond
    ZOOM_DECI_MICROS_PER_PIXEL: Optional[Tuple[int, ...]] = None  # Will be set in __post_init__
    DEFAULT_ZOOM_LEVEL: int = 13
    DEFAULT_WIDTH_PX: int = 400

    # Play speed: 0 is real time, each step halves (positive) or doubles (negative)
    MIN_PLAY_SPEED: int = -6
    MAX_PLAY_SPEED: int = 15
    DEFAULT_PLAY_SPEED: int = 0

    # Search results outside the window recentre it this far past the cursor
    SEARCH_RECENTRE_FRACTION: float = 0.4
    # Back/forward step as a fraction of the window
    PAGE_STEP_NUMERATOR: int = 9
    PAGE_STEP_DENOMINATOR: int = 10

    def __post_init__(self) -> None:
        if self.ZOOM_DECI_MICROS_PER_PIXEL is None:
            object.__setattr__(self, 'ZOOM_DECI_MICROS_PER_PIXEL', (
                1, 2, 5, 10, 20, 50,
                100, 200, 500, 1000, 2000, 5000,
                10000, 20000, 50000, 100000, 200000, 500000,
                1000000, 2000000, 5000000, 10000000, 20000000, 50000000,
                100000000, 200000000, 500000000, 1000000000, 2000000000, 4000000000,
            ))


@dataclass(frozen=True)
class LinkConfig:
    """pigpio daemon connection settings."""
    DEFAULT_SERVER_ADDRESS: str = "localhost"
    DEFAULT_SERVER_PORT: int = 8888
    ENV_ADDRESS: str = "PIGPIO_ADDR"
    ENV_PORT: str = "PIGPIO_PORT"

    CMD_HWVER: int = 17
    CMD_NB: int = 19
    CMD_NC: int = 21
    CMD_NOIB: int = 99

    CONNECT_TIMEOUT_S: float = 3.0


# Global instances for easy access
CAPTURE = CaptureConfig()
VIEW = ViewConfig()
LINK = LinkConfig()
