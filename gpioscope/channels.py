"""Channel usage per board revision.

Each revision lists, for every channel, whether it is brought out to the
header (usable) and its alternate-function name if it has one.
"""

from typing import List, NamedTuple, Optional, Sequence, Tuple

from .config import CAPTURE
from .data_model import ALL_CHANNELS, Level


class ChannelUsage(NamedTuple):
    usable: bool
    name: Optional[str] = None


X = ChannelUsage(False)  # not on the header
U = ChannelUsage(True)   # usable, no alternate function

REVISION_USAGE: Tuple[Tuple[ChannelUsage, ...], ...] = (
    # Revision 1
    (
        ChannelUsage(True, "SDA"), ChannelUsage(True, "SCL"), X, X, U, X,
        X, ChannelUsage(True, "CE1"), ChannelUsage(True, "CE0"), ChannelUsage(True, "MISO"),
        ChannelUsage(True, "MOSI"), ChannelUsage(True, "SCLK"),
        X, X, ChannelUsage(True, "TXD"), ChannelUsage(True, "RXD"), X, U,
        U, X, X, U, U, U,
        U, U, X, X, X, X,
        X, X,
    ),
    # Revision 2
    (
        X, X, ChannelUsage(True, "SDA"), ChannelUsage(True, "SCL"), U, X,
        X, ChannelUsage(True, "CE1"), ChannelUsage(True, "CE0"), ChannelUsage(True, "MISO"),
        ChannelUsage(True, "MOSI"), ChannelUsage(True, "SCLK"),
        X, X, ChannelUsage(True, "TXD"), ChannelUsage(True, "RXD"), X, U,
        U, X, X, X, U, U,
        U, U, X, U, U, U,
        U, U,
    ),
    # Revision 3 (40-pin header)
    (
        ChannelUsage(False, "ID_SD"), ChannelUsage(False, "ID_SC"),
        ChannelUsage(True, "SDA"), ChannelUsage(True, "SCL"), U, U,
        U, ChannelUsage(True, "CE1"), ChannelUsage(True, "CE0"), ChannelUsage(True, "MISO"),
        ChannelUsage(True, "MOSI"), ChannelUsage(True, "SCLK"),
        U, U, ChannelUsage(True, "TXD"), ChannelUsage(True, "RXD"),
        ChannelUsage(True, "ce2"), ChannelUsage(True, "ce1"),
        ChannelUsage(True, "ce0"), ChannelUsage(True, "miso"),
        ChannelUsage(True, "mosi"), ChannelUsage(True, "sclk"), U, U,
        U, U, U, U, X, X,
        X, X,
    ),
)

UNKNOWN_REVISION = 0


def hardware_revision(hwver: int) -> int:
    """Board revision (1-3) from the daemon's HWVER reply, 0 if unknown."""
    if hwver < 0:
        return UNKNOWN_REVISION
    if hwver < 4:
        return 1
    if hwver < 16:
        return 2
    return 3


def channel_usage(revision: int) -> Tuple[ChannelUsage, ...]:
    """Usage table for a revision; every channel is usable and unnamed when unknown."""
    if 1 <= revision <= len(REVISION_USAGE):
        return REVISION_USAGE[revision - 1]
    return (U,) * CAPTURE.CHANNELS


def channel_names(revision: int) -> List[str]:
    """Display name per channel: the channel number plus any alternate function."""
    names = []
    for channel, usage in enumerate(channel_usage(revision)):
        names.append(f"{channel} {usage.name}" if usage.name else str(channel))
    return names


def displayed_channels(revision: int, active_channels: Optional[Sequence[int]] = None) -> List[int]:
    """Channels to capture: usable ones, restricted to ``active_channels`` if given."""
    active = set(active_channels) if active_channels else None
    return [
        channel for channel, usage in enumerate(channel_usage(revision))
        if usage.usable and (revision == UNKNOWN_REVISION or active is None or channel in active)
    ]


def notify_mask(revision: int, active_channels: Optional[Sequence[int]] = None) -> Level:
    """Notification bit mask for the displayed channels."""
    mask = 0
    for channel in displayed_channels(revision, active_channels):
        mask |= 1 << channel
    return mask & ALL_CHANNELS
