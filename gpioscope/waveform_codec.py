"""Save and load captures.

Two formats are written:

Text (``.piscope``), the only format that can be loaded back::

    #piscope
    #date 2024-05-01 12:30:00
    0 0000000C
    1520 0000000D

One line per record: tick relative to the tick origin in decimal, then the
level mask as eight upper-case hex digits.

VCD, with one single-bit wire per channel (symbols ``A``..``Z`` then
``a``..``f``) and a ``#tick`` line followed by the changed bits for each
record.

Both writers accept an optional ``(start, end)`` selection; only records
whose tick lies within it (inclusive) are written.
"""

import logging
import pathlib
import re
from datetime import datetime
from typing import Iterable, List, Optional, TextIO, Tuple, Union

from .config import CAPTURE
from .data_model import SampleRecord, SaveFormat, Tick
from .errors import MalformedFile
from .sample_store import SampleStore
from .time_format import WALL_CLOCK_FORMAT

logger = logging.getLogger(__name__)

PathLike = Union[str, pathlib.Path]
Selection = Optional[Tuple[Tick, Tick]]

TEXT_HEADER = "#piscope"
VCD_VERSION = "piscope V1"

_DATE_RE = re.compile(r"#date (\d+)-(\d+)-(\d+) (\d+):(\d+):(\d+)")
_RECORD_RE = re.compile(r"\s*(-?\d+)\s+([0-9A-Fa-f]{1,8})\s*")


def vcd_symbol(channel: int) -> str:
    """VCD identifier of a channel: ``A``..``Z`` for 0..25, ``a``..``f`` for 26..31."""
    if channel < 26:
        return chr(ord('A') + channel)
    return chr(ord('a') + channel - 26)


def _selected(store: SampleStore, selection: Selection) -> Iterable[SampleRecord]:
    if selection is None:
        return iter(store)
    start, end = selection
    return (r for r in store if start <= r.tick <= end)


def _origin_stamp(store: SampleStore) -> str:
    if store.time_origin is None:
        logger.debug("No wall-clock origin recorded, stamping with current time")
        return datetime.now().strftime(WALL_CLOCK_FORMAT)
    return store.time_origin.strftime(WALL_CLOCK_FORMAT)


# ---- Writers ----
def write_text(store: SampleStore, out: TextIO, selection: Selection = None) -> int:
    """Write the text format; returns the number of records written."""
    out.write(f"{TEXT_HEADER}\n")
    out.write(f"#date {_origin_stamp(store)}\n")

    origin = store.tick_origin
    written = 0
    for tick, level in _selected(store, selection):
        out.write(f"{tick - origin} {level:08X}\n")
        written += 1
    return written


def write_vcd(store: SampleStore, out: TextIO, selection: Selection = None) -> int:
    """Write a VCD file; returns the number of timestamps written."""
    out.write(f"$date {_origin_stamp(store)} $end\n")
    out.write(f"$version {VCD_VERSION} $end\n")
    out.write("$timescale 1 us $end\n")
    out.write("$scope module top $end\n")
    for channel in range(CAPTURE.CHANNELS):
        out.write(f"$var wire 1 {vcd_symbol(channel)} {channel} $end\n")
    out.write("$upscope $end\n")
    out.write("$enddefinitions $end\n")

    origin = store.tick_origin
    last_level: Optional[int] = None
    written = 0
    for tick, level in _selected(store, selection):
        if last_level is None:
            # Dump every channel at the first timestamp
            last_level = ~level & 0xFFFFFFFF
        out.write(f"#{tick - origin}\n")
        changed = level ^ last_level
        for channel in range(CAPTURE.CHANNELS):
            bit = 1 << channel
            if changed & bit:
                out.write(f"{'1' if level & bit else '0'}{vcd_symbol(channel)}\n")
        last_level = level
        written += 1
    return written


def save(store: SampleStore, path: PathLike, fmt: SaveFormat = SaveFormat.TEXT,
         selection: Selection = None) -> int:
    """Save the store (or a selection of it) to ``path``."""
    with open(path, 'w') as f:
        if fmt == SaveFormat.VCD:
            written = write_vcd(store, f, selection)
        else:
            written = write_text(store, f, selection)
    logger.info("Saved %d records to %s (%s)", written, path, fmt.value)
    return written


# ---- Reader ----
def read_text(lines: Iterable[str], path: str = "<stream>",
              capacity: int = CAPTURE.SAMPLES) -> Tuple[datetime, List[SampleRecord]]:
    """Parse the text format.

    Records are read until the first line that is not a record. Records
    beyond ``capacity`` are dropped.

    Raises:
        MalformedFile: If the two header lines are missing or wrong
    """
    it = iter(lines)
    header = next(it, None)
    if header is None or header.rstrip("\r\n") != TEXT_HEADER:
        raise MalformedFile(path, "missing #piscope header")

    date_line = next(it, None)
    match = _DATE_RE.fullmatch(date_line.rstrip("\r\n")) if date_line is not None else None
    if match is None:
        raise MalformedFile(path, "missing #date line")
    try:
        time_origin = datetime(*(int(g) for g in match.groups()))
    except ValueError as e:
        raise MalformedFile(path, f"bad date: {e}") from e

    records: List[SampleRecord] = []
    total = 0
    for line in it:
        m = _RECORD_RE.fullmatch(line.rstrip("\r\n"))
        if m is None:
            break
        total += 1
        if len(records) < capacity:
            records.append(SampleRecord(int(m.group(1)), int(m.group(2), 16)))

    if total > len(records):
        logger.warning("%s: %d records beyond capacity of %d were dropped",
                       path, total - len(records), capacity)
    return time_origin, records


def load(store: SampleStore, path: PathLike) -> int:
    """Replace the store contents with a text-format capture.

    The store is left untouched if the file is not a legal capture.

    Returns:
        Number of records loaded

    Raises:
        MalformedFile: If the header lines do not match or the file is not text
        OSError: If the file cannot be read
    """
    try:
        with open(path, 'r', encoding='ascii') as f:
            time_origin, records = read_text(f, str(path), store.capacity)
    except UnicodeDecodeError as e:
        raise MalformedFile(str(path), "not a text capture") from e

    store.bulk_load(records, tick_origin=0)
    store.time_origin = time_origin
    logger.info("Loaded %d records from %s", len(records), path)
    return len(records)
