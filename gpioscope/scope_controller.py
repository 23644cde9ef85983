"""ScopeController: the non-Qt command surface of the scope.

The controller owns a ScopeSession and the device link, and exposes every
user-level operation (connect, mode changes, zoom and speed, navigation,
cursor marks, searches, file load/save, trigger configuration). The two
periodic entry points ``poll_input`` and ``refresh_view`` are driven by
``CaptureScheduler``.

State changes are announced on the EventBus so that widgets, the settings
layer and tests can observe them without Qt.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Callable, List, Mapping, Optional, Sequence

from .application.event_bus import EventBus
from .application.events import (
    BufferClearedEvent, CaptureCompleteEvent, ConnectionChangedEvent, CursorMovedEvent,
    ModeChangedEvent, SamplesLoadedEvent, TriggerFiredEvent
)
from .channels import hardware_revision
from .config import CAPTURE
from .data_model import Level, SaveFormat, ScopeSettings, Tick, ViewFrame, ViewMode
from .device_link import DeviceLink, PigpioLink, resolve_address
from .errors import ConnectionFailure
from .navigation import search_edge, search_trigger
from .session import ScopeSession
from . import waveform_codec

logger = logging.getLogger(__name__)

LinkFactory = Callable[[str, int], DeviceLink]


def open_pigpio_link(host: str, port: int) -> DeviceLink:
    link = PigpioLink(host, port)
    link.connect()
    return link


@dataclass
class ScopeController:
    """Coordinates a ScopeSession with a device link and its observers."""

    session: ScopeSession = field(default_factory=ScopeSession)
    event_bus: EventBus = field(default_factory=EventBus)
    link_factory: LinkFactory = open_pigpio_link
    environ: Mapping[str, str] = field(default_factory=lambda: os.environ)
    link: Optional[DeviceLink] = None
    address: str = ""

    def __post_init__(self) -> None:
        pipeline = self.session.pipeline
        pipeline.on_trigger = self._on_trigger
        pipeline.on_capture_complete = self._on_capture_complete

    # ---- Pipeline callbacks ----
    def _on_trigger(self, matched: int, tick: Tick) -> None:
        self.event_bus.publish(TriggerFiredEvent(
            matched=matched, tick=tick, counts=tuple(self.session.triggers.counts())))

    def _on_capture_complete(self) -> None:
        # The pipeline has already switched the view to PAUSE
        self.event_bus.publish(ModeChangedEvent(old_mode=ViewMode.LIVE, new_mode=ViewMode.PAUSE))
        self.event_bus.publish(CaptureCompleteEvent(tick=self.session.store.last_tick))

    # ---- Connection ----
    @property
    def connected(self) -> bool:
        return self.link is not None

    def connect(self) -> bool:
        """Connect to the daemon, clear the buffer and go LIVE.

        A failed connection is logged and published; ingestion stays dormant
        until the next explicit connect.

        Returns:
            True if connected
        """
        if self.link is not None:
            return True

        host, port = resolve_address(self.session.settings, self.environ)
        self.address = f"{host}:{port}"
        try:
            link = self.link_factory(host, port)
        except ConnectionFailure as e:
            logger.warning("Can't connect to pigpio at %s: %s", self.address, e)
            self.session.pipeline.suspend()
            self.event_bus.publish(ConnectionChangedEvent(
                connected=False, address=self.address, error=str(e)))
            return False

        self.link = link
        session = self.session
        session.clear_samples()
        session.pipeline.start()
        session.revision = hardware_revision(link.hardware_revision())
        link.set_notify_mask(session.notify_mask)
        logger.info("Capturing %d channels (board revision %d)", len(session.channels), session.revision)

        self.event_bus.publish(BufferClearedEvent())
        self.event_bus.publish(ConnectionChangedEvent(connected=True, address=self.address))
        self.set_mode(ViewMode.LIVE)
        return True

    def disconnect(self, error: Optional[str] = None) -> None:
        """Drop the link; ingestion goes dormant and the view pauses."""
        if self.link is None:
            return
        link, self.link = self.link, None
        self.session.pipeline.suspend()
        link.close()
        self.set_mode(ViewMode.PAUSE)
        self.event_bus.publish(ConnectionChangedEvent(
            connected=False, address=self.address, error=error))

    def reconnect(self) -> bool:
        logger.info("Reconnecting to pigpio")
        self.disconnect()
        return self.connect()

    def quit(self) -> None:
        self.disconnect()
        self.session.pipeline.quit()

    def update_notify_mask(self) -> None:
        """Send the current channel selection to the daemon."""
        if self.link is not None:
            self.link.set_notify_mask(self.session.notify_mask)

    # ---- Periodic tasks ----
    def poll_input(self) -> int:
        """Input task: ingest whatever the link has ready.

        Returns:
            Number of reports processed
        """
        if self.link is None:
            return 0
        try:
            return self.session.pipeline.poll(self.link.read)
        except ConnectionFailure as e:
            logger.error("Device link failed: %s", e)
            self.disconnect(error=str(e))
            return 0

    def refresh_view(self) -> Optional[ViewFrame]:
        """Output task: recompute the view window for the renderer."""
        return self.session.view.recompute(self.session.store, CAPTURE.refresh_ticks)

    # ---- Mode ----
    @property
    def mode(self) -> ViewMode:
        return self.session.view.mode

    def set_mode(self, mode: ViewMode) -> bool:
        """Switch the view mode.

        LIVE needs a connection; entering it re-arms every trigger.

        Returns:
            True if the mode is now ``mode``
        """
        view = self.session.view
        if mode == ViewMode.LIVE:
            if not self.connected:
                logger.info("Ignoring LIVE request while disconnected")
                return False
            self.session.triggers.reset()
            self.session.pipeline.rearm()

        old_mode = view.mode
        if old_mode == mode:
            return True
        view.mode = mode
        self.event_bus.publish(ModeChangedEvent(old_mode=old_mode, new_mode=mode))
        return True

    def live(self) -> bool:
        return self.set_mode(ViewMode.LIVE)

    def play(self) -> bool:
        return self.set_mode(ViewMode.PLAY)

    def pause(self) -> bool:
        return self.set_mode(ViewMode.PAUSE)

    # ---- Zoom / speed ----
    def zoom_in(self) -> bool:
        return self.session.view.zoom_in()

    def zoom_out(self) -> bool:
        return self.session.view.zoom_out()

    def zoom_default(self) -> bool:
        return self.session.view.zoom_default()

    def speed_up(self) -> bool:
        return self.session.view.speed_up()

    def slow_down(self) -> bool:
        return self.session.view.slow_down()

    def speed_default(self) -> None:
        self.session.view.speed_default()

    # ---- Navigation ----
    def go_first(self) -> None:
        self.pause()
        self.session.view.go_first(self.session.store)

    def go_last(self) -> None:
        self.pause()
        self.session.view.go_last(self.session.store)

    def go_back(self) -> None:
        self.pause()
        self.session.view.page(forward=False)

    def go_forward(self) -> None:
        self.pause()
        self.session.view.page(forward=True)

    # ---- Cursor marks ----
    def _move_mark(self, name: str, tick: Tick) -> None:
        marks = self.session.marks
        old = getattr(marks, name)
        if old != tick:
            setattr(marks, name, tick)
            self.event_bus.publish(CursorMovedEvent(mark=name, old_tick=old, new_tick=tick))  # type: ignore[arg-type]

    def set_blue(self, tick: Tick) -> None:
        self._move_mark('blue', tick)

    def set_gold(self, tick: Optional[Tick] = None) -> None:
        """Place the gold mark, by default on the blue cursor."""
        self._move_mark('gold', self.session.marks.blue if tick is None else tick)

    def set_mark1(self) -> None:
        """Put mark1 on the blue cursor, swapping marks to keep mark1 <= mark2."""
        marks = self.session.marks
        blue = marks.blue
        mark1 = marks.mark1 or blue
        mark2 = marks.mark2 or blue
        if blue <= mark2:
            mark1 = blue
        else:
            mark1, mark2 = mark2, blue
        self._move_mark('mark1', mark1)
        self._move_mark('mark2', mark2)

    def set_mark2(self) -> None:
        """Put mark2 on the blue cursor, swapping marks to keep mark1 <= mark2."""
        marks = self.session.marks
        blue = marks.blue
        mark1 = marks.mark1 or blue
        mark2 = marks.mark2 or blue
        if blue >= mark1:
            mark2 = blue
        else:
            mark1, mark2 = blue, mark1
        self._move_mark('mark1', mark1)
        self._move_mark('mark2', mark2)

    # ---- Search ----
    def _search(self, found: Optional[Tick]) -> Optional[Tick]:
        if found is not None:
            self.set_blue(found)
            self.session.view.reveal(found)
        return found

    def search_edge(self, forward: bool = True) -> Optional[Tick]:
        """Move the blue cursor to the next edge on the highlighted channels.

        Only acts in PAUSE with the blue cursor placed.
        """
        session = self.session
        if self.mode != ViewMode.PAUSE or not session.marks.blue:
            return None
        return self._search(search_edge(session.store, session.marks.blue, forward, session.search_mask))

    def search_trigger(self, forward: bool = True) -> Optional[Tick]:
        """Move the blue cursor to the next transition matching a trigger."""
        session = self.session
        if self.mode != ViewMode.PAUSE or not session.marks.blue:
            return None
        return self._search(search_trigger(session.store, session.triggers, session.marks.blue, forward))

    def set_highlighted(self, mask: Level) -> None:
        self.session.highlighted = mask & 0xFFFFFFFF

    def toggle_highlight(self, channel: int) -> None:
        self.set_highlighted(self.session.highlighted ^ (1 << channel))

    # ---- Buffer and files ----
    def clear_buffer(self) -> None:
        self.session.clear_samples()
        self.event_bus.publish(BufferClearedEvent())

    def save(self, path: str, fmt: SaveFormat = SaveFormat.TEXT, selection_only: bool = False) -> int:
        """Save all samples, or only those between mark1 and mark2."""
        selection = self.session.selection if selection_only else None
        return waveform_codec.save(self.session.store, path, fmt, selection)

    def load(self, path: str) -> int:
        """Replace the buffer with a saved text capture and pause on its start.

        Raises:
            MalformedFile: If the file is not a capture; the buffer is unchanged
        """
        session = self.session
        count = waveform_codec.load(session.store, path)
        session.marks.clear()
        session.pipeline.reset_session()
        self.pause()
        session.view.go_first(session.store)
        self.event_bus.publish(SamplesLoadedEvent(file_path=str(path), record_count=count))
        return count

    # ---- Triggers ----
    def set_trigger_types(self, index: int, types: Sequence[int]) -> None:
        self.session.triggers.set_channel_types(index, types)

    def set_trigger_when(self, index: int, when: int) -> None:
        self.session.triggers.set_when(index, when)

    def enable_trigger(self, index: int, on: bool = True) -> bool:
        return self.session.triggers.enable(index, on)

    def set_trigger_samples(self, choice_index: int) -> None:
        self.session.triggers.set_trigger_samples_index(choice_index)

    def clear_trigger_counts(self) -> None:
        self.session.triggers.clear_counts()

    def trigger_counts(self) -> List[int]:
        return self.session.triggers.counts()

    # ---- Settings ----
    def apply_settings(self, settings: ScopeSettings) -> None:
        """Adopt persisted settings: triggers, sample count and channel selection."""
        self.session.settings = settings
        self.session.triggers.load(settings.triggers, settings.trigger_samples)
        self.update_notify_mask()

    def set_active_channels(self, channels: Optional[Sequence[int]]) -> None:
        self.session.settings.active_channels = sorted(set(channels)) if channels else None
        self.update_notify_mask()

    def to_settings(self) -> ScopeSettings:
        return self.session.current_settings()
