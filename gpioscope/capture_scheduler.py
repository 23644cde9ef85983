"""Qt timers driving the input and output tasks of a ScopeController.

Both timers live on the thread that owns the scheduler, so an input pass
and an output pass never overlap. Each output pass therefore sees every
record appended by the input passes that ran before it, and the sample
store and trigger engine need no lock.
"""

import logging
from typing import Optional

from PySide6.QtCore import QObject, QTimer, Signal

from .application.events import ConnectionChangedEvent, ModeChangedEvent, TriggerFiredEvent
from .config import CAPTURE
from .scope_controller import ScopeController

logger = logging.getLogger(__name__)


class CaptureScheduler(QObject):
    """Runs ``poll_input`` at the input rate and ``refresh_view`` at the output rate."""

    frame_ready = Signal(object)       # ViewFrame
    mode_changed = Signal(str)         # ViewMode value
    trigger_fired = Signal(int, object)  # matched bitset, tick
    connection_lost = Signal(str)      # error message

    def __init__(self, controller: ScopeController, parent: Optional[QObject] = None,
                 input_hz: int = CAPTURE.INPUT_UPDATE_HZ,
                 output_hz: int = CAPTURE.OUTPUT_UPDATE_HZ) -> None:
        super().__init__(parent)
        self.controller = controller
        self.reports_processed = 0
        self.frames_emitted = 0

        self._input_timer = QTimer(self)
        self._input_timer.setInterval(max(1, 1000 // input_hz))
        self._input_timer.timeout.connect(self._on_input)

        self._output_timer = QTimer(self)
        self._output_timer.setInterval(max(1, 1000 // output_hz))
        self._output_timer.timeout.connect(self._on_output)

        bus = controller.event_bus
        bus.subscribe(ConnectionChangedEvent, self._on_connection_changed)
        bus.subscribe(ModeChangedEvent, self._on_mode_changed)
        bus.subscribe(TriggerFiredEvent, self._on_trigger_fired)

    @property
    def running(self) -> bool:
        return self._input_timer.isActive()

    def start(self) -> None:
        logger.debug("Starting capture timers (%d ms / %d ms)",
                     self._input_timer.interval(), self._output_timer.interval())
        self._input_timer.start()
        self._output_timer.start()

    def stop(self) -> None:
        self._input_timer.stop()
        self._output_timer.stop()

    def shutdown(self) -> None:
        """Stop both tasks and detach from the controller's event bus."""
        self.stop()
        bus = self.controller.event_bus
        bus.unsubscribe(ConnectionChangedEvent, self._on_connection_changed)
        bus.unsubscribe(ModeChangedEvent, self._on_mode_changed)
        bus.unsubscribe(TriggerFiredEvent, self._on_trigger_fired)

    # ---- Tasks ----
    def _on_input(self) -> None:
        self.reports_processed += self.controller.poll_input()

    def _on_output(self) -> None:
        frame = self.controller.refresh_view()
        if frame is not None:
            self.frames_emitted += 1
            self.frame_ready.emit(frame)

    # ---- Event bus bridges ----
    def _on_connection_changed(self, event: ConnectionChangedEvent) -> None:
        if not event.connected and event.error:
            self.connection_lost.emit(event.error)

    def _on_mode_changed(self, event: ModeChangedEvent) -> None:
        self.mode_changed.emit(event.new_mode.value)

    def _on_trigger_fired(self, event: TriggerFiredEvent) -> None:
        self.trigger_fired.emit(event.matched, event.tick)
