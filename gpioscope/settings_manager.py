"""
Centralized scope settings management using QSettings.
"""

import logging
from typing import Optional, Any, List

from PySide6.QtCore import QObject, QSettings, Signal

from .config import CAPTURE, LINK
from .data_model import ScopeSettings, TriggerSettings, TriggerWhen

logger = logging.getLogger(__name__)


def _join_ints(values: List[int]) -> str:
    return ",".join(str(v) for v in values)


def _split_ints(text: Any) -> List[int]:
    if not text:
        return []
    if isinstance(text, (list, tuple)):
        # QSettings ini files return comma separated values as a list
        items = [str(t) for t in text]
    else:
        items = str(text).split(",")
    values = []
    for item in items:
        item = item.strip()
        if item:
            values.append(int(item))
    return values


class SettingsManager(QObject):
    """
    Singleton manager for the scope preferences.

    Stores the daemon address, the active channel list, the trigger sample
    choice and the four trigger configurations.
    """

    # Signals emitted when settings change
    server_changed = Signal(str, int)       # address, port
    active_channels_changed = Signal(object)  # list of channels or None
    triggers_changed = Signal()

    _instance: Optional['SettingsManager'] = None

    def __new__(cls) -> 'SettingsManager':
        """Ensure singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        if not hasattr(self, '_initialized'):
            super().__init__()
            self._settings = QSettings("gpioscope", "piscope")
            self._initialized = True

    def use_settings(self, settings: QSettings) -> None:
        """Switch to another settings store (e.g. an ini file)."""
        self._settings = settings

    def get_settings(self) -> QSettings:
        return self._settings

    # Server settings
    def get_server_address(self) -> str:
        value: Any = self._settings.value("pigpio/serverAddress", LINK.DEFAULT_SERVER_ADDRESS, type=str)
        return str(value) if value else LINK.DEFAULT_SERVER_ADDRESS

    def get_server_port(self) -> int:
        value: Any = self._settings.value("pigpio/serverPort", LINK.DEFAULT_SERVER_PORT, type=int)
        return int(value) if value else LINK.DEFAULT_SERVER_PORT

    def set_server(self, address: str, port: int) -> None:
        """Set the daemon address and port."""
        address = address.strip() or LINK.DEFAULT_SERVER_ADDRESS
        if not 0 < port < 65536:
            port = LINK.DEFAULT_SERVER_PORT
        if (address, port) != (self.get_server_address(), self.get_server_port()):
            self._settings.setValue("pigpio/serverAddress", address)
            self._settings.setValue("pigpio/serverPort", port)
            self._settings.sync()
            self.server_changed.emit(address, port)

    # Channel settings
    def get_active_channels(self) -> Optional[List[int]]:
        """Channels chosen for display, or None for every usable channel."""
        value: Any = self._settings.value("gpios/activeGPIOs", "")
        try:
            channels = _split_ints(value)
        except ValueError:
            logger.warning("Ignoring malformed activeGPIOs setting %r", value)
            return None
        channels = sorted({c for c in channels if 0 <= c < CAPTURE.CHANNELS})
        return channels or None

    def set_active_channels(self, channels: Optional[List[int]]) -> None:
        channels = sorted(set(channels)) if channels else None
        if channels != self.get_active_channels():
            self._settings.setValue("gpios/activeGPIOs", _join_ints(channels or []))
            self._settings.sync()
            self.active_channels_changed.emit(channels)

    # Trigger settings
    def get_trigger_samples(self) -> int:
        """Index into the trigger sample choices."""
        value: Any = self._settings.value("triggers/triggerSamples",
                                          CAPTURE.DEFAULT_TRIGGER_SAMPLES_INDEX, type=int)
        index = int(value) if value is not None else CAPTURE.DEFAULT_TRIGGER_SAMPLES_INDEX
        return max(0, min(len(CAPTURE.TRIGGER_SAMPLE_CHOICES) - 1, index))

    def get_trigger(self, index: int) -> TriggerSettings:
        key = f"triggers/trigger{index + 1}"
        enabled: Any = self._settings.value(f"{key}Enabled", False, type=bool)
        action: Any = self._settings.value(f"{key}Action", int(TriggerWhen.COUNT), type=int)
        types_value: Any = self._settings.value(f"{key}GPIOTypes", "")
        try:
            types = _split_ints(types_value)
        except ValueError:
            logger.warning("Ignoring malformed %sGPIOTypes setting %r", key, types_value)
            types = []
        types += [0] * (CAPTURE.CHANNELS - len(types))
        return TriggerSettings(enabled=bool(enabled), action=int(action or 0),
                               channel_types=types[:CAPTURE.CHANNELS])

    def set_triggers(self, trigger_samples: int, triggers: List[TriggerSettings]) -> None:
        self._settings.setValue("triggers/triggerSamples", trigger_samples)
        for i, trigger in enumerate(triggers):
            key = f"triggers/trigger{i + 1}"
            self._settings.setValue(f"{key}Enabled", bool(trigger.enabled))
            self._settings.setValue(f"{key}Action", int(trigger.action))
            self._settings.setValue(f"{key}GPIOTypes", _join_ints(trigger.channel_types))
        self._settings.sync()
        self.triggers_changed.emit()

    # Whole-scope conversions
    def load_scope_settings(self) -> ScopeSettings:
        return ScopeSettings(
            server_address=self.get_server_address(),
            server_port=self.get_server_port(),
            active_channels=self.get_active_channels(),
            trigger_samples=self.get_trigger_samples(),
            triggers=[self.get_trigger(i) for i in range(CAPTURE.TRIGGERS)],
        )

    def save_scope_settings(self, settings: ScopeSettings) -> None:
        self.set_server(settings.server_address, settings.server_port)
        self.set_active_channels(settings.active_channels)
        self.set_triggers(settings.trigger_samples, settings.triggers)
