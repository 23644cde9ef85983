"""ScopeSession: the capture context shared by the controller and its tasks."""

from dataclasses import dataclass, field, replace
from typing import List, Optional

from .channels import UNKNOWN_REVISION, channel_names, displayed_channels, notify_mask
from .data_model import ALL_CHANNELS, CursorMarks, Level, ScopeSettings
from .ingestion import IngestionPipeline
from .sample_store import SampleStore
from .trigger_engine import TriggerEngine
from .view_window import ViewWindow


@dataclass
class ScopeSession:
    """Owns the sample store, triggers, view and ingestion state of one scope."""
    store: SampleStore = field(default_factory=SampleStore)
    triggers: TriggerEngine = field(default_factory=TriggerEngine)
    view: ViewWindow = field(default_factory=ViewWindow)
    marks: CursorMarks = field(default_factory=CursorMarks)
    settings: ScopeSettings = field(default_factory=ScopeSettings)

    # Channels emphasised by the user; edge search looks only at these
    highlighted: Level = 0
    # Board revision reported by the connected daemon
    revision: int = UNKNOWN_REVISION

    pipeline: IngestionPipeline = field(init=False)

    def __post_init__(self) -> None:
        self.pipeline = IngestionPipeline(self.store, self.triggers, self.view)
        self.triggers.load(self.settings.triggers, self.settings.trigger_samples)

    def current_settings(self) -> ScopeSettings:
        """Settings with the trigger configuration taken from the live engine."""
        active = self.settings.active_channels
        return replace(
            self.settings,
            active_channels=list(active) if active else None,
            trigger_samples=self.triggers.trigger_samples_index,
            triggers=self.triggers.to_settings(),
        )

    @property
    def search_mask(self) -> Level:
        return self.highlighted or ALL_CHANNELS

    @property
    def channels(self) -> List[int]:
        """Channels currently captured and displayed."""
        return displayed_channels(self.revision, self.settings.active_channels)

    @property
    def channel_names(self) -> List[str]:
        return channel_names(self.revision)

    @property
    def notify_mask(self) -> Level:
        return notify_mask(self.revision, self.settings.active_channels)

    @property
    def selection(self) -> Optional[tuple[int, int]]:
        """The mark1..mark2 range, or None when no marks are placed."""
        if not self.marks.has_selection:
            return None
        return self.marks.mark1, self.marks.mark2

    def clear_samples(self) -> None:
        """Empty the store and forget the marks and the ingestion session."""
        self.store.clear()
        self.marks.clear()
        self.pipeline.reset_session()
