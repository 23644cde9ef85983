"""Trigger engine: up to four level/edge conditions over the channel masks.

Each trigger is configured with one ``TriggerType`` per channel. The
per-channel types are folded into three masks:

    level_mask    channels whose level after the transition matters
    level_value   required levels under level_mask
    changed_mask  channels that must have just transitioned

    type        level_mask  level_value  changed_mask
    DONT_CARE        -            -            -
    LOW              x            -            -
    HIGH             x            x            -
    EDGE             -            -            x
    FALLING          x            -            x      (ends low)
    RISING           x            x            x      (ends high)

A transition ``old -> new`` matches when
``(new & level_mask) == level_value`` and
``(changed_mask & (new ^ old)) == changed_mask``.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from .config import CAPTURE, TRIGGER_TYPE_CHARS
from .data_model import Level, TriggerSettings, TriggerType, TriggerWhen
from .errors import IllegalTriggerConfiguration

logger = logging.getLogger(__name__)


@dataclass
class TriggerSpec:
    """Configuration, derived masks and runtime state of one trigger."""
    enabled: bool = False
    when: TriggerWhen = TriggerWhen.COUNT
    types: List[TriggerType] = field(
        default_factory=lambda: [TriggerType.DONT_CARE] * CAPTURE.CHANNELS)

    # Derived from types
    level_mask: Level = 0
    level_value: Level = 0
    changed_mask: Level = 0

    # Runtime state
    count: int = 0
    fired: bool = False

    @property
    def is_legal(self) -> bool:
        """A trigger needs at least one level or edge condition."""
        return (self.level_mask | self.changed_mask) != 0

    def matches(self, new_level: Level, old_level: Level) -> bool:
        changed = new_level ^ old_level
        return ((new_level & self.level_mask) == self.level_value and
                (self.changed_mask & changed) == self.changed_mask)

    @property
    def label(self) -> str:
        """One character per channel, channel 0 first (e.g. ``"R-1---..."``)."""
        return "".join(TRIGGER_TYPE_CHARS[t] for t in self.types)


def derive_masks(types: Sequence[TriggerType]) -> tuple[Level, Level, Level]:
    """Fold per-channel trigger types into (level_mask, level_value, changed_mask)."""
    level_mask = 0
    level_value = 0
    changed_mask = 0

    for channel, trigger_type in enumerate(types):
        bit = 1 << channel
        if trigger_type == TriggerType.LOW:
            level_mask |= bit
        elif trigger_type == TriggerType.HIGH:
            level_mask |= bit
            level_value |= bit
        elif trigger_type == TriggerType.EDGE:
            changed_mask |= bit
        elif trigger_type == TriggerType.FALLING:
            level_mask |= bit
            changed_mask |= bit
        elif trigger_type == TriggerType.RISING:
            level_mask |= bit
            level_value |= bit
            changed_mask |= bit

    return level_mask, level_value, changed_mask


class TriggerEngine:
    """Holds the trigger configurations and evaluates transitions against them.

    Trigger indices are zero-based (trigger #1 is index 0).
    """

    def __init__(self, num_triggers: int = CAPTURE.TRIGGERS) -> None:
        self.triggers: List[TriggerSpec] = [TriggerSpec() for _ in range(num_triggers)]
        # Post-trigger sample count for SAMPLE_FROM / SAMPLE_AROUND
        self.trigger_samples: int = CAPTURE.TRIGGER_SAMPLE_CHOICES[CAPTURE.DEFAULT_TRIGGER_SAMPLES_INDEX]

    def __len__(self) -> int:
        return len(self.triggers)

    def __getitem__(self, index: int) -> TriggerSpec:
        return self.triggers[index]

    # ---- Configuration ----
    def set_channel_types(self, index: int, types: Sequence[int]) -> None:
        """Set the per-channel types of a trigger and recompute its masks.

        Missing channels are treated as DONT_CARE. A trigger left without
        conditions is disabled.
        """
        spec = self.triggers[index]
        full = [TriggerType(t) for t in list(types)[:CAPTURE.CHANNELS]]
        full += [TriggerType.DONT_CARE] * (CAPTURE.CHANNELS - len(full))
        spec.types = full
        spec.level_mask, spec.level_value, spec.changed_mask = derive_masks(full)
        if spec.enabled and not spec.is_legal:
            spec.enabled = False

    def set_when(self, index: int, when: int) -> None:
        self.triggers[index].when = TriggerWhen(when)

    def set_trigger_samples_index(self, choice_index: int) -> None:
        choices = CAPTURE.TRIGGER_SAMPLE_CHOICES
        choice_index = max(0, min(len(choices) - 1, choice_index))
        self.trigger_samples = choices[choice_index]

    @property
    def trigger_samples_index(self) -> int:
        try:
            return CAPTURE.TRIGGER_SAMPLE_CHOICES.index(self.trigger_samples)
        except ValueError:
            return CAPTURE.DEFAULT_TRIGGER_SAMPLES_INDEX

    def enable(self, index: int, on: bool = True) -> bool:
        """Enable or disable a trigger.

        Enabling a trigger without any condition is rejected.

        Returns:
            The resulting enabled state
        """
        spec = self.triggers[index]
        if on and not spec.is_legal:
            logger.warning("Ignoring enable of trigger #%d: no channel conditions", index + 1)
            return spec.enabled
        spec.enabled = on
        return spec.enabled

    def require_enable(self, index: int) -> None:
        """Enable a trigger, raising if it has no conditions.

        Raises:
            IllegalTriggerConfiguration: If the trigger is not legal
        """
        if not self.triggers[index].is_legal:
            raise IllegalTriggerConfiguration(index)
        self.triggers[index].enabled = True

    # ---- Evaluation ----
    def match(self, new_level: Level, old_level: Level, enabled_only: bool = True) -> int:
        """Bitset of triggers matched by ``old_level -> new_level``.

        Pure; touches no counters. With ``enabled_only=False`` every legal
        trigger is considered, which is what cursor search uses.
        """
        matched = 0
        for i, spec in enumerate(self.triggers):
            if enabled_only:
                if not spec.enabled:
                    continue
            elif not spec.is_legal:
                continue
            if spec.matches(new_level, old_level):
                matched |= 1 << i
        return matched

    def evaluate(self, new_level: Level, old_level: Level) -> int:
        """Match enabled triggers and bump the lifetime count of each match."""
        matched = self.match(new_level, old_level)
        if matched:
            for i in self._indices(matched):
                self.triggers[i].count += 1
        return matched

    def fire(self, matched: int) -> Optional[int]:
        """Apply the live-mode fire policy to newly matched triggers.

        Each matched trigger that has not yet fired and is not a pure
        counter is marked fired.

        Returns:
            The largest post-trigger countdown among the triggers that fired
            now, or None if none did
        """
        countdown: Optional[int] = None
        for i in self._indices(matched):
            spec = self.triggers[i]
            if spec.fired or spec.when == TriggerWhen.COUNT:
                continue
            spec.fired = True
            if spec.when == TriggerWhen.SAMPLE_FROM:
                samples = self.trigger_samples
            elif spec.when == TriggerWhen.SAMPLE_AROUND:
                samples = self.trigger_samples // 2
            else:
                samples = 0
            logger.info("Trigger #%d fired (%s, %d samples)", i + 1, spec.when.name, samples)
            if countdown is None or samples > countdown:
                countdown = samples
        return countdown

    def reset(self) -> None:
        """Re-arm all triggers and clear their lifetime counts."""
        for spec in self.triggers:
            spec.fired = False
            spec.count = 0

    def clear_counts(self) -> None:
        for spec in self.triggers:
            spec.count = 0

    def counts(self) -> List[int]:
        return [spec.count for spec in self.triggers]

    def _indices(self, matched: int) -> Iterable[int]:
        for i in range(len(self.triggers)):
            if matched & (1 << i):
                yield i

    # ---- Settings conversion ----
    def load(self, settings: Sequence[TriggerSettings], trigger_samples_index: Optional[int] = None) -> None:
        """Configure all triggers from their persisted form."""
        for i, trigger in enumerate(settings[:len(self.triggers)]):
            try:
                self.set_channel_types(i, trigger.channel_types)
            except ValueError:
                logger.warning("Trigger #%d: invalid channel types, clearing", i + 1)
                self.set_channel_types(i, [])
            try:
                self.set_when(i, trigger.action)
            except ValueError:
                logger.warning("Trigger #%d: unknown action %r, using count", i + 1, trigger.action)
                self.set_when(i, TriggerWhen.COUNT)
            self.enable(i, bool(trigger.enabled))
        if trigger_samples_index is not None:
            self.set_trigger_samples_index(trigger_samples_index)

    def to_settings(self) -> List[TriggerSettings]:
        return [
            TriggerSettings(
                enabled=spec.enabled,
                action=int(spec.when),
                channel_types=[int(t) for t in spec.types],
            )
            for spec in self.triggers
        ]
