"""Persistence module for saving and loading ScopeSession state."""

import logging
import yaml
import pathlib
from typing import Dict, Any, Optional, Union
from dataclasses import asdict

from .data_model import CursorMarks, ScopeSettings, TriggerSettings, ViewMode
from .session import ScopeSession
from .view_window import ViewWindow
from . import waveform_codec

logger = logging.getLogger(__name__)

PathLike = Union[str, pathlib.Path]


def _serialize_settings(settings: ScopeSettings) -> Dict[str, Any]:
    data = asdict(settings)
    # Enum-valued actions are stored as plain ints
    for trigger in data['triggers']:
        trigger['action'] = int(trigger['action'])
    return data


def _deserialize_settings(data: Dict[str, Any]) -> ScopeSettings:
    data = dict(data)
    triggers = [TriggerSettings(**t) for t in data.pop('triggers', [])]
    settings = ScopeSettings(**data)
    if triggers:
        settings.triggers = triggers
    return settings


def save_session(session: ScopeSession, path: PathLike,
                 samples_path: Optional[PathLike] = None) -> None:
    """
    Serialize session to YAML. The samples themselves go to a separate
    text capture at ``samples_path`` when one is given.
    """
    samples_uri = None
    if samples_path is not None:
        waveform_codec.save(session.store, samples_path)
        samples_uri = str(samples_path)

    view = session.view
    data = {
        'samples_uri': samples_uri,
        'settings': _serialize_settings(session.current_settings()),
        'marks': asdict(session.marks),
        'view': {
            'zoom_level': view.zoom_level,
            'play_speed': view.play_speed,
            'width_px': view.width_px,
            'center_tick': view.center_tick,
        },
        'highlighted': session.highlighted,
    }

    with open(path, 'w') as f:
        yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)


def load_session(path: PathLike) -> ScopeSession:
    """
    Deserialize YAML into a paused ScopeSession, reloading the samples file
    if it still exists.
    """
    with open(path, 'r') as f:
        data = yaml.safe_load(f) or {}

    settings = _deserialize_settings(data.get('settings', {}))
    view_data = data.get('view', {})
    session = ScopeSession(
        settings=settings,
        view=ViewWindow(mode=ViewMode.PAUSE, **view_data),
        highlighted=data.get('highlighted', 0),
    )

    samples_uri = data.get('samples_uri')
    if samples_uri:
        if pathlib.Path(samples_uri).exists():
            waveform_codec.load(session.store, samples_uri)
        else:
            logger.warning("Samples file %s not found, session restored without samples", samples_uri)

    # Marks refer to the loaded samples, so restore them last
    session.marks = CursorMarks(**data.get('marks', {}))
    return session
