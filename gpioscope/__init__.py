"""gpioscope - GPIO logic analyser core for the pigpio daemon."""

__version__ = "0.1.0"

from .data_model import (
    SampleRecord, ViewMode, IngestState, TriggerType, TriggerWhen, SaveFormat,
    TriggerSettings, ScopeSettings, CursorMarks, ViewFrame
)
from .errors import (
    ScopeError, ConnectionFailure, BufferOverflow, CapacityExceeded, MalformedFile,
    IllegalTriggerConfiguration
)
from .sample_store import SampleStore
from .trigger_engine import TriggerEngine
from .ingestion import IngestionPipeline
from .view_window import ViewWindow
from .session import ScopeSession
from .scope_controller import ScopeController
from .config import CAPTURE, VIEW, LINK

__all__ = [
    'SampleRecord', 'ViewMode', 'IngestState', 'TriggerType', 'TriggerWhen', 'SaveFormat',
    'TriggerSettings', 'ScopeSettings', 'CursorMarks', 'ViewFrame',
    'ScopeError', 'ConnectionFailure', 'BufferOverflow', 'CapacityExceeded', 'MalformedFile',
    'IllegalTriggerConfiguration',
    'SampleStore', 'TriggerEngine', 'IngestionPipeline', 'ViewWindow', 'ScopeSession',
    'ScopeController', 'CAPTURE', 'VIEW', 'LINK'
]
