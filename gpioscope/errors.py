"""Exception types for gpioscope.

Only ``ConnectionFailure`` and ``MalformedFile`` are ever surfaced to the
user. ``BufferOverflow`` and ``CapacityExceeded`` are raised by the sample
store and handled by its callers according to the capture mode.
"""

from typing import Optional


class ScopeError(Exception):
    """Base exception for all gpioscope errors."""
    pass


class ConnectionFailure(ScopeError):
    """The device link is unreachable or the handshake failed.

    Attributes:
        address: ``host:port`` that was being contacted
        operation: Step that failed (e.g. 'connect', 'notify')
        status: Negative link status code, if any
    """

    def __init__(self, message: str, address: Optional[str] = None,
                 operation: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message)
        self.address = address
        self.operation = operation
        self.status = status


class BufferOverflow(ScopeError):
    """The sample store is at capacity."""

    def __init__(self, capacity: int):
        super().__init__(f"Sample store full ({capacity} records)")
        self.capacity = capacity


class CapacityExceeded(ScopeError):
    """A bulk load holds more records than the store capacity."""

    def __init__(self, requested: int, capacity: int):
        super().__init__(f"{requested} records exceed store capacity of {capacity}")
        self.requested = requested
        self.capacity = capacity


class MalformedFile(ScopeError):
    """A capture file does not carry the expected header."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"{path}\nis not a legal .piscope file: {reason}")
        self.path = path
        self.reason = reason


class IllegalTriggerConfiguration(ScopeError):
    """A trigger with no level or edge condition was asked to be enabled."""

    def __init__(self, trigger_index: int):
        super().__init__(f"Trigger #{trigger_index + 1} has no channel conditions")
        self.trigger_index = trigger_index
