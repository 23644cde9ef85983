"""Publish-subscribe bus connecting the scope controller to its observers.

Handlers subscribe to an event class and receive instances of that class
and of its subclasses, so a handler on ``Event`` sees the whole stream.
"""

import logging
from collections import defaultdict
from typing import Callable, Dict, Iterator, List, Type, TypeVar

from gpioscope.application.events import Event

logger = logging.getLogger(__name__)

E = TypeVar('E', bound=Event)
Handler = Callable[[Event], None]


class EventBus:

    def __init__(self) -> None:
        self._handlers: Dict[Type[Event], List[Handler]] = defaultdict(list)

    def subscribe(self, event_type: Type[E], handler: Callable[[E], None]) -> None:
        self._handlers[event_type].append(handler)  # type: ignore[arg-type]

    def unsubscribe(self, event_type: Type[E], handler: Callable[[E], None]) -> None:
        handlers = self._handlers.get(event_type)
        if handlers and handler in handlers:
            handlers.remove(handler)  # type: ignore[arg-type]

    def has_subscribers(self, event_type: Type[Event]) -> bool:
        """True if publishing ``event_type`` would reach at least one handler."""
        return any(True for _ in self._dispatch_order(event_type))

    def _dispatch_order(self, event_type: Type[Event]) -> Iterator[Handler]:
        # Most specific class first; snapshot so handlers may unsubscribe
        for cls in event_type.__mro__:
            if not issubclass(cls, Event):
                continue
            yield from list(self._handlers.get(cls, ()))

    def publish(self, event: Event) -> None:
        """Deliver ``event`` to every matching handler.

        A failing handler is logged; in debug runs the error propagates.
        """
        for handler in list(self._dispatch_order(type(event))):
            try:
                handler(event)
            except Exception:
                logger.exception("Handler %r failed on %s", handler, type(event).__name__)
                if __debug__:
                    raise

    def clear(self) -> None:
        self._handlers.clear()
