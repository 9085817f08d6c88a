"""Event sink delivering lifecycle notifications to subscribers."""

import logging
from collections import defaultdict
from typing import Callable, DefaultDict, List

from .models import (
    ErrorEvent,
    FinishEvent,
    PauseEvent,
    ProgressEvent,
    StartEvent,
    TransportEvent,
)

logger = logging.getLogger(__name__)

EventHandler = Callable[[TransportEvent], None]

EVENT_NAMES = (
    StartEvent.name,
    ProgressEvent.name,
    PauseEvent.name,
    FinishEvent.name,
    ErrorEvent.name,
)
TERMINAL_EVENTS = (PauseEvent.name, FinishEvent.name, ErrorEvent.name)


class EventEmitter:
    """Publish/subscribe hub for transport lifecycle events.

    Handlers run synchronously on the emitting thread. A handler that
    raises is logged and skipped so one faulty subscriber never breaks an
    upload.
    """

    def __init__(self) -> None:
        self._handlers: DefaultDict[str, List[EventHandler]] = defaultdict(list)

    def on(self, name: str, handler: EventHandler) -> EventHandler:
        """Subscribe ``handler`` to events called ``name``."""
        if name not in EVENT_NAMES:
            raise ValueError(f"Unknown event {name!r}. Must be one of: {list(EVENT_NAMES)}")
        self._handlers[name].append(handler)
        return handler

    def off(self, name: str, handler: EventHandler) -> None:
        """Remove a previously subscribed handler."""
        try:
            self._handlers[name].remove(handler)
        except ValueError:
            pass

    def emit(self, event: TransportEvent) -> None:
        for handler in list(self._handlers[event.name]):
            try:
                handler(event)
            except Exception as e:
                logger.warning(f"{event.name} handler error: {e}")
