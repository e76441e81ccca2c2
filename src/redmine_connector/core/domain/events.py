"""
Domain Events - Things that happened while talking to the tracker.

Events are immutable records of something that occurred.
They let side channels (such as custom field learning) observe the
main call chain without being wired into it.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional
from uuid import uuid4

from .entities import Task


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    event_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def event_type(self) -> str:
        """Get the event type name."""
        return self.__class__.__name__


@dataclass(frozen=True)
class TasksFetched(DomainEvent):
    """Event: a list of tasks was fetched from a tracker instance."""

    instance_key: str = ""
    operation: str = ""
    tasks: tuple[Task, ...] = ()


@dataclass(frozen=True)
class CacheFallbackUsed(DomainEvent):
    """Event: a stale cached value was served because a fetch failed."""

    cache_key: str = ""
    error: str = ""


@dataclass(frozen=True)
class CacheInvalidated(DomainEvent):
    """Event: cache entries were dropped after a mutation."""

    pattern: str = ""
    reason: str = ""


class EventBus:
    """
    Simple event bus for publishing and subscribing to domain events.

    Handlers run synchronously on the publishing thread. A failing handler
    is logged and does not stop the others.
    """

    def __init__(self, keep_history: bool = False):
        self._handlers: dict[type, list[Callable]] = {}
        self._history: list[DomainEvent] = []
        self._keep_history = keep_history
        self.logger = logging.getLogger("EventBus")

    def subscribe(self, event_type: type, handler: Callable[[DomainEvent], None]) -> None:
        """Subscribe a handler to an event type."""
        if event_type not in self._handlers:
            self._handlers[event_type] = []
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: type, handler: Callable[[DomainEvent], None]) -> bool:
        """Remove a handler; returns False if it was not subscribed."""
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)
            return True
        return False

    def publish(self, event: DomainEvent) -> None:
        """Publish an event to all subscribers."""
        if self._keep_history:
            self._history.append(event)

        handlers = list(self._handlers.get(type(event), []))
        # Catch-all handlers
        if type(event) is not DomainEvent:
            handlers.extend(self._handlers.get(DomainEvent, []))

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                self.logger.error(f"Handler for {event.event_type} failed: {e}")

    def get_history(self, event_type: Optional[type] = None) -> list[DomainEvent]:
        """Get published events, optionally filtered by type."""
        if event_type is None:
            return self._history.copy()
        return [e for e in self._history if isinstance(e, event_type)]

    def clear_history(self) -> None:
        """Clear event history."""
        self._history.clear()
