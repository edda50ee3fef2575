"""
boardsync Event Bus

A lightweight in-process event bus. The coordinator publishes mutation
lifecycle events and user-facing notifications on it; UI layers, the CLI
and tests subscribe. Create one bus per client and inject it.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from boardsync.logging import get_logger

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Event:
    """
    Base class for all events.

    All events carry a timestamp and optional metadata.
    """
    timestamp: datetime = field(default_factory=_utcnow)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def event_type(self) -> str:
        """Return the event type name (class name by default)."""
        return self.__class__.__name__


# Mutation lifecycle events

@dataclass
class MutationEvent(Event):
    """Base class for coordinator mutation events."""
    mutation_id: str = ""
    operation: str = ""
    entity_type: str = ""
    entity_id: Optional[str] = None


@dataclass
class MutationApplied(MutationEvent):
    """Fired when a speculative change was written to the cache."""
    pass


@dataclass
class MutationConfirmed(MutationEvent):
    """Fired when the store accepted a mutation. `entity_id` is the canonical id."""
    placeholder_id: Optional[str] = None


@dataclass
class MutationRolledBack(MutationEvent):
    """Fired when a dispatched mutation failed and the cache was restored."""
    error: Optional[str] = None
    retryable: bool = False


@dataclass
class MutationRejected(MutationEvent):
    """Fired when a mutation was refused before touching the cache."""
    error: Optional[str] = None
    category: str = ""


# Notifications

@dataclass
class Notification(Event):
    """A user-facing message; one per settled mutation."""
    level: str = "success"  # success, error
    message: str = ""
    operation: str = ""
    mutation_id: str = ""


# Type alias for handlers
EventHandler = Callable[[Event], None]


class EventBus:
    """
    In-process event bus.

    Handlers are plain callables. Wildcard subscriptions are supported and
    handlers are looked up along the event's class hierarchy.

    Example:
        bus = EventBus()

        @bus.subscribe(Notification)
        def on_notification(event: Notification):
            print(event.message)

        bus.publish(Notification(level="success", message="Lane created"))
    """

    def __init__(self) -> None:
        self._handlers: Dict[type, List[EventHandler]] = {}
        self._wildcard_handlers: List[EventHandler] = []

    def subscribe(
        self,
        event_type: Optional[type] = None,
    ) -> Callable[[EventHandler], EventHandler]:
        """
        Decorator to subscribe a handler to an event type.

        Args:
            event_type: The event type to subscribe to, or None for all events
        """
        def decorator(handler: EventHandler) -> EventHandler:
            self.add_handler(event_type, handler)
            return handler
        return decorator

    def add_handler(self, event_type: Optional[type], handler: EventHandler) -> None:
        """Add a handler for an event type, or for every event when None."""
        if event_type is None:
            self._wildcard_handlers.append(handler)
        else:
            self._handlers.setdefault(event_type, []).append(handler)

    def remove_handler(self, event_type: Optional[type], handler: EventHandler) -> None:
        """Remove a previously registered handler."""
        if event_type is None:
            if handler in self._wildcard_handlers:
                self._wildcard_handlers.remove(handler)
        elif handler in self._handlers.get(event_type, []):
            self._handlers[event_type].remove(handler)

    def publish(self, event: Event) -> None:
        """
        Publish an event to every matching handler.

        Handler errors are logged and do not reach the publisher.
        """
        handlers_called = 0

        for base_type in type(event).__mro__:
            for handler in list(self._handlers.get(base_type, [])):
                try:
                    handler(event)
                    handlers_called += 1
                except Exception as e:
                    logger.error(
                        f"Error in event handler: {e}",
                        extra={"event_type": event.event_type, "error": str(e)},
                    )

        for handler in list(self._wildcard_handlers):
            try:
                handler(event)
                handlers_called += 1
            except Exception as e:
                logger.error(
                    f"Error in wildcard handler: {e}",
                    extra={"event_type": event.event_type, "error": str(e)},
                )

        logger.debug(
            f"Published {event.event_type}",
            extra={"event_type": event.event_type, "handlers_called": handlers_called},
        )

    def clear(self) -> None:
        """Remove all registered handlers."""
        self._handlers.clear()
        self._wildcard_handlers.clear()
