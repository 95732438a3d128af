"""In-process publisher for the facts the booking core exposes outward."""

from collections import defaultdict
from collections.abc import Callable

from marketplace.models import DomainEvent
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)

EventHandler = Callable[[DomainEvent], None]


class EventPublisher:
    """Fan-out of committed facts to subscribers.

    Publish only after the owning transaction has committed. A failing
    subscriber is logged and skipped; it never fails the operation that
    produced the fact.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """Register a handler for an event type (the event class name)."""
        self._handlers[event_type].append(handler)

    def publish(self, event: DomainEvent) -> None:
        for handler in self._handlers.get(event.event_type, []):
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Subscriber %r failed for %s", handler, event.event_type
                )


def log_event(event: DomainEvent) -> None:
    """Default subscriber: record the fact in the service log."""
    logger.info("Published %s: %s", event.event_type, event.model_dump_json())


def create_default_publisher() -> EventPublisher:
    publisher = EventPublisher()
    publisher.subscribe("BookingCompleted", log_event)
    publisher.subscribe("PaymentCompleted", log_event)
    return publisher
