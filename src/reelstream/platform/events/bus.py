"""
In-process event bus.

Handlers are awaited one after another in subscription order, so a single
``publish_all`` call delivers its events in the order given. A failing
handler is logged and marks the event failed; it never propagates to the
publisher, whose own transaction has already committed.
"""

from collections import defaultdict
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, Protocol

import structlog

from reelstream.platform.events.models import Event, EventMetadata, EventPriority, EventStatus

logger = structlog.get_logger(__name__)

EventHandler = Callable[[Event], Awaitable[None]]


class PublishableEvent(Protocol):
    """Anything that can describe itself as a bus event."""

    event_type: str

    def to_payload(self) -> dict[str, Any]: ...


class EventBus:
    """Publish/subscribe hub for domain and integration events."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """Register a handler for an event type, or ``*`` for all events."""
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    async def publish(
        self,
        event_type: str,
        payload: dict[str, Any],
        metadata: dict[str, Any] | None = None,
        priority: EventPriority = EventPriority.NORMAL,
    ) -> Event:
        """Build an event and deliver it to every matching handler."""
        event = Event(
            event_type=event_type,
            payload=payload,
            metadata=EventMetadata(**(metadata or {})),
            priority=priority,
        )
        await self._dispatch(event)
        return event

    async def publish_all(
        self,
        events: Iterable[PublishableEvent],
        metadata: dict[str, Any] | None = None,
    ) -> list[Event]:
        """Publish several domain events, preserving their order."""
        published = []
        for domain_event in events:
            published.append(
                await self.publish(
                    event_type=domain_event.event_type,
                    payload=domain_event.to_payload(),
                    metadata=metadata,
                )
            )
        return published

    async def _dispatch(self, event: Event) -> None:
        handlers = [*self._handlers.get(event.event_type, []), *self._handlers.get("*", [])]
        for handler in handlers:
            try:
                await handler(event)
            except Exception as e:
                event.status = EventStatus.FAILED
                event.error_message = str(e)
                logger.error(
                    "event.handler.failed",
                    event_id=event.event_id,
                    event_type=event.event_type,
                    handler=getattr(handler, "__name__", repr(handler)),
                    error=str(e),
                    exc_info=True,
                )
        if event.status == EventStatus.PENDING:
            event.status = EventStatus.COMPLETED

        logger.debug(
            "event.published",
            event_id=event.event_id,
            event_type=event.event_type,
            handlers=len(handlers),
            status=event.status.value,
        )


# Global bus instance for the wiring layer
_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Get the global event bus instance."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus


def reset_event_bus() -> None:
    """Reset the global event bus (mainly for testing)."""
    global _event_bus
    _event_bus = None
