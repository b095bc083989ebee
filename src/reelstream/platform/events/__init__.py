"""
Event bus for billing domain events.

Example:
    bus = get_event_bus()
    bus.subscribe("subscription.plan_changed", handler)
    await bus.publish_all(events)
"""

from reelstream.platform.events.bus import (
    EventBus,
    EventHandler,
    PublishableEvent,
    get_event_bus,
    reset_event_bus,
)
from reelstream.platform.events.models import Event, EventMetadata, EventPriority, EventStatus

__all__ = [
    "Event",
    "EventBus",
    "EventHandler",
    "EventMetadata",
    "EventPriority",
    "EventStatus",
    "PublishableEvent",
    "get_event_bus",
    "reset_event_bus",
]
