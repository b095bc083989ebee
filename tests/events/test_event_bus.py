"""Tests for the in-process event bus."""

import pytest

from reelstream.platform.billing.subscriptions.events import AddOnsRemoved, SubscriptionPlanChanged
from reelstream.platform.events import EventBus, EventPriority, EventStatus, get_event_bus, reset_event_bus

pytestmark = pytest.mark.unit


@pytest.fixture
def bus():
    return EventBus()


async def test_publish_all_keeps_order(bus):
    received = []

    async def handler(event):
        received.append(event.event_type)

    bus.subscribe("subscription.plan_changed", handler)
    bus.subscribe("subscription.add_ons_removed", handler)

    published = await bus.publish_all(
        [
            SubscriptionPlanChanged(
                aggregate_id="sub-1",
                user_id="u1",
                old_plan_id="plan-basic",
                new_plan_id="plan-premium",
                effective_date="2025-01-16T00:00:00Z",
            ),
            AddOnsRemoved(
                aggregate_id="sub-1", user_id="u1", add_on_ids=["addon-offline"], reason="plan_change"
            ),
        ],
        metadata={"source": "billing.plan_change", "correlation_id": "req-1"},
    )

    assert received == ["subscription.plan_changed", "subscription.add_ons_removed"]
    assert [e.status for e in published] == [EventStatus.COMPLETED, EventStatus.COMPLETED]
    assert published[0].payload["new_plan_id"] == "plan-premium"
    assert published[1].metadata.correlation_id == "req-1"


async def test_wildcard_receives_everything(bus):
    received = []

    async def handler(event):
        received.append(event.event_type)

    bus.subscribe("*", handler)
    await bus.publish("usage.quota_threshold_reached", {"threshold_percent": 80})
    await bus.publish("subscription.cancelled", {}, priority=EventPriority.HIGH)

    assert received == ["usage.quota_threshold_reached", "subscription.cancelled"]


async def test_failing_handler_does_not_reach_publisher(bus):
    delivered = []

    async def broken(event):
        raise RuntimeError("mailer down")

    async def healthy(event):
        delivered.append(event.event_id)

    bus.subscribe("subscription.cancelled", broken)
    bus.subscribe("subscription.cancelled", healthy)

    event = await bus.publish("subscription.cancelled", {"aggregate_id": "sub-1"})

    assert event.status == EventStatus.FAILED
    assert event.error_message == "mailer down"
    assert delivered == [event.event_id]


async def test_unsubscribe(bus):
    received = []

    async def handler(event):
        received.append(event)

    bus.subscribe("subscription.activated", handler)
    bus.unsubscribe("subscription.activated", handler)
    bus.unsubscribe("subscription.activated", handler)
    await bus.publish("subscription.activated", {})

    assert received == []


def test_global_bus_reset():
    reset_event_bus()
    first = get_event_bus()
    assert get_event_bus() is first

    reset_event_bus()
    assert get_event_bus() is not first
