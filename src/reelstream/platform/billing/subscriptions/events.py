"""
Subscription domain events.

Events are immutable and carry everything a subscriber needs; they are
published on the event bus after the producing transaction commits.
"""

from datetime import UTC, datetime
from typing import Any, ClassVar
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from reelstream.platform.billing.date_utils import UTCDateTime


class DomainEvent(BaseModel):
    """Base class for subscription domain events."""

    model_config = ConfigDict(frozen=True)

    event_type: ClassVar[str] = "subscription.event"
    event_version: ClassVar[int] = 1

    event_id: str = Field(default_factory=lambda: str(uuid4()))
    occurred_on: UTCDateTime = Field(default_factory=lambda: datetime.now(UTC))
    aggregate_id: str
    user_id: str

    def to_payload(self) -> dict[str, Any]:
        return {
            "event_type": self.event_type,
            "event_version": self.event_version,
            **self.model_dump(mode="json"),
        }


class SubscriptionPlanChanged(DomainEvent):
    event_type: ClassVar[str] = "subscription.plan_changed"

    old_plan_id: str
    new_plan_id: str
    effective_date: UTCDateTime


class AddOnsRemoved(DomainEvent):
    event_type: ClassVar[str] = "subscription.add_ons_removed"

    add_on_ids: list[str]
    reason: str


class SubscriptionActivated(DomainEvent):
    event_type: ClassVar[str] = "subscription.activated"

    plan_id: str


class SubscriptionCancelled(DomainEvent):
    event_type: ClassVar[str] = "subscription.cancelled"

    at_period_end: bool
    effective_date: UTCDateTime | None = None


class AddOnAdded(DomainEvent):
    event_type: ClassVar[str] = "subscription.add_on_added"

    add_on_id: str
    quantity: int = 1


class AddOnRemoved(DomainEvent):
    event_type: ClassVar[str] = "subscription.add_on_removed"

    add_on_id: str
