"""Event models for the in-process event bus."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class EventPriority(str, Enum):
    """Delivery priority hint for subscribers."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


class EventStatus(str, Enum):
    """Lifecycle of a published event."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class EventMetadata(BaseModel):
    """Context attached to every event."""

    model_config = ConfigDict(extra="allow")

    source: str | None = None
    user_id: str | None = None
    correlation_id: str | None = None
    aggregate_id: str | None = None


class Event(BaseModel):
    """An event as delivered to handlers."""

    model_config = ConfigDict(validate_assignment=True)

    event_id: str = Field(default_factory=lambda: str(uuid4()))
    event_type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    metadata: EventMetadata = Field(default_factory=EventMetadata)
    priority: EventPriority = EventPriority.NORMAL
    status: EventStatus = EventStatus.PENDING
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    error_message: str | None = None
