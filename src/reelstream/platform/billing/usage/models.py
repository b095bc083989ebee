"""
Usage metering models.
"""

from decimal import Decimal
from typing import Any

from pydantic import Field, model_validator

from reelstream.platform.billing.core.enums import UsageType
from reelstream.platform.billing.core.models import BillingModel
from reelstream.platform.billing.date_utils import UTCDateTime


class UsageTier(BillingModel):
    """A price band on cumulative usage. ``up_to`` of None means unbounded."""

    from_quantity: Decimal = Field(ge=0)
    up_to: Decimal | None = None
    unit_price: Decimal = Field(ge=0)

    @model_validator(mode="after")
    def check_bounds(self) -> "UsageTier":
        if self.up_to is not None and self.up_to <= self.from_quantity:
            raise ValueError("Tier upper bound must be greater than its lower bound")
        return self


class TierConsumption(BillingModel):
    """Portion of a tier actually billed."""

    from_quantity: Decimal
    up_to: Decimal | None
    quantity: Decimal
    unit_price: Decimal
    subtotal: Decimal


class UsageCharge(BillingModel):
    """Billable usage of one type over a period."""

    usage_type: UsageType
    quantity: Decimal = Field(description="Total usage after multipliers")
    included_quantity: Decimal
    billable_quantity: Decimal
    amount: Decimal
    tiers: list[TierConsumption] = Field(default_factory=list)
    description: str
    record_ids: list[str] = Field(default_factory=list, description="Usage records priced")


class UsageRecord(BillingModel):
    """A single metered usage event."""

    id: str
    subscription_id: str
    user_id: str
    usage_type: UsageType
    quantity: Decimal
    multiplier: Decimal = Decimal("1")
    recorded_at: UTCDateTime
    context: dict[str, Any] = Field(default_factory=dict)
    invoice_id: str | None = None
    billed_at: UTCDateTime | None = None

    @property
    def weighted_quantity(self) -> Decimal:
        return self.quantity * self.multiplier


class UsageSummary(BillingModel):
    """Usage of one type against the plan quota."""

    subscription_id: str
    usage_type: UsageType
    total_quantity: Decimal
    included_quota: Decimal
    billable_quantity: Decimal
    estimated_cost: Decimal
    quota_used_percent: Decimal | None = None
