"""
Discount models.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import Field

from reelstream.platform.billing.core.enums import DiscountType
from reelstream.platform.billing.core.models import BillingModel
from reelstream.platform.billing.date_utils import UTCDateTime, ensure_utc


class Discount(BillingModel):
    """A discount definition. Percentage values are 0-100."""

    id: str
    code: str
    name: str
    discount_type: DiscountType
    value: Decimal = Field(ge=0)
    currency: str = "USD"
    max_redemptions: int | None = None
    current_redemptions: int = 0
    valid_from: UTCDateTime | None = None
    valid_to: UTCDateTime | None = None
    applicable_plan_ids: list[str] = Field(default_factory=list)
    is_stackable: bool = False
    priority: int = 0
    is_active: bool = True

    def is_eligible(self, at: datetime, plan_id: str | None = None) -> bool:
        """Active, inside its validity window, under its redemption cap, and valid for the plan."""
        at = ensure_utc(at)
        if not self.is_active:
            return False
        if self.valid_from is not None and at < self.valid_from:
            return False
        if self.valid_to is not None and at > self.valid_to:
            return False
        if self.max_redemptions is not None and self.current_redemptions >= self.max_redemptions:
            return False
        if self.applicable_plan_ids and plan_id not in self.applicable_plan_ids:
            return False
        return True


class DiscountOptions(BillingModel):
    # each discount applies to what earlier discounts left of the line
    cascading: bool = False
    exclude_usage_charges: bool = False


class AppliedDiscount(BillingModel):
    discount_id: str
    code: str
    amount: Decimal
    applied_to_lines: list[int] = Field(default_factory=list)
