"""
Tax rate models.
"""

from decimal import Decimal

from pydantic import Field

from reelstream.platform.billing.core.models import BillingModel
from reelstream.platform.billing.date_utils import UTCDateTime


class TaxRate(BillingModel):
    """A standard tax rate for a region, as a percentage."""

    id: str
    name: str
    country: str
    state: str | None = None
    rate: Decimal = Field(ge=0, le=100)
    effective_from: UTCDateTime
    effective_to: UTCDateTime | None = None
    is_active: bool = True

    @property
    def jurisdiction(self) -> str:
        return f"{self.country}-{self.state}" if self.state else self.country
