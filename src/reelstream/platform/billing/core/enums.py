"""
Billing enums shared by every billing component.
"""

from enum import Enum


class SubscriptionStatus(str, Enum):
    """Subscription lifecycle status."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class PlanInterval(str, Enum):
    """Billing cycle length of a plan."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class ChargeType(str, Enum):
    """Kind of amount carried by a charge or invoice line."""

    SUBSCRIPTION = "subscription"
    USAGE = "usage"
    ADD_ON = "add_on"
    PRORATION = "proration"
    TAX = "tax"
    DISCOUNT = "discount"


class UsageType(str, Enum):
    """Metered usage dimensions."""

    STREAMING_HOURS = "streaming_hours"
    DOWNLOAD_COUNT = "download_count"
    BANDWIDTH_4K = "bandwidth_4k"
    API_CALLS = "api_calls"

    @property
    def label(self) -> str:
        return _USAGE_LABELS[self]


_USAGE_LABELS = {
    UsageType.STREAMING_HOURS: "Streaming Hours",
    UsageType.DOWNLOAD_COUNT: "Download Count",
    UsageType.BANDWIDTH_4K: "4K Bandwidth",
    UsageType.API_CALLS: "API Calls",
}


class CreditType(str, Enum):
    """Origin of a customer credit."""

    REFUND = "refund"
    SERVICE = "service"
    PROMOTIONAL = "promotional"
    PRORATION = "proration"


class InvoiceStatus(str, Enum):
    """Invoice status. Draft -> Open -> Paid, or Void / Uncollectible."""

    DRAFT = "draft"
    OPEN = "open"
    PAID = "paid"
    VOID = "void"
    UNCOLLECTIBLE = "uncollectible"


class PlanChangeStatus(str, Enum):
    """Plan-change workflow state."""

    PENDING_INVOICE = "pending_invoice"
    INVOICE_GENERATED = "invoice_generated"
    INVOICE_FAILED = "invoice_failed"


class DiscountType(str, Enum):
    """How a discount's value is interpreted."""

    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"


class TaxProvider(str, Enum):
    """Tax calculation strategy that produced a line's tax."""

    STANDARD = "standard"
    EXTERNAL = "external"
    VAT = "vat"
