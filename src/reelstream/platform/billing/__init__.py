"""
Billing system module.

Provides the plan-change billing pipeline:
- Subscription lifecycle and plan changes with proration
- Usage-based billing with tiered pricing
- Tax, discounts and customer credits
- Invoice assembly and status transitions
"""

from reelstream.platform.billing.exceptions import (
    BillingError,
    InactiveSubscriptionError,
    PlanChangeError,
    PlanChangeInProgressError,
    PlanNotFoundError,
    SamePlanError,
    SubscriptionError,
    SubscriptionNotFoundError,
    UsageTrackingError,
)

__all__ = [
    "BillingError",
    "InactiveSubscriptionError",
    "PlanChangeError",
    "PlanChangeInProgressError",
    "PlanNotFoundError",
    "SamePlanError",
    "SubscriptionError",
    "SubscriptionNotFoundError",
    "UsageTrackingError",
]
