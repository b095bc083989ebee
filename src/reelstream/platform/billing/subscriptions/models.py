"""
Subscription aggregate and plan models.

The aggregate never queues events internally: every behavior mutates the
subscription and returns the domain events it produced. Callers publish
those events after the change has been committed.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import Field, field_validator

from reelstream.platform.billing.core.enums import (
    ChargeType,
    PlanInterval,
    SubscriptionStatus,
    UsageType,
)
from reelstream.platform.billing.core.models import BillingModel
from reelstream.platform.billing.date_utils import UTCDateTime
from reelstream.platform.billing.exceptions import (
    AddOnNotAllowedError,
    AddOnNotFoundError,
    InactiveSubscriptionError,
    SamePlanError,
    SubscriptionStateError,
)
from reelstream.platform.billing.subscriptions.events import (
    AddOnAdded,
    AddOnRemoved,
    AddOnsRemoved,
    SubscriptionActivated,
    SubscriptionCancelled,
    SubscriptionPlanChanged,
)
from reelstream.platform.billing.usage.models import UsageTier


class BillingAddress(BillingModel):
    """Billing address used for tax jurisdiction."""

    address_line1: str = ""
    address_line2: str | None = None
    city: str = ""
    state: str | None = None
    zipcode: str = ""
    country: str = "US"

    @field_validator("country")
    @classmethod
    def normalize_country(cls, v: str) -> str:
        return v.strip().upper()


class Plan(BillingModel):
    """Subscription plan."""

    id: str
    name: str
    amount: Decimal
    currency: str = "USD"
    interval: PlanInterval
    allowed_add_on_ids: list[str] = Field(default_factory=list)
    included_usage: dict[UsageType, Decimal] = Field(default_factory=dict)
    usage_tiers: dict[UsageType, list[UsageTier]] = Field(default_factory=dict)
    is_active: bool = True

    def allows_add_on(self, add_on_id: str) -> bool:
        return add_on_id in self.allowed_add_on_ids

    def included_quantity(self, usage_type: UsageType) -> Decimal:
        return self.included_usage.get(usage_type, Decimal("0"))


class AddOn(BillingModel):
    """Add-on catalog entry."""

    id: str
    name: str
    amount: Decimal
    currency: str = "USD"
    is_active: bool = True


class SubscriptionAddOn(BillingModel):
    """Add-on attached to a subscription."""

    id: str
    add_on_id: str
    name: str
    amount: Decimal
    currency: str = "USD"
    quantity: int = 1
    start_date: UTCDateTime
    end_date: UTCDateTime | None = None

    @property
    def is_active(self) -> bool:
        return self.end_date is None

    @property
    def total_amount(self) -> Decimal:
        return self.amount * self.quantity


class Charge(BillingModel):
    """A charge already billed for a subscription period."""

    id: str
    subscription_id: str
    user_id: str
    description: str
    charge_type: ChargeType = ChargeType.SUBSCRIPTION
    amount: Decimal
    tax_amount: Decimal = Decimal("0")
    currency: str = "USD"
    period_start: UTCDateTime
    period_end: UTCDateTime
    invoice_id: str | None = None


class Subscription(BillingModel):
    """Subscription aggregate."""

    id: str
    user_id: str
    plan_id: str
    status: SubscriptionStatus
    current_period_start: UTCDateTime | None = None
    current_period_end: UTCDateTime | None = None
    cancel_at_period_end: bool = False
    cancelled_at: UTCDateTime | None = None
    trial_end: UTCDateTime | None = None
    billing_address: BillingAddress | None = None
    add_ons: list[SubscriptionAddOn] = Field(default_factory=list)
    discount_ids: list[str] = Field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE

    @property
    def is_cancelled(self) -> bool:
        return self.cancelled_at is not None or self.cancel_at_period_end

    @property
    def will_auto_renew(self) -> bool:
        return self.is_active and not self.is_cancelled

    @property
    def active_add_ons(self) -> list[SubscriptionAddOn]:
        return [a for a in self.add_ons if a.is_active]

    # ------------------------------------------------------------------
    # Behaviors
    # ------------------------------------------------------------------

    def change_plan(
        self,
        new_plan_id: str,
        effective_date: datetime,
        removed_add_on_ids: list[str] | None = None,
    ) -> list[SubscriptionPlanChanged | AddOnsRemoved]:
        """Switch to ``new_plan_id``. Add-on end dates are set by the migrator beforehand."""
        if not self.is_active:
            raise InactiveSubscriptionError(subscription_id=self.id)
        if new_plan_id == self.plan_id:
            raise SamePlanError(plan_id=new_plan_id)

        old_plan_id = self.plan_id
        self.plan_id = new_plan_id

        events: list[SubscriptionPlanChanged | AddOnsRemoved] = [
            SubscriptionPlanChanged(
                aggregate_id=self.id,
                user_id=self.user_id,
                old_plan_id=old_plan_id,
                new_plan_id=new_plan_id,
                effective_date=effective_date,
            )
        ]
        if removed_add_on_ids:
            events.append(
                AddOnsRemoved(
                    aggregate_id=self.id,
                    user_id=self.user_id,
                    add_on_ids=list(removed_add_on_ids),
                    reason="plan_change",
                )
            )
        return events

    def activate(self, period_start: datetime, period_end: datetime) -> list[SubscriptionActivated]:
        if self.is_active:
            raise SubscriptionStateError(
                "Subscription is already active",
                current_state=self.status.value,
                attempted_action="activate",
            )
        self.status = SubscriptionStatus.ACTIVE
        self.current_period_start = period_start
        self.current_period_end = period_end
        self.cancelled_at = None
        self.cancel_at_period_end = False
        return [
            SubscriptionActivated(
                aggregate_id=self.id, user_id=self.user_id, plan_id=self.plan_id
            )
        ]

    def cancel(self, at: datetime, at_period_end: bool = False) -> list[SubscriptionCancelled]:
        """Cancel now, or flag the subscription to lapse when the current period ends."""
        if not self.is_active:
            raise SubscriptionStateError(
                "Subscription is not active",
                current_state=self.status.value,
                attempted_action="cancel",
            )
        if at_period_end:
            self.cancel_at_period_end = True
        else:
            self.status = SubscriptionStatus.INACTIVE
            self.cancelled_at = at
        return [
            SubscriptionCancelled(
                aggregate_id=self.id,
                user_id=self.user_id,
                at_period_end=at_period_end,
                effective_date=self.current_period_end if at_period_end else at,
            )
        ]

    def add_add_on(self, add_on: SubscriptionAddOn, plan: Plan) -> list[AddOnAdded]:
        if not self.is_active:
            raise SubscriptionStateError(
                "Cannot add add-ons to an inactive subscription",
                current_state=self.status.value,
                attempted_action="add_add_on",
            )
        if not plan.allows_add_on(add_on.add_on_id):
            raise AddOnNotAllowedError(
                f"Add-on {add_on.add_on_id} is not available on plan {plan.name}",
                add_on_id=add_on.add_on_id,
                plan_id=plan.id,
            )
        if any(a.add_on_id == add_on.add_on_id for a in self.active_add_ons):
            raise SubscriptionStateError(
                "Add-on is already active on this subscription",
                attempted_action="add_add_on",
            )
        self.add_ons = [*self.add_ons, add_on]
        return [
            AddOnAdded(
                aggregate_id=self.id,
                user_id=self.user_id,
                add_on_id=add_on.add_on_id,
                quantity=add_on.quantity,
            )
        ]

    def remove_add_on(self, add_on_id: str, at: datetime) -> list[AddOnRemoved]:
        for add_on in self.active_add_ons:
            if add_on.add_on_id == add_on_id:
                add_on.end_date = at
                return [
                    AddOnRemoved(aggregate_id=self.id, user_id=self.user_id, add_on_id=add_on_id)
                ]
        raise AddOnNotFoundError(
            f"Add-on {add_on_id} is not active on this subscription", add_on_id=add_on_id
        )
