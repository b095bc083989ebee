"""
Proration calculator.

Computes the unused-time credit on the old plan and the prorated charge on
the new plan. Day counts are whole calendar days; amounts are rounded
half-up to the currency precision per breakdown line and the totals are
the sum of the rounded lines, so a breakdown always adds up to its total.
"""

from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal

import structlog
from pydantic import Field

from reelstream.platform.billing.core.enums import PlanInterval
from reelstream.platform.billing.core.models import BillingModel
from reelstream.platform.billing.date_utils import (
    UTCDateTime,
    add_months,
    add_years,
    days_between,
    ensure_utc,
)
from reelstream.platform.billing.money_utils import ZERO, round_amount
from reelstream.platform.billing.subscriptions.models import Charge, Plan, Subscription

logger = structlog.get_logger(__name__)


class ProrationLine(BillingModel):
    """One audited proration line. Credit lines carry negative amounts."""

    description: str
    amount: Decimal
    period_start: UTCDateTime
    period_end: UTCDateTime
    proration_rate: Decimal


class ProrationResult(BillingModel):
    """Credit and charge of a plan change with their breakdowns."""

    credit: Decimal = ZERO
    charge: Decimal = ZERO
    credit_breakdown: list[ProrationLine] = Field(default_factory=list)
    charge_breakdown: list[ProrationLine] = Field(default_factory=list)

    @property
    def net(self) -> Decimal:
        return net_proration(self.credit, self.charge)


def net_proration(credit: Decimal, charge: Decimal) -> Decimal:
    """Positive when the customer owes money at settlement."""
    return charge - credit


def cycle_days(interval: PlanInterval, start_date: datetime) -> int:
    """Length in days of the billing cycle that begins at ``start_date``."""
    if interval == PlanInterval.DAY:
        return 1
    if interval == PlanInterval.WEEK:
        return 7
    if interval == PlanInterval.MONTH:
        return days_between(start_date, add_months(start_date, 1))
    return days_between(start_date, add_years(start_date, 1))


class ProrationCalculator:
    """Pure proration arithmetic. Never raises on missing period bounds."""

    def __init__(self, currency: str = "USD") -> None:
        self.currency = currency

    def _round(self, amount: Decimal, currency: str | None = None) -> Decimal:
        return round_amount(amount, currency or self.currency)

    def calculate_credit(
        self,
        subscription: Subscription,
        effective_date: datetime,
        charges: Sequence[Charge],
    ) -> tuple[Decimal, list[ProrationLine]]:
        """Credit the unused share of every charge billed for the current period.

        Tax on the original charge is never credited.
        """
        period_start = subscription.current_period_start
        period_end = subscription.current_period_end
        effective_date = ensure_utc(effective_date)

        if period_start is None or period_end is None or effective_date >= period_end:
            return ZERO, []

        total_days = days_between(period_start, period_end)
        unused_days = days_between(effective_date, period_end)
        if total_days <= 0 or unused_days <= 0:
            return ZERO, []

        rate = Decimal(unused_days) / Decimal(total_days)
        lines: list[ProrationLine] = []
        total = ZERO
        for charge in charges:
            credit = self._round((charge.amount - charge.tax_amount) * rate, charge.currency)
            if credit <= ZERO:
                continue
            total += credit
            lines.append(
                ProrationLine(
                    description=f"Unused time on {charge.description}",
                    amount=-credit,
                    period_start=effective_date,
                    period_end=period_end,
                    proration_rate=rate,
                )
            )

        logger.debug(
            "proration.credit.calculated",
            subscription_id=subscription.id,
            unused_days=unused_days,
            total_days=total_days,
            credit=str(total),
        )
        return total, lines

    def calculate_charge(
        self, new_plan: Plan, start_date: datetime, end_date: datetime | None
    ) -> tuple[Decimal, list[ProrationLine]]:
        """Charge the new plan for the remainder of the period."""
        if end_date is None:
            return ZERO, []

        start_date = ensure_utc(start_date)
        end_date = ensure_utc(end_date)
        days_to_charge = days_between(start_date, end_date)
        if days_to_charge <= 0:
            return ZERO, []

        rate = Decimal(days_to_charge) / Decimal(cycle_days(new_plan.interval, start_date))
        charge = self._round(new_plan.amount * rate, new_plan.currency)
        line = ProrationLine(
            description=f"Prorated charge for {new_plan.name} ({days_to_charge} days)",
            amount=charge,
            period_start=start_date,
            period_end=end_date,
            proration_rate=rate,
        )
        return charge, [line]

    def calculate_add_on_proration(
        self,
        add_on_amount: Decimal,
        add_on_start_date: datetime,
        change_date: datetime,
        period_end: datetime,
        currency: str | None = None,
    ) -> Decimal:
        """Unused share of an add-on, anchored on the add-on's own start date."""
        total_days = days_between(add_on_start_date, period_end)
        unused_days = days_between(change_date, period_end)
        if total_days <= 0 or unused_days <= 0:
            return ZERO
        return self._round(add_on_amount * Decimal(unused_days) / Decimal(total_days), currency)

    def calculate(
        self,
        subscription: Subscription,
        new_plan: Plan,
        effective_date: datetime,
        charges: Sequence[Charge],
    ) -> ProrationResult:
        """Full proration for switching ``subscription`` to ``new_plan`` at ``effective_date``."""
        credit, credit_lines = self.calculate_credit(subscription, effective_date, charges)
        charge, charge_lines = self.calculate_charge(
            new_plan, effective_date, subscription.current_period_end
        )
        return ProrationResult(
            credit=credit,
            charge=charge,
            credit_breakdown=credit_lines,
            charge_breakdown=charge_lines,
        )
