"""
Line-item assembly for plan-change invoices.
"""

from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal

from reelstream.platform.billing.core.enums import ChargeType
from reelstream.platform.billing.invoicing.models import InvoiceLineItem
from reelstream.platform.billing.subscriptions.proration import ProrationLine
from reelstream.platform.billing.usage.models import UsageCharge


def proration_line_item(line: ProrationLine) -> InvoiceLineItem:
    return InvoiceLineItem(
        description=line.description,
        charge_type=ChargeType.PRORATION,
        quantity=Decimal("1"),
        unit_price=line.amount,
        amount=line.amount,
        total_amount=line.amount,
        period_start=line.period_start,
        period_end=line.period_end,
        proration_rate=line.proration_rate,
    )


def usage_line_item(
    charge: UsageCharge, period_start: datetime | None, period_end: datetime | None
) -> InvoiceLineItem:
    quantity = charge.billable_quantity
    return InvoiceLineItem(
        description=charge.description,
        charge_type=ChargeType.USAGE,
        quantity=quantity,
        unit_price=(charge.amount / quantity).quantize(Decimal("0.0001")),
        amount=charge.amount,
        total_amount=charge.amount,
        period_start=period_start,
        period_end=period_end,
        details={
            "usage_type": charge.usage_type.value,
            "total_quantity": str(charge.quantity),
            "included_quantity": str(charge.included_quantity),
            "tiers": [tier.model_dump(mode="json") for tier in charge.tiers],
        },
    )


def build_plan_change_lines(
    credit_breakdown: Sequence[ProrationLine],
    charge_breakdown: Sequence[ProrationLine],
    usage_charges: Sequence[UsageCharge],
    usage_period_start: datetime | None = None,
    usage_period_end: datetime | None = None,
) -> list[InvoiceLineItem]:
    """Credit lines (negative) first, then charge lines, then usage lines."""
    items = [proration_line_item(line) for line in credit_breakdown]
    items.extend(proration_line_item(line) for line in charge_breakdown)
    items.extend(
        usage_line_item(charge, usage_period_start, usage_period_end) for charge in usage_charges
    )
    return items
