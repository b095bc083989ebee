"""
Usage multipliers and tiered pricing.

Tiers are bands on cumulative usage for the period. The plan's included
quota covers the lowest units, so billing starts at the quota boundary
and walks the bands upwards from there.
"""

from collections.abc import Mapping, Sequence
from decimal import Decimal
from typing import Any

from reelstream.platform.billing.core.enums import UsageType
from reelstream.platform.billing.money_utils import ZERO, round_amount
from reelstream.platform.billing.usage.models import TierConsumption, UsageTier

DEFAULT_USAGE_TIERS: dict[UsageType, list[UsageTier]] = {
    UsageType.STREAMING_HOURS: [
        UsageTier(from_quantity=Decimal("0"), up_to=Decimal("500"), unit_price=Decimal("0.10")),
        UsageTier(from_quantity=Decimal("500"), up_to=None, unit_price=Decimal("0.05")),
    ],
    UsageType.DOWNLOAD_COUNT: [
        UsageTier(from_quantity=Decimal("0"), up_to=Decimal("100"), unit_price=Decimal("0.15")),
        UsageTier(from_quantity=Decimal("100"), up_to=None, unit_price=Decimal("0.08")),
    ],
    UsageType.BANDWIDTH_4K: [
        UsageTier(from_quantity=Decimal("0"), up_to=Decimal("200"), unit_price=Decimal("0.20")),
        UsageTier(from_quantity=Decimal("200"), up_to=None, unit_price=Decimal("0.10")),
    ],
    UsageType.API_CALLS: [
        UsageTier(from_quantity=Decimal("0"), up_to=Decimal("10000"), unit_price=Decimal("0.001")),
        UsageTier(from_quantity=Decimal("10000"), up_to=None, unit_price=Decimal("0.0005")),
    ],
}

_QUALITY_MULTIPLIERS = {
    "4K": Decimal("2.0"),
    "UHD": Decimal("2.0"),
    "HD": Decimal("1.0"),
    "SD": Decimal("0.5"),
}

_TYPE_MULTIPLIERS = {
    UsageType.BANDWIDTH_4K: Decimal("2.0"),
    UsageType.DOWNLOAD_COUNT: Decimal("1.5"),
    UsageType.API_CALLS: Decimal("1.0"),
}


def resolve_multiplier(usage_type: UsageType, context: Mapping[str, Any] | None = None) -> Decimal:
    """Weight applied to a usage event when it is recorded."""
    if usage_type == UsageType.STREAMING_HOURS:
        quality = str((context or {}).get("quality", "")).upper()
        return _QUALITY_MULTIPLIERS.get(quality, Decimal("1.0"))
    return _TYPE_MULTIPLIERS.get(usage_type, Decimal("1.0"))


def calculate_tiered_charge(
    total_quantity: Decimal,
    included_quantity: Decimal,
    tiers: Sequence[UsageTier],
    currency: str = "USD",
) -> tuple[Decimal, list[TierConsumption]]:
    """Price usage above the included quota across the tier bands."""
    billed_from = max(included_quantity, ZERO)
    if total_quantity <= billed_from:
        return ZERO, []

    amount = ZERO
    consumed: list[TierConsumption] = []
    for tier in sorted(tiers, key=lambda t: t.from_quantity):
        lower = max(tier.from_quantity, billed_from)
        upper = total_quantity if tier.up_to is None else min(tier.up_to, total_quantity)
        quantity = upper - lower
        if quantity <= ZERO:
            continue
        subtotal = quantity * tier.unit_price
        amount += subtotal
        consumed.append(
            TierConsumption(
                from_quantity=tier.from_quantity,
                up_to=tier.up_to,
                quantity=quantity,
                unit_price=tier.unit_price,
                subtotal=subtotal,
            )
        )
        if tier.up_to is None or tier.up_to >= total_quantity:
            break

    return round_amount(amount, currency), consumed
