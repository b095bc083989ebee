"""
Discount engine.

Discounts are walked by descending priority. The first one is always
applied; after that a discount is applied only if it and every discount
already applied are stackable.
"""

from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal

import structlog

from reelstream.platform.billing.core.enums import ChargeType, DiscountType
from reelstream.platform.billing.discounts.models import AppliedDiscount, Discount, DiscountOptions
from reelstream.platform.billing.discounts.repository import DiscountRepository
from reelstream.platform.billing.invoicing.models import InvoiceLineItem
from reelstream.platform.billing.money_utils import ZERO, round_amount

logger = structlog.get_logger(__name__)


class DiscountEngine:
    def __init__(self, currency: str = "USD") -> None:
        self.currency = currency

    def apply_discounts(
        self,
        lines: Sequence[InvoiceLineItem],
        discounts: Sequence[Discount],
        options: DiscountOptions | None = None,
    ) -> list[AppliedDiscount]:
        """Apply discounts to ``lines`` in place and return what was applied.

        Only positive lines are discounted, for percentage and fixed discounts
        alike. Credit lines keep their full amount.
        """
        options = options or DiscountOptions()
        eligible = [
            (index, line)
            for index, line in enumerate(lines)
            if line.amount > ZERO
            and not (options.exclude_usage_charges and line.charge_type == ChargeType.USAGE)
        ]

        applied: list[tuple[Discount, AppliedDiscount]] = []
        for discount in sorted(discounts, key=lambda d: d.priority, reverse=True):
            if applied and not (
                discount.is_stackable and all(d.is_stackable for d, _ in applied)
            ):
                continue

            if discount.discount_type == DiscountType.PERCENTAGE:
                allocation = self._percentage(eligible, discount.value, options.cascading)
            else:
                allocation = self._fixed(eligible, discount.value, options.cascading)

            for index, amount in allocation.items():
                line = lines[index]
                line.discount_amount += amount
                line.recalculate_total()

            applied.append(
                (
                    discount,
                    AppliedDiscount(
                        discount_id=discount.id,
                        code=discount.code,
                        amount=sum(allocation.values(), ZERO),
                        applied_to_lines=[i for i, amount in allocation.items() if amount > ZERO],
                    ),
                )
            )

        return [result for _, result in applied]

    @staticmethod
    def _base(line: InvoiceLineItem, cascading: bool) -> Decimal:
        return line.amount - line.discount_amount if cascading else line.amount

    def _percentage(
        self, lines: list[tuple[int, InvoiceLineItem]], percent: Decimal, cascading: bool
    ) -> dict[int, Decimal]:
        allocation = {}
        for index, line in lines:
            base = self._base(line, cascading)
            room = line.amount - line.discount_amount
            amount = round_amount(base * percent / Decimal(100), self.currency)
            allocation[index] = max(ZERO, min(amount, room))
        return allocation

    def _fixed(
        self, lines: list[tuple[int, InvoiceLineItem]], face_value: Decimal, cascading: bool
    ) -> dict[int, Decimal]:
        """Split ``face_value`` by each line's share of the total, never exceeding it."""
        bases = {index: max(ZERO, self._base(line, cascading)) for index, line in lines}
        total = sum(bases.values(), ZERO)
        allocation: dict[int, Decimal] = {}
        remaining = face_value
        for index, line in lines:
            if remaining <= ZERO or total <= ZERO:
                allocation[index] = ZERO
                continue
            share = round_amount(face_value * bases[index] / total, self.currency)
            amount = min(share, remaining, line.amount - line.discount_amount)
            allocation[index] = max(ZERO, amount)
            remaining -= allocation[index]
        return allocation


class DiscountService:
    """Loads a subscription's discounts, filters eligibility and records redemptions."""

    def __init__(self, discount_repository: DiscountRepository, engine: DiscountEngine) -> None:
        self.discount_repository = discount_repository
        self.engine = engine

    async def apply_subscription_discounts(
        self,
        lines: Sequence[InvoiceLineItem],
        discount_ids: Sequence[str],
        plan_id: str,
        at: datetime,
        options: DiscountOptions | None = None,
    ) -> list[AppliedDiscount]:
        discounts = await self.discount_repository.find_by_ids(list(discount_ids))
        eligible = [d for d in discounts if d.is_eligible(at, plan_id)]
        skipped = len(discounts) - len(eligible)
        if skipped:
            logger.info("discounts.ineligible_skipped", count=skipped, plan_id=plan_id)

        applied = self.engine.apply_discounts(lines, eligible, options)
        for result in applied:
            await self.discount_repository.increment_redemptions(result.discount_id)

        if applied:
            logger.info(
                "discounts.applied",
                codes=[a.code for a in applied],
                total=str(sum((a.amount for a in applied), ZERO)),
            )
        return applied
