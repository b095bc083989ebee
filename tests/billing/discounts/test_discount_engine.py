"""Tests for discount stacking, distribution and eligibility."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from reelstream.platform.billing.core.enums import ChargeType, DiscountType
from reelstream.platform.billing.discounts.engine import DiscountEngine, DiscountService
from reelstream.platform.billing.discounts.models import Discount, DiscountOptions
from reelstream.platform.billing.discounts.repository import DiscountRepository
from reelstream.platform.billing.invoicing.models import InvoiceLineItem

JAN_16 = datetime(2025, 1, 16, tzinfo=UTC)


def _line(amount: str, charge_type: ChargeType = ChargeType.PRORATION) -> InvoiceLineItem:
    line = InvoiceLineItem(
        description=f"line {amount}",
        charge_type=charge_type,
        unit_price=Decimal(amount),
        amount=Decimal(amount),
    )
    line.recalculate_total()
    return line


def _discount(
    code: str,
    discount_type: DiscountType = DiscountType.PERCENTAGE,
    value: str = "10",
    **kwargs,
) -> Discount:
    return Discount(
        id=f"disc-{code.lower()}",
        code=code,
        name=code,
        discount_type=discount_type,
        value=Decimal(value),
        **kwargs,
    )


@pytest.fixture
def engine() -> DiscountEngine:
    return DiscountEngine("USD")


@pytest.mark.unit
class TestDiscountEngine:
    def test_percentage_applies_to_every_positive_line(self, engine):
        lines = [_line("-5.00"), _line("10.00"), _line("30.00")]
        applied = engine.apply_discounts(lines, [_discount("TEN")])

        assert [line.discount_amount for line in lines] == [
            Decimal("0"),
            Decimal("1.00"),
            Decimal("3.00"),
        ]
        assert lines[2].total_amount == Decimal("27.00")
        assert applied[0].amount == Decimal("4.00")
        assert applied[0].applied_to_lines == [1, 2]

    def test_fixed_amount_split_by_share(self, engine):
        lines = [_line("10.00"), _line("30.00")]
        applied = engine.apply_discounts(
            lines, [_discount("FIVE", DiscountType.FIXED_AMOUNT, "5.00")]
        )

        assert [line.discount_amount for line in lines] == [Decimal("1.25"), Decimal("3.75")]
        assert applied[0].amount == Decimal("5.00")

    def test_fixed_amount_never_exceeds_lines(self, engine):
        lines = [_line("2.00"), _line("3.00")]
        applied = engine.apply_discounts(
            lines, [_discount("BIG", DiscountType.FIXED_AMOUNT, "50.00")]
        )

        assert applied[0].amount == Decimal("5.00")
        assert all(line.total_amount == Decimal("0") for line in lines)

    def test_fixed_amount_skips_credit_lines(self, engine):
        lines = [_line("-5.00"), _line("10.00")]
        applied = engine.apply_discounts(
            lines, [_discount("FIVE", DiscountType.FIXED_AMOUNT, "5.00")]
        )

        assert [line.discount_amount for line in lines] == [Decimal("0"), Decimal("5.00")]
        assert lines[0].total_amount == Decimal("-5.00")
        assert applied[0].applied_to_lines == [1]

    def test_first_discount_gates_the_rest(self, engine):
        lines = [_line("100.00")]
        discounts = [
            _discount("HIGH", value="20", priority=10, is_stackable=False),
            _discount("LOW", value="10", priority=1, is_stackable=True),
        ]
        applied = engine.apply_discounts(lines, discounts)

        assert [a.code for a in applied] == ["HIGH"]
        assert lines[0].discount_amount == Decimal("20.00")

    def test_non_stackable_first_is_still_applied(self, engine):
        lines = [_line("100.00")]
        applied = engine.apply_discounts(lines, [_discount("ONLY", is_stackable=False)])
        assert [a.code for a in applied] == ["ONLY"]

    def test_stackable_discounts_combine(self, engine):
        lines = [_line("100.00")]
        discounts = [
            _discount("A", value="10", priority=5, is_stackable=True),
            _discount("B", value="10", priority=1, is_stackable=True),
        ]
        engine.apply_discounts(lines, discounts)
        assert lines[0].discount_amount == Decimal("20.00")

    def test_cascading_applies_to_remainder(self, engine):
        lines = [_line("100.00")]
        discounts = [
            _discount("A", value="10", priority=5, is_stackable=True),
            _discount("B", value="10", priority=1, is_stackable=True),
        ]
        engine.apply_discounts(lines, discounts, DiscountOptions(cascading=True))
        assert lines[0].discount_amount == Decimal("19.00")

    def test_usage_lines_can_be_excluded(self, engine):
        lines = [_line("10.00"), _line("45.00", ChargeType.USAGE)]
        engine.apply_discounts(
            lines, [_discount("TEN")], DiscountOptions(exclude_usage_charges=True)
        )
        assert lines[1].discount_amount == Decimal("0")
        assert lines[0].discount_amount == Decimal("1.00")


@pytest.mark.unit
class TestEligibility:
    def test_validity_window(self):
        discount = _discount(
            "WINDOW", valid_from=JAN_16 - timedelta(days=1), valid_to=JAN_16 + timedelta(days=1)
        )
        assert discount.is_eligible(JAN_16)
        assert not discount.is_eligible(JAN_16 + timedelta(days=2))

    def test_redemption_cap(self):
        assert not _discount("CAP", max_redemptions=1, current_redemptions=1).is_eligible(JAN_16)

    def test_plan_restriction(self):
        discount = _discount("PREMIUM", applicable_plan_ids=["plan-premium"])
        assert discount.is_eligible(JAN_16, "plan-premium")
        assert not discount.is_eligible(JAN_16, "plan-basic")

    def test_inactive(self):
        assert not _discount("OFF", is_active=False).is_eligible(JAN_16)


@pytest.mark.integration
class TestDiscountService:
    async def test_applies_eligible_and_counts_redemptions(self, async_db_session, engine):
        repository = DiscountRepository(async_db_session)
        await repository.save(_discount("TEN", max_redemptions=5))
        await repository.save(_discount("EXPIRED", valid_to=JAN_16 - timedelta(days=1)))
        service = DiscountService(repository, engine)

        lines = [_line("10.00")]
        applied = await service.apply_subscription_discounts(
            lines, ["disc-ten", "disc-expired"], "plan-premium", JAN_16
        )

        assert [a.code for a in applied] == ["TEN"]
        stored = await repository.find_by_code("TEN")
        assert stored.current_redemptions == 1
