"""Tests for add-on migration during plan changes."""

from datetime import UTC, datetime
from decimal import Decimal

import pytest

from reelstream.platform.billing.subscriptions.addons import AddOnMigrator
from reelstream.platform.billing.subscriptions.models import SubscriptionAddOn
from reelstream.platform.billing.subscriptions.proration import ProrationCalculator

pytestmark = pytest.mark.unit

JAN_1 = datetime(2025, 1, 1, tzinfo=UTC)
JAN_16 = datetime(2025, 1, 16, tzinfo=UTC)
JAN_31 = datetime(2025, 1, 31, tzinfo=UTC)


@pytest.fixture
def migrator() -> AddOnMigrator:
    return AddOnMigrator(ProrationCalculator("USD"))


@pytest.fixture
def hd_add_on() -> SubscriptionAddOn:
    return SubscriptionAddOn(
        id="sub-addon-2",
        add_on_id="addon-hd",
        name="HD streaming",
        amount=Decimal("2.00"),
        start_date=JAN_1,
    )


class TestAddOnMigrator:
    def test_partitions_by_allowed_ids(self, migrator, hd_add_on, offline_add_on):
        result = migrator.migrate([hd_add_on, offline_add_on], ["addon-hd"], JAN_16, JAN_31)

        assert [a.add_on_id for a in result.kept] == ["addon-hd"]
        assert result.removed_add_on_ids == ["addon-offline"]
        assert result.total_credit == Decimal("1.50")

    def test_removed_add_ons_are_ended_not_deleted(self, migrator, hd_add_on, offline_add_on):
        migrator.migrate([hd_add_on, offline_add_on], ["addon-hd"], JAN_16, JAN_31)

        assert offline_add_on.end_date == JAN_16
        assert not offline_add_on.is_active
        assert hd_add_on.end_date is None

    def test_unknown_period_end_uses_estimate(self, migrator, offline_add_on):
        result = migrator.migrate([offline_add_on], [], JAN_16)

        # estimated end is 30 days after the change: 30 unused of 45 days
        assert result.total_credit == Decimal("2.00")

    def test_estimate_length_is_configurable(self, offline_add_on):
        migrator = AddOnMigrator(ProrationCalculator("USD"), estimated_period_days=15)
        result = migrator.migrate([offline_add_on], [], JAN_16)

        # 15 unused of 30 days
        assert result.total_credit == Decimal("1.50")

    def test_ended_add_ons_are_ignored(self, migrator, offline_add_on):
        offline_add_on.end_date = JAN_1
        result = migrator.migrate([offline_add_on], [], JAN_16, JAN_31)

        assert result.kept == []
        assert result.removed == []
        assert result.total_credit == Decimal("0")
