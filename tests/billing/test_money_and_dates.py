"""Tests for money rounding, date arithmetic and error payloads."""

from datetime import UTC, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from reelstream.platform.billing.date_utils import add_months, add_years, days_between, ensure_utc
from reelstream.platform.billing.exceptions import (
    PlanChangeInProgressError,
    SubscriptionNotFoundError,
)
from reelstream.platform.billing.money_utils import MoneyHandler, format_money, round_amount

pytestmark = pytest.mark.unit


class TestMoney:
    def test_half_up_to_currency_precision(self):
        assert round_amount(Decimal("4.995")) == Decimal("5.00")
        assert round_amount(Decimal("9.6725")) == Decimal("9.67")
        assert round_amount(Decimal("100.5"), "JPY") == Decimal("101")

    def test_format(self):
        assert format_money(Decimal("1234.5")) == "$1,234.50"

    def test_unknown_currency(self):
        with pytest.raises(ValueError, match="Invalid currency code"):
            MoneyHandler(default_currency="XYZ")

    def test_unknown_locale_falls_back(self):
        assert MoneyHandler(default_locale="zz_ZZ").default_locale == "en_US"


class TestDates:
    def test_naive_datetimes_are_utc(self):
        assert ensure_utc(datetime(2025, 1, 16)) == datetime(2025, 1, 16, tzinfo=UTC)

    def test_aware_datetimes_are_converted(self):
        plus_two = timezone(timedelta(hours=2))
        assert ensure_utc(datetime(2025, 1, 16, 2, tzinfo=plus_two)) == datetime(
            2025, 1, 16, tzinfo=UTC
        )

    def test_days_between(self):
        start = datetime(2025, 1, 1, tzinfo=UTC)
        assert days_between(start, datetime(2025, 1, 31, tzinfo=UTC)) == 30
        assert days_between(datetime(2025, 1, 31, tzinfo=UTC), start) == -30

    def test_month_end_clamps(self):
        assert add_months(datetime(2025, 1, 31, tzinfo=UTC), 1) == datetime(2025, 2, 28, tzinfo=UTC)
        assert add_months(datetime(2025, 11, 15, tzinfo=UTC), 3) == datetime(2026, 2, 15, tzinfo=UTC)

    def test_leap_day(self):
        assert add_years(datetime(2024, 2, 29, tzinfo=UTC), 1) == datetime(2025, 2, 28, tzinfo=UTC)


class TestErrorPayloads:
    def test_not_found_payload(self):
        error = SubscriptionNotFoundError(subscription_id="sub-1", user_id="u1")

        assert error.to_dict() == {
            "error_code": "SUBSCRIPTION_NOT_FOUND",
            "message": "Subscription not found",
            "status_code": 404,
            "context": {"subscription_id": "sub-1", "user_id": "u1"},
            "recovery_hint": "Verify the subscription ID belongs to the requesting user",
        }

    def test_conflict_payload(self):
        error = PlanChangeInProgressError("sub-1", pending_request_id="req-1")

        assert error.status_code == 409
        assert error.to_dict()["context"]["pending_request_id"] == "req-1"
