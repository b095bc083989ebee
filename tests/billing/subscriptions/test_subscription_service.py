"""Tests for subscription lifecycle use cases against the database."""

from datetime import UTC, datetime

import pytest

from reelstream.platform.billing.core.enums import PlanInterval, SubscriptionStatus
from reelstream.platform.billing.dependencies import build_subscription_service
from reelstream.platform.billing.exceptions import (
    AddOnNotAllowedError,
    AddOnNotFoundError,
    SubscriptionNotFoundError,
)
from reelstream.platform.billing.subscriptions.repository import SubscriptionRepository
from reelstream.platform.billing.subscriptions.service import period_end_for

pytestmark = pytest.mark.integration


@pytest.fixture
def service(async_db_session, event_bus):
    return build_subscription_service(async_db_session, event_bus)


class TestSubscriptionService:
    async def test_add_add_on_persists_and_publishes(
        self, service, seeded_billing, async_db_session, published_events
    ):
        await service.add_add_on(seeded_billing.id, seeded_billing.user_id, "addon-hd", quantity=2)

        stored = await SubscriptionRepository(async_db_session).find_by_id(seeded_billing.id)
        assert [(a.add_on_id, a.quantity) for a in stored.active_add_ons] == [("addon-hd", 2)]
        assert [e.event_type for e in published_events] == ["subscription.add_on_added"]

    async def test_add_unknown_add_on(self, service, seeded_billing):
        with pytest.raises(AddOnNotFoundError):
            await service.add_add_on(seeded_billing.id, seeded_billing.user_id, "addon-missing")

    async def test_add_on_not_on_plan(self, service, seeded_billing, async_db_session):
        subscription = await SubscriptionRepository(async_db_session).find_by_id(
            seeded_billing.id
        )
        subscription.plan_id = "plan-premium"
        await SubscriptionRepository(async_db_session).save(subscription)
        await async_db_session.commit()

        with pytest.raises(AddOnNotAllowedError):
            await service.add_add_on(seeded_billing.id, seeded_billing.user_id, "addon-offline")

    async def test_remove_add_on(self, service, seeded_billing, async_db_session):
        await service.add_add_on(seeded_billing.id, seeded_billing.user_id, "addon-hd")
        await service.remove_add_on(seeded_billing.id, seeded_billing.user_id, "addon-hd")

        stored = await SubscriptionRepository(async_db_session).find_by_id(seeded_billing.id)
        assert stored.active_add_ons == []
        assert stored.add_ons[0].end_date is not None

    async def test_cancel_now_and_reactivate(
        self, service, seeded_billing, async_db_session, published_events
    ):
        await service.cancel(seeded_billing.id, seeded_billing.user_id)
        stored = await SubscriptionRepository(async_db_session).find_by_id(seeded_billing.id)
        assert stored.status == SubscriptionStatus.INACTIVE

        start = datetime(2025, 3, 1, tzinfo=UTC)
        activated = await service.activate(seeded_billing.id, seeded_billing.user_id, period_start=start)

        assert activated.is_active
        assert activated.current_period_end == datetime(2025, 4, 1, tzinfo=UTC)
        assert [e.event_type for e in published_events] == [
            "subscription.cancelled",
            "subscription.activated",
        ]

    async def test_other_users_subscription_is_not_found(self, service, seeded_billing):
        with pytest.raises(SubscriptionNotFoundError):
            await service.cancel(seeded_billing.id, "someone-else")


def test_period_end_for_intervals():
    start = datetime(2025, 1, 31, tzinfo=UTC)
    assert period_end_for(PlanInterval.DAY, start) == datetime(2025, 2, 1, tzinfo=UTC)
    assert period_end_for(PlanInterval.WEEK, start) == datetime(2025, 2, 7, tzinfo=UTC)
    assert period_end_for(PlanInterval.MONTH, start) == datetime(2025, 2, 28, tzinfo=UTC)
    assert period_end_for(PlanInterval.YEAR, start) == datetime(2026, 1, 31, tzinfo=UTC)
