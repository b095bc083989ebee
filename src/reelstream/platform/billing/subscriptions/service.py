"""
Subscription lifecycle use cases.

Each use case loads the aggregate, applies one behavior, commits, and only
then publishes the domain events the behavior returned.
"""

from collections.abc import Sequence
from datetime import datetime
from uuid import uuid4

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from reelstream.platform.billing.core.enums import PlanInterval
from reelstream.platform.billing.date_utils import add_days, add_months, add_years, ensure_utc, utcnow
from reelstream.platform.billing.exceptions import (
    AddOnNotFoundError,
    PlanNotFoundError,
    SubscriptionNotFoundError,
)
from reelstream.platform.billing.subscriptions.events import DomainEvent
from reelstream.platform.billing.subscriptions.models import Plan, Subscription, SubscriptionAddOn
from reelstream.platform.billing.subscriptions.repository import (
    AddOnRepository,
    PlanRepository,
    SubscriptionRepository,
)
from reelstream.platform.events import EventBus

logger = structlog.get_logger(__name__)


def period_end_for(interval: PlanInterval, start: datetime) -> datetime:
    if interval == PlanInterval.DAY:
        return add_days(start, 1)
    if interval == PlanInterval.WEEK:
        return add_days(start, 7)
    if interval == PlanInterval.MONTH:
        return add_months(start, 1)
    return add_years(start, 1)


class SubscriptionService:
    def __init__(
        self,
        db: AsyncSession,
        subscription_repository: SubscriptionRepository,
        plan_repository: PlanRepository,
        add_on_repository: AddOnRepository,
        event_bus: EventBus,
    ) -> None:
        self.db = db
        self.subscription_repository = subscription_repository
        self.plan_repository = plan_repository
        self.add_on_repository = add_on_repository
        self.event_bus = event_bus

    async def _get(self, subscription_id: str, user_id: str) -> Subscription:
        subscription = await self.subscription_repository.find_by_id(subscription_id, user_id)
        if subscription is None:
            raise SubscriptionNotFoundError(subscription_id=subscription_id, user_id=user_id)
        return subscription

    async def _get_plan(self, plan_id: str) -> Plan:
        plan = await self.plan_repository.find_by_id(plan_id)
        if plan is None:
            raise PlanNotFoundError(plan_id=plan_id)
        return plan

    async def _commit(
        self, subscription: Subscription, events: Sequence[DomainEvent], action: str
    ) -> Subscription:
        try:
            await self.subscription_repository.save(subscription)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.event_bus.publish_all(
            events,
            metadata={
                "source": "billing.subscriptions",
                "user_id": subscription.user_id,
                "aggregate_id": subscription.id,
            },
        )
        logger.info(
            f"subscription.{action}",
            subscription_id=subscription.id,
            user_id=subscription.user_id,
            plan_id=subscription.plan_id,
        )
        return subscription

    async def activate(
        self,
        subscription_id: str,
        user_id: str,
        period_start: datetime | None = None,
        period_end: datetime | None = None,
    ) -> Subscription:
        """Activate and open a billing period, one plan interval long by default."""
        subscription = await self._get(subscription_id, user_id)
        plan = await self._get_plan(subscription.plan_id)

        start = ensure_utc(period_start) if period_start else utcnow()
        end = ensure_utc(period_end) if period_end else period_end_for(plan.interval, start)
        events = subscription.activate(start, end)
        return await self._commit(subscription, events, "activated")

    async def cancel(
        self, subscription_id: str, user_id: str, at_period_end: bool = False
    ) -> Subscription:
        subscription = await self._get(subscription_id, user_id)
        events = subscription.cancel(utcnow(), at_period_end=at_period_end)
        return await self._commit(subscription, events, "cancelled")

    async def add_add_on(
        self, subscription_id: str, user_id: str, add_on_id: str, quantity: int = 1
    ) -> Subscription:
        subscription = await self._get(subscription_id, user_id)
        plan = await self._get_plan(subscription.plan_id)
        add_on = await self.add_on_repository.find_by_id(add_on_id)
        if add_on is None or not add_on.is_active:
            raise AddOnNotFoundError(f"Add-on {add_on_id} not found", add_on_id=add_on_id)

        events = subscription.add_add_on(
            SubscriptionAddOn(
                id=str(uuid4()),
                add_on_id=add_on.id,
                name=add_on.name,
                amount=add_on.amount,
                currency=add_on.currency,
                quantity=quantity,
                start_date=utcnow(),
            ),
            plan,
        )
        return await self._commit(subscription, events, "add_on_added")

    async def remove_add_on(self, subscription_id: str, user_id: str, add_on_id: str) -> Subscription:
        subscription = await self._get(subscription_id, user_id)
        events = subscription.remove_add_on(add_on_id, utcnow())
        return await self._commit(subscription, events, "add_on_removed")
