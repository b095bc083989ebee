"""Concurrent plan changes for one subscription on independent sessions."""

import asyncio
from datetime import UTC, datetime
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from reelstream.platform.billing.core.entities import BillingPlanChangeRequestTable
from reelstream.platform.billing.core.enums import PlanChangeStatus, PlanInterval
from reelstream.platform.billing.dependencies import build_plan_change_service
from reelstream.platform.billing.exceptions import PlanChangeInProgressError
from reelstream.platform.billing.plan_change.models import ChangePlanOptions, ChangePlanResult
from reelstream.platform.billing.plan_change.producer import job_id_for
from reelstream.platform.billing.subscriptions.models import Charge, Plan
from reelstream.platform.billing.subscriptions.repository import (
    ChargeRepository,
    PlanRepository,
    SubscriptionRepository,
)
from reelstream.platform.db import Base

pytestmark = pytest.mark.integration

JAN_16 = datetime(2025, 1, 16, tzinfo=UTC)


class SharedQueue:
    """Job channel shared by both services."""

    def __init__(self) -> None:
        self.published = []

    async def publish(self, event) -> str:
        self.published.append(event)
        return job_id_for(event.request_id)


@pytest_asyncio.fixture
async def file_engine(tmp_path):
    """File-backed engine so each session gets its own connection."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'billing.db'}",
        connect_args={"timeout": 15},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(file_engine, basic_plan, premium_plan, subscription):
    maker = async_sessionmaker(file_engine, class_=AsyncSession, expire_on_commit=False)
    family_plan = Plan(
        id="plan-family", name="Family", amount=Decimal("24.99"), interval=PlanInterval.MONTH
    )
    async with maker() as session:
        plans = PlanRepository(session)
        for plan in (basic_plan, premium_plan, family_plan):
            await plans.save(plan)
        await SubscriptionRepository(session).save(subscription)
        await ChargeRepository(session).save(
            Charge(
                id="charge-1",
                subscription_id=subscription.id,
                user_id=subscription.user_id,
                description="Basic (January)",
                amount=Decimal("9.99"),
                period_start=subscription.current_period_start,
                period_end=subscription.current_period_end,
            )
        )
        await session.commit()
    return maker


async def test_only_one_of_two_concurrent_changes_is_accepted(
    session_maker, subscription, event_bus, billing_config
):
    queue = SharedQueue()

    async def change(new_plan_id: str):
        async with session_maker() as session:
            service = build_plan_change_service(session, queue, event_bus, billing_config)
            return await service.change_plan(
                subscription.id,
                subscription.user_id,
                new_plan_id,
                ChangePlanOptions(effective_date=JAN_16),
            )

    results = await asyncio.gather(
        change("plan-premium"), change("plan-family"), return_exceptions=True
    )

    accepted = [r for r in results if isinstance(r, ChangePlanResult)]
    rejected = [r for r in results if isinstance(r, PlanChangeInProgressError)]
    assert len(accepted) == 1
    assert len(rejected) == 1
    assert rejected[0].context["pending_request_id"] == accepted[0].request_id

    async with session_maker() as session:
        pending = await session.scalar(
            select(func.count())
            .select_from(BillingPlanChangeRequestTable)
            .where(
                BillingPlanChangeRequestTable.subscription_id == subscription.id,
                BillingPlanChangeRequestTable.status == PlanChangeStatus.PENDING_INVOICE.value,
            )
        )
        stored = await SubscriptionRepository(session).find_by_id(subscription.id)

    assert pending == 1
    assert len(queue.published) == 1
    assert queue.published[0].request_id == accepted[0].request_id
    assert stored.plan_id == accepted[0].new_plan_id
