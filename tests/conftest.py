"""
Global pytest configuration and fixtures for the billing tests.

Every async test gets a fresh in-memory SQLite database built from the
declarative metadata. Seed fixtures commit their rows, because the plan
change services commit and roll back the session themselves.
"""

import asyncio
import os
from datetime import UTC, datetime
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Keep the settings away from any developer .env database
os.environ.setdefault("DATABASE__URL", "sqlite:///:memory:")
os.environ.setdefault("OBSERVABILITY__LOG_FORMAT", "console")

from reelstream.platform.billing.config import BillingConfig, set_billing_config  # noqa: E402
from reelstream.platform.billing.core import entities  # noqa: E402,F401
from reelstream.platform.billing.core.entities import BillingAddOnTable  # noqa: E402
from reelstream.platform.billing.core.enums import (  # noqa: E402
    PlanInterval,
    SubscriptionStatus,
    UsageType,
)
from reelstream.platform.billing.plan_change.models import PlanChangeInvoiceEvent  # noqa: E402
from reelstream.platform.billing.plan_change.producer import job_id_for  # noqa: E402
from reelstream.platform.billing.subscriptions.models import (  # noqa: E402
    Charge,
    Plan,
    Subscription,
    SubscriptionAddOn,
)
from reelstream.platform.billing.subscriptions.repository import (  # noqa: E402
    ChargeRepository,
    PlanRepository,
    SubscriptionRepository,
)
from reelstream.platform.billing.usage.models import UsageTier  # noqa: E402
from reelstream.platform.db import Base  # noqa: E402
from reelstream.platform.events import EventBus, reset_event_bus  # noqa: E402

USER_ID = "user-12345678-abcd"
PERIOD_START = datetime(2025, 1, 1, tzinfo=UTC)
PERIOD_END = datetime(2025, 1, 31, tzinfo=UTC)
MID_CYCLE = datetime(2025, 1, 16, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def async_db_engine():
    """In-memory SQLite engine shared by every session of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()
        await asyncio.sleep(0)


@pytest_asyncio.fixture
async def async_db_session(async_db_engine):
    """Async database session."""
    session_maker = async_sessionmaker(async_db_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()
            await session.close()


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


class RecordingInvoiceQueue:
    """Job channel that keeps published jobs in memory."""

    def __init__(self) -> None:
        self.published: list[PlanChangeInvoiceEvent] = []

    async def publish(self, event: PlanChangeInvoiceEvent) -> str:
        self.published.append(event)
        return job_id_for(event.request_id)


@pytest.fixture
def invoice_queue() -> RecordingInvoiceQueue:
    return RecordingInvoiceQueue()


@pytest.fixture
def event_bus():
    reset_event_bus()
    bus = EventBus()
    yield bus
    reset_event_bus()


@pytest.fixture
def published_events(event_bus):
    """Every event delivered on ``event_bus`` during the test."""
    received = []

    async def _collect(event):
        received.append(event)

    event_bus.subscribe("*", _collect)
    return received


@pytest.fixture
def billing_config():
    config = BillingConfig()
    set_billing_config(config)
    yield config
    set_billing_config(None)


# ---------------------------------------------------------------------------
# Catalog and subscriptions
# ---------------------------------------------------------------------------


@pytest.fixture
def basic_plan() -> Plan:
    return Plan(
        id="plan-basic",
        name="Basic",
        amount=Decimal("9.99"),
        interval=PlanInterval.MONTH,
        allowed_add_on_ids=["addon-hd", "addon-offline"],
        included_usage={UsageType.STREAMING_HOURS: Decimal("100")},
        usage_tiers={
            UsageType.STREAMING_HOURS: [
                UsageTier(from_quantity=0, up_to=500, unit_price=Decimal("0.10")),
                UsageTier(from_quantity=500, up_to=None, unit_price=Decimal("0.05")),
            ]
        },
    )


@pytest.fixture
def premium_plan() -> Plan:
    return Plan(
        id="plan-premium",
        name="Premium",
        amount=Decimal("19.99"),
        interval=PlanInterval.MONTH,
        allowed_add_on_ids=["addon-hd"],
        included_usage={UsageType.STREAMING_HOURS: Decimal("500")},
    )


@pytest.fixture
def subscription() -> Subscription:
    """Active Basic subscription on a 30-day period."""
    return Subscription(
        id="sub-1",
        user_id=USER_ID,
        plan_id="plan-basic",
        status=SubscriptionStatus.ACTIVE,
        current_period_start=PERIOD_START,
        current_period_end=PERIOD_END,
    )


@pytest.fixture
def offline_add_on() -> SubscriptionAddOn:
    return SubscriptionAddOn(
        id="sub-addon-1",
        add_on_id="addon-offline",
        name="Offline downloads",
        amount=Decimal("3.00"),
        start_date=PERIOD_START,
    )


@pytest_asyncio.fixture
async def seeded_billing(async_db_session, basic_plan, premium_plan, subscription):
    """Plans, the Basic subscription and its period charge, committed."""
    plans = PlanRepository(async_db_session)
    await plans.save(basic_plan)
    await plans.save(premium_plan)
    for add_on_id, name, amount in (
        ("addon-hd", "HD streaming", Decimal("2.00")),
        ("addon-offline", "Offline downloads", Decimal("3.00")),
    ):
        async_db_session.add(BillingAddOnTable(id=add_on_id, name=name, amount=amount))
    await SubscriptionRepository(async_db_session).save(subscription)
    await ChargeRepository(async_db_session).save(
        Charge(
            id="charge-1",
            subscription_id=subscription.id,
            user_id=subscription.user_id,
            description="Basic (January)",
            amount=Decimal("9.99"),
            period_start=PERIOD_START,
            period_end=PERIOD_END,
        )
    )
    await async_db_session.commit()
    return subscription
