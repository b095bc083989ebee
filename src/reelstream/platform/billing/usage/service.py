"""
Usage rate engine.

Records metered usage with a frozen multiplier, prices unbilled usage for a
period against the plan quota and tier table, and emits advisory
notifications when usage crosses quota thresholds. Notifications never
change what is billed.
"""

from collections import defaultdict
from collections.abc import Mapping, Sequence
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import uuid4

import structlog

from reelstream.platform.billing.core.enums import UsageType
from reelstream.platform.billing.date_utils import ensure_utc, utcnow
from reelstream.platform.billing.exceptions import (
    PlanNotFoundError,
    SubscriptionNotFoundError,
    UsageTrackingError,
)
from reelstream.platform.billing.money_utils import ZERO
from reelstream.platform.billing.subscriptions.models import Plan, Subscription
from reelstream.platform.billing.subscriptions.repository import (
    PlanRepository,
    SubscriptionRepository,
)
from reelstream.platform.billing.usage.models import UsageCharge, UsageRecord, UsageSummary
from reelstream.platform.billing.usage.pricing import (
    DEFAULT_USAGE_TIERS,
    calculate_tiered_charge,
    resolve_multiplier,
)
from reelstream.platform.billing.usage.repository import UsageRecordRepository
from reelstream.platform.events import EventBus, EventPriority

logger = structlog.get_logger(__name__)

QUOTA_THRESHOLD_EVENT = "usage.quota_threshold_reached"


class UsageService:
    def __init__(
        self,
        usage_repository: UsageRecordRepository,
        subscription_repository: SubscriptionRepository,
        plan_repository: PlanRepository,
        event_bus: EventBus,
        quota_thresholds: Sequence[int] = (75, 90, 100),
    ) -> None:
        self.usage_repository = usage_repository
        self.subscription_repository = subscription_repository
        self.plan_repository = plan_repository
        self.event_bus = event_bus
        self.quota_thresholds = sorted(quota_thresholds)

    async def _load(self, subscription_id: str, user_id: str) -> tuple[Subscription, Plan]:
        subscription = await self.subscription_repository.find_active_by_id(
            subscription_id, user_id
        )
        if subscription is None:
            raise SubscriptionNotFoundError(subscription_id=subscription_id, user_id=user_id)
        plan = await self.plan_repository.find_by_id(subscription.plan_id)
        if plan is None:
            raise PlanNotFoundError(plan_id=subscription.plan_id)
        return subscription, plan

    async def record_usage(
        self,
        subscription_id: str,
        user_id: str,
        usage_type: UsageType,
        quantity: Decimal,
        context: Mapping[str, Any] | None = None,
        recorded_at: datetime | None = None,
    ) -> UsageRecord:
        """Persist a usage event unbilled and check quota thresholds."""
        if quantity <= ZERO:
            raise UsageTrackingError(
                "Usage quantity must be positive",
                context={"usage_type": usage_type.value, "quantity": str(quantity)},
            )

        subscription, plan = await self._load(subscription_id, user_id)
        record = UsageRecord(
            id=str(uuid4()),
            subscription_id=subscription.id,
            user_id=subscription.user_id,
            usage_type=usage_type,
            quantity=quantity,
            multiplier=resolve_multiplier(usage_type, context),
            recorded_at=ensure_utc(recorded_at) if recorded_at else utcnow(),
            context=dict(context or {}),
        )
        await self.usage_repository.save(record)

        logger.info(
            "usage.recorded",
            subscription_id=subscription.id,
            usage_type=usage_type.value,
            quantity=str(quantity),
            multiplier=str(record.multiplier),
        )

        await self._check_quota(subscription, plan, record)
        return record

    async def _check_quota(
        self, subscription: Subscription, plan: Plan, record: UsageRecord
    ) -> None:
        quota = plan.included_quantity(record.usage_type)
        if quota <= ZERO or subscription.current_period_start is None:
            return

        used_after = await self.usage_repository.total_weighted_quantity(
            subscription.id, record.usage_type.value, subscription.current_period_start
        )
        used_before = used_after - record.weighted_quantity

        for threshold in self.quota_thresholds:
            limit = quota * Decimal(threshold) / Decimal(100)
            if not used_before < limit <= used_after:
                continue
            logger.warning(
                "usage.quota.threshold_reached",
                subscription_id=subscription.id,
                usage_type=record.usage_type.value,
                threshold=threshold,
                used=str(used_after),
                quota=str(quota),
            )
            await self.event_bus.publish(
                event_type=QUOTA_THRESHOLD_EVENT,
                payload={
                    "subscription_id": subscription.id,
                    "usage_type": record.usage_type.value,
                    "threshold_percent": threshold,
                    "used": str(used_after),
                    "quota": str(quota),
                },
                metadata={"source": "billing.usage", "user_id": subscription.user_id},
                priority=EventPriority.HIGH if threshold >= 100 else EventPriority.NORMAL,
            )

    async def calculate_charges(
        self,
        subscription_id: str,
        plan: Plan,
        period_start: datetime,
        period_end: datetime,
    ) -> list[UsageCharge]:
        """Price the unbilled usage of ``[period_start, period_end)``.

        Usage fully inside the included quota produces no charge.
        """
        records = await self.usage_repository.find_in_period(
            subscription_id, period_start, period_end
        )
        by_type: dict[UsageType, list[UsageRecord]] = defaultdict(list)
        for record in records:
            by_type[record.usage_type].append(record)

        charges: list[UsageCharge] = []
        for usage_type in UsageType:
            typed = by_type.get(usage_type)
            if not typed:
                continue
            charge = self._price(usage_type, typed, plan)
            if charge is not None:
                charges.append(charge)

        logger.debug(
            "usage.charges.calculated",
            subscription_id=subscription_id,
            records=len(records),
            charges=len(charges),
        )
        return charges

    def _price(
        self, usage_type: UsageType, records: list[UsageRecord], plan: Plan
    ) -> UsageCharge | None:
        total = sum((r.weighted_quantity for r in records), ZERO)
        included = plan.included_quantity(usage_type)
        tiers = plan.usage_tiers.get(usage_type) or DEFAULT_USAGE_TIERS[usage_type]
        amount, consumed = calculate_tiered_charge(total, included, tiers, plan.currency)
        if amount <= ZERO:
            return None
        billable = max(total - included, ZERO)
        return UsageCharge(
            usage_type=usage_type,
            quantity=total,
            included_quantity=included,
            billable_quantity=billable,
            amount=amount,
            tiers=consumed,
            description=f"{usage_type.label} - {billable:.2f} units",
            record_ids=[r.id for r in records],
        )

    async def mark_billed(self, charges: Sequence[UsageCharge], invoice_id: str) -> int:
        """Stamp the priced usage records with the invoice that billed them."""
        record_ids = [record_id for charge in charges for record_id in charge.record_ids]
        return await self.usage_repository.mark_billed(record_ids, invoice_id, utcnow())

    async def get_usage_summary(self, subscription_id: str, user_id: str) -> list[UsageSummary]:
        """Usage per type for the current period, billed or not."""
        subscription, plan = await self._load(subscription_id, user_id)
        if subscription.current_period_start is None:
            return []

        period_end = subscription.current_period_end or utcnow()
        records = await self.usage_repository.find_in_period(
            subscription.id, subscription.current_period_start, period_end, unbilled_only=False
        )

        summaries = []
        for usage_type in UsageType:
            typed = [r for r in records if r.usage_type == usage_type]
            if not typed:
                continue
            total = sum((r.weighted_quantity for r in typed), ZERO)
            included = plan.included_quantity(usage_type)
            tiers = plan.usage_tiers.get(usage_type) or DEFAULT_USAGE_TIERS[usage_type]
            cost, _ = calculate_tiered_charge(total, included, tiers, plan.currency)
            summaries.append(
                UsageSummary(
                    subscription_id=subscription.id,
                    usage_type=usage_type,
                    total_quantity=total,
                    included_quota=included,
                    billable_quantity=max(total - included, ZERO),
                    estimated_cost=cost,
                    quota_used_percent=(
                        (total / included * 100).quantize(Decimal("0.01")) if included else None
                    ),
                )
            )
        return summaries
