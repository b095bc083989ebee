"""
Subscription, plan, add-on and charge persistence.
"""

from datetime import datetime

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from reelstream.platform.billing.core.entities import (
    BillingAddOnTable,
    BillingChargeTable,
    BillingPlanTable,
    BillingSubscriptionAddOnTable,
    BillingSubscriptionTable,
)
from reelstream.platform.billing.core.enums import SubscriptionStatus
from reelstream.platform.billing.subscriptions.models import (
    AddOn,
    Charge,
    Plan,
    Subscription,
)


class PlanRepository:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def find_by_id(self, plan_id: str) -> Plan | None:
        entity = await self.db.get(BillingPlanTable, plan_id)
        return Plan.model_validate(entity) if entity else None

    async def save(self, plan: Plan) -> None:
        entity = await self.db.get(BillingPlanTable, plan.id)
        if entity is None:
            entity = BillingPlanTable(id=plan.id)
            self.db.add(entity)
        entity.name = plan.name
        entity.amount = plan.amount
        entity.currency = plan.currency
        entity.interval = plan.interval.value
        entity.allowed_add_on_ids = list(plan.allowed_add_on_ids)
        entity.included_usage = {k.value: str(v) for k, v in plan.included_usage.items()}
        entity.usage_tiers = {
            k.value: [t.model_dump(mode="json") for t in tiers]
            for k, tiers in plan.usage_tiers.items()
        }
        entity.is_active = plan.is_active
        await self.db.flush()


class AddOnRepository:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def find_by_id(self, add_on_id: str) -> AddOn | None:
        entity = await self.db.get(BillingAddOnTable, add_on_id)
        return AddOn.model_validate(entity) if entity else None


class SubscriptionRepository:
    """Loads and stores the subscription aggregate with its add-ons."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def find_by_id(self, subscription_id: str, user_id: str | None = None) -> Subscription | None:
        stmt = select(BillingSubscriptionTable).where(
            BillingSubscriptionTable.id == subscription_id
        )
        if user_id is not None:
            stmt = stmt.where(BillingSubscriptionTable.user_id == user_id)
        entity = (await self.db.execute(stmt)).scalar_one_or_none()
        return Subscription.model_validate(entity) if entity else None

    async def find_active_by_id(
        self, subscription_id: str, user_id: str, for_update: bool = False
    ) -> Subscription | None:
        """Active subscription owned by the user. ``for_update`` row-locks it until commit."""
        stmt = select(BillingSubscriptionTable).where(
            and_(
                BillingSubscriptionTable.id == subscription_id,
                BillingSubscriptionTable.user_id == user_id,
                BillingSubscriptionTable.status == SubscriptionStatus.ACTIVE.value,
            )
        )
        if for_update:
            stmt = stmt.with_for_update()
        entity = (await self.db.execute(stmt)).scalar_one_or_none()
        return Subscription.model_validate(entity) if entity else None

    async def save(self, subscription: Subscription) -> None:
        """Upsert the aggregate. Identity fields of an existing row are never rewritten."""
        entity = await self.db.get(BillingSubscriptionTable, subscription.id)
        if entity is None:
            entity = BillingSubscriptionTable(
                id=subscription.id, user_id=subscription.user_id, add_ons=[]
            )
            self.db.add(entity)

        entity.plan_id = subscription.plan_id
        entity.status = subscription.status.value
        entity.current_period_start = subscription.current_period_start
        entity.current_period_end = subscription.current_period_end
        entity.cancel_at_period_end = subscription.cancel_at_period_end
        entity.cancelled_at = subscription.cancelled_at
        entity.trial_end = subscription.trial_end
        entity.billing_address = (
            subscription.billing_address.model_dump() if subscription.billing_address else None
        )
        entity.discount_ids = list(subscription.discount_ids)

        rows = {row.id: row for row in entity.add_ons}
        for add_on in subscription.add_ons:
            row = rows.get(add_on.id)
            if row is None:
                entity.add_ons.append(
                    BillingSubscriptionAddOnTable(
                        id=add_on.id,
                        add_on_id=add_on.add_on_id,
                        name=add_on.name,
                        amount=add_on.amount,
                        currency=add_on.currency,
                        quantity=add_on.quantity,
                        start_date=add_on.start_date,
                        end_date=add_on.end_date,
                    )
                )
            else:
                row.quantity = add_on.quantity
                row.end_date = add_on.end_date

        await self.db.flush()


class ChargeRepository:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def find_for_period(
        self, subscription_id: str, period_start: datetime, period_end: datetime
    ) -> list[Charge]:
        """Charges whose billing period starts inside ``[period_start, period_end)``."""
        stmt = (
            select(BillingChargeTable)
            .where(
                and_(
                    BillingChargeTable.subscription_id == subscription_id,
                    BillingChargeTable.period_start >= period_start,
                    BillingChargeTable.period_start < period_end,
                )
            )
            .order_by(BillingChargeTable.created_at)
        )
        result = await self.db.execute(stmt)
        return [Charge.model_validate(row) for row in result.scalars().all()]

    async def save(self, charge: Charge) -> None:
        self.db.add(
            BillingChargeTable(
                id=charge.id,
                subscription_id=charge.subscription_id,
                user_id=charge.user_id,
                description=charge.description,
                charge_type=charge.charge_type.value,
                amount=charge.amount,
                tax_amount=charge.tax_amount,
                currency=charge.currency,
                period_start=charge.period_start,
                period_end=charge.period_end,
                invoice_id=charge.invoice_id,
            )
        )
        await self.db.flush()
