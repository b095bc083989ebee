"""
Usage record persistence.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from reelstream.platform.billing.core.entities import BillingUsageRecordTable
from reelstream.platform.billing.usage.models import UsageRecord


def _to_model(row: BillingUsageRecordTable) -> UsageRecord:
    return UsageRecord(
        id=row.id,
        subscription_id=row.subscription_id,
        user_id=row.user_id,
        usage_type=row.usage_type,
        quantity=row.quantity,
        multiplier=row.multiplier,
        recorded_at=row.recorded_at,
        context=row.metadata_json or {},
        invoice_id=row.invoice_id,
        billed_at=row.billed_at,
    )


class UsageRecordRepository:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def save(self, record: UsageRecord) -> None:
        self.db.add(
            BillingUsageRecordTable(
                id=record.id,
                subscription_id=record.subscription_id,
                user_id=record.user_id,
                usage_type=record.usage_type.value,
                quantity=record.quantity,
                multiplier=record.multiplier,
                recorded_at=record.recorded_at,
                metadata_json=dict(record.context),
                invoice_id=record.invoice_id,
                billed_at=record.billed_at,
            )
        )
        await self.db.flush()

    async def find_in_period(
        self,
        subscription_id: str,
        period_start: datetime,
        period_end: datetime,
        unbilled_only: bool = True,
    ) -> list[UsageRecord]:
        conditions = [
            BillingUsageRecordTable.subscription_id == subscription_id,
            BillingUsageRecordTable.recorded_at >= period_start,
            BillingUsageRecordTable.recorded_at < period_end,
        ]
        if unbilled_only:
            conditions.append(BillingUsageRecordTable.invoice_id.is_(None))
        stmt = (
            select(BillingUsageRecordTable)
            .where(and_(*conditions))
            .order_by(BillingUsageRecordTable.recorded_at)
        )
        result = await self.db.execute(stmt)
        return [_to_model(row) for row in result.scalars().all()]

    async def mark_billed(self, record_ids: list[str], invoice_id: str, billed_at: datetime) -> int:
        if not record_ids:
            return 0
        stmt = (
            update(BillingUsageRecordTable)
            .where(BillingUsageRecordTable.id.in_(record_ids))
            .values(invoice_id=invoice_id, billed_at=billed_at)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount or 0

    async def total_weighted_quantity(
        self, subscription_id: str, usage_type: str, since: datetime
    ) -> Decimal:
        """Sum of ``quantity * multiplier`` recorded since ``since``, billed or not."""
        stmt = select(
            func.coalesce(
                func.sum(BillingUsageRecordTable.quantity * BillingUsageRecordTable.multiplier), 0
            )
        ).where(
            and_(
                BillingUsageRecordTable.subscription_id == subscription_id,
                BillingUsageRecordTable.usage_type == usage_type,
                BillingUsageRecordTable.recorded_at >= since,
            )
        )
        total = (await self.db.execute(stmt)).scalar_one()
        return Decimal(str(total)).quantize(Decimal("0.0001"))
