"""
Credit persistence.
"""

from datetime import datetime

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from reelstream.platform.billing.core.entities import BillingCreditTable
from reelstream.platform.billing.credits.models import Credit


class CreditRepository:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def find_available(self, user_id: str, at: datetime) -> list[Credit]:
        stmt = select(BillingCreditTable).where(
            and_(
                BillingCreditTable.user_id == user_id,
                BillingCreditTable.remaining_amount > 0,
                or_(BillingCreditTable.expires_at.is_(None), BillingCreditTable.expires_at > at),
            )
        )
        result = await self.db.execute(stmt)
        return [Credit.model_validate(row) for row in result.scalars().all()]

    async def save(self, credit: Credit) -> None:
        entity = await self.db.get(BillingCreditTable, credit.id)
        if entity is None:
            self.db.add(
                BillingCreditTable(
                    id=credit.id,
                    user_id=credit.user_id,
                    credit_type=credit.credit_type.value,
                    amount=credit.amount,
                    remaining_amount=credit.remaining_amount,
                    currency=credit.currency,
                    description=credit.description,
                    expires_at=credit.expires_at,
                    applied_to_invoice_id=credit.applied_to_invoice_id,
                    created_at=credit.created_at,
                )
            )
        else:
            entity.remaining_amount = credit.remaining_amount
            entity.applied_to_invoice_id = credit.applied_to_invoice_id
        await self.db.flush()
