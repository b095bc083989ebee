"""
Discount persistence.
"""

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from reelstream.platform.billing.core.entities import BillingDiscountTable
from reelstream.platform.billing.discounts.models import Discount


class DiscountRepository:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def find_by_id(self, discount_id: str) -> Discount | None:
        entity = await self.db.get(BillingDiscountTable, discount_id)
        return Discount.model_validate(entity) if entity else None

    async def find_by_code(self, code: str) -> Discount | None:
        stmt = select(BillingDiscountTable).where(BillingDiscountTable.code == code)
        entity = (await self.db.execute(stmt)).scalar_one_or_none()
        return Discount.model_validate(entity) if entity else None

    async def find_by_ids(self, discount_ids: list[str]) -> list[Discount]:
        if not discount_ids:
            return []
        stmt = select(BillingDiscountTable).where(BillingDiscountTable.id.in_(discount_ids))
        result = await self.db.execute(stmt)
        return [Discount.model_validate(row) for row in result.scalars().all()]

    async def increment_redemptions(self, discount_id: str) -> None:
        stmt = (
            update(BillingDiscountTable)
            .where(BillingDiscountTable.id == discount_id)
            .values(current_redemptions=BillingDiscountTable.current_redemptions + 1)
        )
        await self.db.execute(stmt)

    async def save(self, discount: Discount) -> None:
        entity = await self.db.get(BillingDiscountTable, discount.id)
        if entity is None:
            entity = BillingDiscountTable(id=discount.id)
            self.db.add(entity)
        for field in (
            "code",
            "name",
            "value",
            "currency",
            "max_redemptions",
            "current_redemptions",
            "valid_from",
            "valid_to",
            "is_stackable",
            "priority",
            "is_active",
        ):
            setattr(entity, field, getattr(discount, field))
        entity.discount_type = discount.discount_type.value
        entity.applicable_plan_ids = list(discount.applicable_plan_ids)
        await self.db.flush()
