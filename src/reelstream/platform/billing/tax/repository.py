"""
Tax rate persistence.
"""

from datetime import datetime

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from reelstream.platform.billing.core.entities import BillingTaxRateTable
from reelstream.platform.billing.tax.models import TaxRate


class TaxRateRepository:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def find_rate(
        self, country: str, state: str | None, effective_date: datetime
    ) -> TaxRate | None:
        """Most recent active rate for the region at ``effective_date``.

        A state-specific rate wins over a country-wide one.
        """
        region = BillingTaxRateTable.state.is_(None)
        if state:
            region = or_(BillingTaxRateTable.state == state, region)

        stmt = (
            select(BillingTaxRateTable)
            .where(
                and_(
                    BillingTaxRateTable.country == country,
                    region,
                    BillingTaxRateTable.is_active.is_(True),
                    BillingTaxRateTable.effective_from <= effective_date,
                    or_(
                        BillingTaxRateTable.effective_to.is_(None),
                        BillingTaxRateTable.effective_to >= effective_date,
                    ),
                )
            )
            .order_by(BillingTaxRateTable.effective_from.desc())
        )
        rows = (await self.db.execute(stmt)).scalars().all()
        if not rows:
            return None
        specific = [row for row in rows if state and row.state == state]
        return TaxRate.model_validate(specific[0] if specific else rows[0])

    async def save(self, rate: TaxRate) -> None:
        self.db.add(
            BillingTaxRateTable(
                id=rate.id,
                name=rate.name,
                country=rate.country,
                state=rate.state,
                rate=rate.rate,
                effective_from=rate.effective_from,
                effective_to=rate.effective_to,
                is_active=rate.is_active,
            )
        )
        await self.db.flush()
