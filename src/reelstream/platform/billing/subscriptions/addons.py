"""
Add-on migration for plan changes.

Add-ons the new plan allows are kept. The rest are soft-removed by setting
their end date to the change date and credited for their unused time.
"""

from collections.abc import Iterable
from datetime import datetime, timedelta
from decimal import Decimal

import structlog
from pydantic import Field

from reelstream.platform.billing.core.models import BillingModel
from reelstream.platform.billing.date_utils import ensure_utc
from reelstream.platform.billing.money_utils import ZERO
from reelstream.platform.billing.subscriptions.models import SubscriptionAddOn
from reelstream.platform.billing.subscriptions.proration import ProrationCalculator

logger = structlog.get_logger(__name__)


class AddOnMigrationResult(BillingModel):
    kept: list[SubscriptionAddOn] = Field(default_factory=list)
    removed: list[SubscriptionAddOn] = Field(default_factory=list)
    total_credit: Decimal = ZERO

    @property
    def removed_add_on_ids(self) -> list[str]:
        return [a.add_on_id for a in self.removed]


class AddOnMigrator:
    def __init__(
        self, proration_calculator: ProrationCalculator, estimated_period_days: int = 30
    ) -> None:
        self.proration_calculator = proration_calculator
        self.estimated_period_days = estimated_period_days

    def migrate(
        self,
        add_ons: Iterable[SubscriptionAddOn],
        allowed_add_on_ids: Iterable[str],
        effective_date: datetime,
        period_end: datetime | None = None,
    ) -> AddOnMigrationResult:
        """Partition active add-ons into kept and removed, ending the removed ones.

        Without a known period end the credit uses an estimated period of
        ``estimated_period_days`` from the change date.
        """
        effective_date = ensure_utc(effective_date)
        allowed = set(allowed_add_on_ids)
        if period_end is None:
            period_end = effective_date + timedelta(days=self.estimated_period_days)

        result = AddOnMigrationResult()
        total_credit = ZERO
        for add_on in add_ons:
            if not add_on.is_active:
                continue
            if add_on.add_on_id in allowed:
                result.kept.append(add_on)
                continue

            add_on.end_date = effective_date
            result.removed.append(add_on)
            total_credit += self.proration_calculator.calculate_add_on_proration(
                add_on.total_amount,
                add_on.start_date,
                effective_date,
                period_end,
                currency=add_on.currency,
            )

        result.total_credit = total_credit
        if result.removed:
            logger.info(
                "addons.migrated",
                kept=len(result.kept),
                removed=result.removed_add_on_ids,
                credit=str(total_credit),
            )
        return result
