"""
Plan-change request persistence.
"""

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from reelstream.platform.billing.core.entities import BillingPlanChangeRequestTable
from reelstream.platform.billing.core.enums import PlanChangeStatus
from reelstream.platform.billing.plan_change.models import PlanChangeRequest


class PlanChangeRequestRepository:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def find_by_id(self, request_id: str) -> PlanChangeRequest | None:
        stmt = select(BillingPlanChangeRequestTable).where(
            BillingPlanChangeRequestTable.id == request_id
        )
        entity = (await self.db.execute(stmt)).scalar_one_or_none()
        return PlanChangeRequest.model_validate(entity) if entity else None

    async def find_pending_for_subscription(self, subscription_id: str) -> PlanChangeRequest | None:
        stmt = (
            select(BillingPlanChangeRequestTable)
            .where(
                and_(
                    BillingPlanChangeRequestTable.subscription_id == subscription_id,
                    BillingPlanChangeRequestTable.status == PlanChangeStatus.PENDING_INVOICE.value,
                )
            )
            .order_by(BillingPlanChangeRequestTable.created_at)
            .limit(1)
        )
        entity = (await self.db.execute(stmt)).scalar_one_or_none()
        return PlanChangeRequest.model_validate(entity) if entity else None

    async def save(self, request: PlanChangeRequest) -> None:
        entity = await self.db.get(BillingPlanChangeRequestTable, request.id)
        if entity is None:
            self.db.add(
                BillingPlanChangeRequestTable(
                    id=request.id,
                    subscription_id=request.subscription_id,
                    user_id=request.user_id,
                    old_plan_id=request.old_plan_id,
                    new_plan_id=request.new_plan_id,
                    effective_date=request.effective_date,
                    charge_immediately=request.charge_immediately,
                    currency=request.currency,
                    proration_credit=request.proration_credit,
                    proration_charge=request.proration_charge,
                    credit_breakdown=[
                        line.model_dump(mode="json") for line in request.credit_breakdown
                    ],
                    charge_breakdown=[
                        line.model_dump(mode="json") for line in request.charge_breakdown
                    ],
                    removed_add_on_ids=list(request.removed_add_on_ids),
                    add_on_credit=request.add_on_credit,
                    status=request.status.value,
                    invoice_id=request.invoice_id,
                    error_message=request.error_message,
                    retry_count=request.retry_count,
                    job_id=request.job_id,
                )
            )
        else:
            entity.status = request.status.value
            entity.invoice_id = request.invoice_id
            entity.error_message = request.error_message
            entity.retry_count = request.retry_count
            entity.job_id = request.job_id
        await self.db.flush()
