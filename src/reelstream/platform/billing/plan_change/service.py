"""
Plan-change orchestrator.

The synchronous phase validates the request, mutates the subscription,
snapshots proration and add-on migration, stores a ``PlanChangeRequest``
and enqueues invoice generation, all in one transaction. The caller gets
the result immediately with ``invoice_status="pending"``; the invoice is
produced by :class:`PlanChangeInvoiceGenerator` from the enqueued snapshot.
"""

from uuid import uuid4

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from reelstream.platform.billing.date_utils import ensure_utc, utcnow
from reelstream.platform.billing.exceptions import (
    InactiveSubscriptionError,
    PlanChangeError,
    PlanChangeInProgressError,
    PlanChangeRequestNotFoundError,
    PlanNotFoundError,
    SamePlanError,
    SubscriptionNotFoundError,
)
from reelstream.platform.billing.plan_change.models import (
    ChangePlanOptions,
    ChangePlanResult,
    PlanChangeInvoiceEvent,
    PlanChangeRequest,
    PlanChangeStatusView,
)
from reelstream.platform.billing.plan_change.producer import PlanChangeInvoiceQueue, job_id_for
from reelstream.platform.billing.plan_change.repository import PlanChangeRequestRepository
from reelstream.platform.billing.subscriptions.addons import AddOnMigrator
from reelstream.platform.billing.subscriptions.models import Subscription
from reelstream.platform.billing.subscriptions.proration import ProrationCalculator
from reelstream.platform.billing.subscriptions.repository import (
    ChargeRepository,
    PlanRepository,
    SubscriptionRepository,
)
from reelstream.platform.events import EventBus

logger = structlog.get_logger(__name__)


class PlanChangeService:
    def __init__(
        self,
        db: AsyncSession,
        subscription_repository: SubscriptionRepository,
        plan_repository: PlanRepository,
        charge_repository: ChargeRepository,
        request_repository: PlanChangeRequestRepository,
        proration_calculator: ProrationCalculator,
        add_on_migrator: AddOnMigrator,
        invoice_queue: PlanChangeInvoiceQueue,
        event_bus: EventBus,
    ) -> None:
        self.db = db
        self.subscription_repository = subscription_repository
        self.plan_repository = plan_repository
        self.charge_repository = charge_repository
        self.request_repository = request_repository
        self.proration_calculator = proration_calculator
        self.add_on_migrator = add_on_migrator
        self.invoice_queue = invoice_queue
        self.event_bus = event_bus

    async def _load_active_subscription(self, subscription_id: str, user_id: str) -> Subscription:
        subscription = await self.subscription_repository.find_active_by_id(
            subscription_id, user_id, for_update=True
        )
        if subscription is not None:
            return subscription
        if await self.subscription_repository.find_by_id(subscription_id, user_id) is not None:
            raise InactiveSubscriptionError(subscription_id=subscription_id)
        raise SubscriptionNotFoundError(subscription_id=subscription_id, user_id=user_id)

    async def change_plan(
        self,
        subscription_id: str,
        user_id: str,
        new_plan_id: str,
        options: ChangePlanOptions | None = None,
    ) -> ChangePlanResult:
        """Switch a subscription to ``new_plan_id`` and enqueue its invoice.

        Raises:
            SubscriptionNotFoundError: no such subscription for the user
            InactiveSubscriptionError: the subscription is not active
            PlanNotFoundError: the target plan does not exist or is retired
            SamePlanError: the subscription is already on the plan
            PlanChangeInProgressError: an earlier change still awaits its invoice
        """
        options = options or ChangePlanOptions()

        if options.request_id:
            existing = await self.request_repository.find_by_id(options.request_id)
            if existing is not None:
                if existing.subscription_id != subscription_id or existing.user_id != user_id:
                    raise PlanChangeError(
                        "Request id was already used for a different subscription",
                        context={"request_id": options.request_id},
                    )
                logger.info(
                    "plan_change.request.replayed",
                    request_id=existing.id,
                    subscription_id=subscription_id,
                    status=existing.status.value,
                )
                return ChangePlanResult.from_request(existing)

        subscription = await self._load_active_subscription(subscription_id, user_id)

        new_plan = await self.plan_repository.find_by_id(new_plan_id)
        if new_plan is None or not new_plan.is_active:
            raise PlanNotFoundError(plan_id=new_plan_id)
        if new_plan.id == subscription.plan_id:
            raise SamePlanError(plan_id=new_plan_id)

        pending = await self.request_repository.find_pending_for_subscription(subscription.id)
        if pending is not None:
            raise PlanChangeInProgressError(subscription.id, pending_request_id=pending.id)

        effective_date = ensure_utc(options.effective_date) if options.effective_date else utcnow()
        period_start = subscription.current_period_start
        period_end = subscription.current_period_end

        charges = []
        if period_start is not None and period_end is not None:
            charges = await self.charge_repository.find_for_period(
                subscription.id, period_start, period_end
            )
        proration = self.proration_calculator.calculate(
            subscription, new_plan, effective_date, charges
        )
        migration = self.add_on_migrator.migrate(
            subscription.add_ons, new_plan.allowed_add_on_ids, effective_date, period_end
        )

        old_plan_id = subscription.plan_id
        domain_events = subscription.change_plan(
            new_plan.id, effective_date, migration.removed_add_on_ids
        )

        request_id = options.request_id or str(uuid4())
        request = PlanChangeRequest(
            id=request_id,
            subscription_id=subscription.id,
            user_id=subscription.user_id,
            old_plan_id=old_plan_id,
            new_plan_id=new_plan.id,
            effective_date=effective_date,
            charge_immediately=options.charge_immediately,
            currency=new_plan.currency,
            proration_credit=proration.credit,
            proration_charge=proration.charge,
            credit_breakdown=proration.credit_breakdown,
            charge_breakdown=proration.charge_breakdown,
            removed_add_on_ids=migration.removed_add_on_ids,
            add_on_credit=migration.total_credit,
            job_id=job_id_for(request_id),
        )
        invoice_event = PlanChangeInvoiceEvent(
            request_id=request.id,
            subscription_id=subscription.id,
            user_id=subscription.user_id,
            old_plan_id=old_plan_id,
            new_plan_id=new_plan.id,
            effective_date=effective_date,
            proration=proration,
            removed_add_on_ids=migration.removed_add_on_ids,
            add_on_credit=migration.total_credit,
            charge_immediately=options.charge_immediately,
            currency=new_plan.currency,
            billing_address=subscription.billing_address,
            period_start=period_start,
            period_end=period_end,
            discount_ids=subscription.discount_ids,
        )

        try:
            await self.subscription_repository.save(subscription)
            await self.request_repository.save(request)
            request.job_id = await self.invoice_queue.publish(invoice_event)
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            # a concurrent change for the subscription committed first
            existing = await self.request_repository.find_by_id(request.id)
            if existing is not None and existing.subscription_id == subscription.id:
                return ChangePlanResult.from_request(existing)
            pending = await self.request_repository.find_pending_for_subscription(subscription.id)
            if pending is None:
                raise
            logger.warning(
                "plan_change.request.conflict",
                request_id=request.id,
                subscription_id=subscription.id,
                pending_request_id=pending.id,
            )
            raise PlanChangeInProgressError(subscription.id, pending_request_id=pending.id) from e
        except Exception:
            await self.db.rollback()
            logger.exception(
                "plan_change.request.aborted",
                request_id=request.id,
                subscription_id=subscription.id,
            )
            raise

        await self.event_bus.publish_all(
            domain_events,
            metadata={
                "source": "billing.plan_change",
                "user_id": subscription.user_id,
                "aggregate_id": subscription.id,
                "correlation_id": request.id,
            },
        )

        logger.info(
            "plan_change.requested",
            request_id=request.id,
            subscription_id=subscription.id,
            old_plan_id=old_plan_id,
            new_plan_id=new_plan.id,
            credit=str(proration.credit),
            charge=str(proration.charge),
            removed_add_ons=migration.removed_add_on_ids,
            job_id=request.job_id,
        )
        return ChangePlanResult.from_request(request)

    async def get_plan_change_status(
        self, request_id: str, user_id: str | None = None
    ) -> PlanChangeStatusView:
        request = await self.request_repository.find_by_id(request_id)
        if request is None or (user_id is not None and request.user_id != user_id):
            raise PlanChangeRequestNotFoundError(request_id)
        return PlanChangeStatusView(
            request_id=request.id,
            subscription_id=request.subscription_id,
            status=request.status,
            invoice_id=request.invoice_id,
            error_message=request.error_message,
            retry_count=request.retry_count,
            updated_at=request.updated_at,
        )
