"""
Invoice generation worker for plan changes.

Runs once per job delivery inside its own transaction and may be delivered
more than once. A request that already has its invoice returns that
invoice. Any failure rolls the work back, records ``invoice_failed`` on the
request and re-raises so the transport can retry.

Steps, in order: usage on the old plan up to the change, line items from
the proration snapshot, tax, discounts, the draft invoice, then credits
(or a proration credit when the total is negative).
"""

from decimal import Decimal

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from reelstream.platform.billing.core.enums import CreditType
from reelstream.platform.billing.credits.service import CreditLedger
from reelstream.platform.billing.date_utils import utcnow
from reelstream.platform.billing.discounts.engine import DiscountService
from reelstream.platform.billing.discounts.models import DiscountOptions
from reelstream.platform.billing.exceptions import PlanChangeRequestNotFoundError, PlanNotFoundError
from reelstream.platform.billing.invoicing.builder import build_plan_change_lines
from reelstream.platform.billing.invoicing.models import Invoice, InvoiceOptions
from reelstream.platform.billing.invoicing.service import InvoiceService
from reelstream.platform.billing.money_utils import ZERO
from reelstream.platform.billing.plan_change.models import PlanChangeInvoiceEvent, PlanChangeRequest
from reelstream.platform.billing.plan_change.repository import PlanChangeRequestRepository
from reelstream.platform.billing.subscriptions.repository import PlanRepository
from reelstream.platform.billing.tax.calculator import TaxCalculator
from reelstream.platform.billing.usage.models import UsageCharge
from reelstream.platform.billing.usage.service import UsageService

logger = structlog.get_logger(__name__)


class PlanChangeInvoiceGenerator:
    def __init__(
        self,
        db: AsyncSession,
        request_repository: PlanChangeRequestRepository,
        plan_repository: PlanRepository,
        invoice_service: InvoiceService,
        usage_service: UsageService,
        tax_calculator: TaxCalculator,
        discount_service: DiscountService,
        credit_ledger: CreditLedger,
        discount_options: DiscountOptions | None = None,
    ) -> None:
        self.db = db
        self.request_repository = request_repository
        self.plan_repository = plan_repository
        self.invoice_service = invoice_service
        self.usage_service = usage_service
        self.tax_calculator = tax_calculator
        self.discount_service = discount_service
        self.credit_ledger = credit_ledger
        self.discount_options = discount_options or DiscountOptions()

    async def generate(self, event: PlanChangeInvoiceEvent) -> Invoice:
        request = await self.request_repository.find_by_id(event.request_id)
        if request is None:
            raise PlanChangeRequestNotFoundError(event.request_id)

        if request.is_generated and request.invoice_id:
            logger.info(
                "plan_change.invoice.already_generated",
                request_id=request.id,
                invoice_id=request.invoice_id,
            )
            return await self.invoice_service.get_invoice(request.invoice_id)

        try:
            invoice = await self._generate(event, request)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            await self._record_failure(event.request_id, e)
            raise

        logger.info(
            "plan_change.invoice.generated",
            request_id=request.id,
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number,
            total=str(invoice.total),
            amount_due=str(invoice.amount_due),
            status=invoice.status.value,
        )
        return invoice

    async def _generate(self, event: PlanChangeInvoiceEvent, request: PlanChangeRequest) -> Invoice:
        existing = await self.invoice_service.invoice_repository.find_by_plan_change_request(
            request.id
        )
        if existing is not None:
            request.mark_generated(existing.id)
            await self.request_repository.save(request)
            return existing

        usage_charges = await self._usage_charges(event)
        lines = build_plan_change_lines(
            event.proration.credit_breakdown,
            event.proration.charge_breakdown,
            usage_charges,
            usage_period_start=event.period_start,
            usage_period_end=event.effective_date,
        )

        await self.tax_calculator.calculate_line_taxes(
            lines, event.billing_address, event.effective_date, event.currency
        )
        if event.discount_ids:
            await self.discount_service.apply_subscription_discounts(
                lines,
                event.discount_ids,
                event.new_plan_id,
                event.effective_date,
                self.discount_options,
            )

        invoice = await self.invoice_service.generate_invoice(
            user_id=event.user_id,
            subscription_id=event.subscription_id,
            line_items=lines,
            currency=event.currency,
            options=InvoiceOptions(
                due_date=event.effective_date if event.charge_immediately else None,
                immediate_charge=event.charge_immediately,
                period_start=event.effective_date,
                period_end=event.period_end,
                plan_change_request_id=request.id,
            ),
        )

        if invoice.total < ZERO:
            await self.credit_ledger.create_credit(
                user_id=event.user_id,
                amount=-invoice.total,
                credit_type=CreditType.PRORATION,
                currency=event.currency,
                description=f"Plan change credit from invoice {invoice.invoice_number}",
            )
        elif invoice.total > ZERO:
            invoice = await self._apply_credits(invoice)

        if usage_charges:
            await self.usage_service.mark_billed(usage_charges, invoice.id)
        if event.charge_immediately:
            invoice = await self.invoice_service.finalize(invoice.id)

        request.mark_generated(invoice.id)
        await self.request_repository.save(request)
        return invoice

    async def _usage_charges(self, event: PlanChangeInvoiceEvent) -> list[UsageCharge]:
        if event.period_start is None:
            return []
        old_plan = await self.plan_repository.find_by_id(event.old_plan_id)
        if old_plan is None:
            raise PlanNotFoundError(plan_id=event.old_plan_id)
        return await self.usage_service.calculate_charges(
            event.subscription_id, old_plan, event.period_start, event.effective_date
        )

    async def _apply_credits(self, invoice: Invoice) -> Invoice:
        credits = await self.credit_ledger.get_available_credits(invoice.user_id, utcnow())
        if not credits:
            return invoice
        applications = await self.credit_ledger.apply_credits_to_invoice(
            invoice.id, invoice.total, credits
        )
        applied = sum((a.amount_applied for a in applications), Decimal("0"))
        if applied <= ZERO:
            return invoice
        return await self.invoice_service.apply_credit_total(invoice, applied)

    async def _record_failure(self, request_id: str, error: Exception) -> None:
        logger.error(
            "plan_change.invoice.failed",
            request_id=request_id,
            error=str(error),
            error_type=type(error).__name__,
            exc_info=True,
        )
        request = await self.request_repository.find_by_id(request_id)
        if request is None or request.is_generated:
            return
        request.mark_failed(str(error) or type(error).__name__)
        await self.request_repository.save(request)
        await self.db.commit()
