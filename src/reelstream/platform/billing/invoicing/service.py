"""
Invoice generation and status transitions.

Invoice numbers read ``{prefix}-{YYYYMM}-{user[:8]}-{seq:03d}``. The
sequence counts the user's invoices already numbered for that month, so
two invoices generated concurrently for one user can collide; the unique
constraint on ``invoice_number`` turns that into a failed (retried) job
rather than a duplicate.
"""

from collections.abc import Sequence
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import structlog

from reelstream.platform.billing.core.enums import InvoiceStatus
from reelstream.platform.billing.date_utils import ensure_utc, utcnow
from reelstream.platform.billing.exceptions import InvoiceNotFoundError, InvoiceStateError
from reelstream.platform.billing.invoicing.models import Invoice, InvoiceLineItem, InvoiceOptions
from reelstream.platform.billing.invoicing.repository import InvoiceRepository

logger = structlog.get_logger(__name__)

_TRANSITIONS: dict[InvoiceStatus, set[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: {InvoiceStatus.OPEN, InvoiceStatus.VOID},
    InvoiceStatus.OPEN: {InvoiceStatus.PAID, InvoiceStatus.VOID, InvoiceStatus.UNCOLLECTIBLE},
    InvoiceStatus.PAID: set(),
    InvoiceStatus.VOID: set(),
    InvoiceStatus.UNCOLLECTIBLE: {InvoiceStatus.PAID},
}


class InvoiceService:
    def __init__(
        self,
        invoice_repository: InvoiceRepository,
        number_prefix: str = "INV",
        due_days: int = 7,
    ) -> None:
        self.invoice_repository = invoice_repository
        self.number_prefix = number_prefix
        self.due_days = due_days

    async def generate_invoice_number(self, user_id: str, at: datetime) -> str:
        prefix = f"{self.number_prefix}-{ensure_utc(at):%Y%m}-{user_id[:8]}-"
        sequence = await self.invoice_repository.count_with_number_prefix(user_id, prefix) + 1
        return f"{prefix}{sequence:03d}"

    async def generate_invoice(
        self,
        user_id: str,
        subscription_id: str | None,
        line_items: Sequence[InvoiceLineItem],
        currency: str = "USD",
        options: InvoiceOptions | None = None,
    ) -> Invoice:
        """Number, total and persist a draft invoice."""
        options = options or InvoiceOptions()
        now = utcnow()
        invoice = Invoice(
            id=str(uuid4()),
            invoice_number=await self.generate_invoice_number(user_id, now),
            user_id=user_id,
            subscription_id=subscription_id,
            plan_change_request_id=options.plan_change_request_id,
            status=InvoiceStatus.DRAFT,
            currency=currency,
            period_start=options.period_start,
            period_end=options.period_end,
            due_date=options.due_date or now + timedelta(days=self.due_days),
            line_items=list(line_items),
        )
        invoice.recalculate_totals()
        invoice = await self.invoice_repository.create(invoice)

        logger.info(
            "invoice.generated",
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number,
            user_id=user_id,
            total=str(invoice.total),
            lines=len(invoice.line_items),
        )
        return invoice

    async def get_invoice(self, invoice_id: str) -> Invoice:
        invoice = await self.invoice_repository.find_by_id(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id=invoice_id)
        return invoice

    async def apply_credit_total(self, invoice: Invoice, total_credit: Decimal) -> Invoice:
        invoice.apply_credit_total(total_credit)
        await self.invoice_repository.update(invoice)
        return invoice

    async def _transition(self, invoice_id: str, target: InvoiceStatus) -> Invoice:
        invoice = await self.get_invoice(invoice_id)
        if target not in _TRANSITIONS[invoice.status]:
            raise InvoiceStateError(
                f"Cannot move invoice {invoice.invoice_number} from {invoice.status.value} "
                f"to {target.value}",
                current_status=invoice.status.value,
                attempted_status=target.value,
            )

        now = utcnow()
        invoice.status = target
        if target == InvoiceStatus.OPEN:
            invoice.finalized_at = now
        elif target == InvoiceStatus.PAID:
            invoice.paid_at = now
            invoice.amount_paid = invoice.amount_due
        elif target == InvoiceStatus.VOID:
            invoice.voided_at = now

        await self.invoice_repository.update(invoice)
        logger.info(
            "invoice.status_changed",
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number,
            status=target.value,
        )
        return invoice

    async def finalize(self, invoice_id: str) -> Invoice:
        return await self._transition(invoice_id, InvoiceStatus.OPEN)

    async def mark_paid(self, invoice_id: str) -> Invoice:
        return await self._transition(invoice_id, InvoiceStatus.PAID)

    async def void(self, invoice_id: str) -> Invoice:
        return await self._transition(invoice_id, InvoiceStatus.VOID)

    async def mark_uncollectible(self, invoice_id: str) -> Invoice:
        return await self._transition(invoice_id, InvoiceStatus.UNCOLLECTIBLE)
