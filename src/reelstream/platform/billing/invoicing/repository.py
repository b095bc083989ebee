"""
Invoice persistence.
"""

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from reelstream.platform.billing.core.entities import (
    BillingInvoiceLineItemTable,
    BillingInvoiceTable,
)
from reelstream.platform.billing.invoicing.models import Invoice

_TOTAL_FIELDS = (
    "subtotal",
    "total_tax",
    "total_discount",
    "total_credit",
    "total",
    "amount_due",
)


class InvoiceRepository:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def find_by_id(self, invoice_id: str) -> Invoice | None:
        entity = await self.db.get(BillingInvoiceTable, invoice_id)
        return Invoice.model_validate(entity) if entity else None

    async def find_by_plan_change_request(self, request_id: str) -> Invoice | None:
        stmt = select(BillingInvoiceTable).where(
            BillingInvoiceTable.plan_change_request_id == request_id
        )
        entity = (await self.db.execute(stmt)).scalar_one_or_none()
        return Invoice.model_validate(entity) if entity else None

    async def count_with_number_prefix(self, user_id: str, prefix: str) -> int:
        stmt = select(func.count(BillingInvoiceTable.id)).where(
            and_(
                BillingInvoiceTable.user_id == user_id,
                BillingInvoiceTable.invoice_number.startswith(prefix, autoescape=True),
            )
        )
        return (await self.db.execute(stmt)).scalar_one()

    async def create(self, invoice: Invoice) -> Invoice:
        """Insert the invoice with its line items attached by foreign key."""
        entity = BillingInvoiceTable(
            id=invoice.id,
            invoice_number=invoice.invoice_number,
            user_id=invoice.user_id,
            subscription_id=invoice.subscription_id,
            plan_change_request_id=invoice.plan_change_request_id,
            status=invoice.status.value,
            currency=invoice.currency,
            period_start=invoice.period_start,
            period_end=invoice.period_end,
            due_date=invoice.due_date,
            finalized_at=invoice.finalized_at,
            amount_paid=invoice.amount_paid,
            line_items=[
                BillingInvoiceLineItemTable(
                    position=position,
                    description=item.description,
                    charge_type=item.charge_type.value,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    amount=item.amount,
                    tax_amount=item.tax_amount,
                    tax_rate=item.tax_rate,
                    tax_provider=item.tax_provider.value if item.tax_provider else None,
                    tax_jurisdiction=item.tax_jurisdiction,
                    discount_amount=item.discount_amount,
                    total_amount=item.total_amount,
                    period_start=item.period_start,
                    period_end=item.period_end,
                    proration_rate=item.proration_rate,
                    metadata_json=item.details,
                )
                for position, item in enumerate(invoice.line_items)
            ],
            **{field: getattr(invoice, field) for field in _TOTAL_FIELDS},
        )
        self.db.add(entity)
        await self.db.flush()
        return Invoice.model_validate(entity)

    async def update(self, invoice: Invoice) -> None:
        """Persist status, dates and totals. Line items are immutable once created."""
        entity = await self.db.get(BillingInvoiceTable, invoice.id)
        if entity is None:
            raise LookupError(f"Invoice {invoice.id} does not exist")
        entity.status = invoice.status.value
        entity.due_date = invoice.due_date
        entity.finalized_at = invoice.finalized_at
        entity.paid_at = invoice.paid_at
        entity.amount_paid = invoice.amount_paid
        entity.voided_at = invoice.voided_at
        for field in _TOTAL_FIELDS:
            setattr(entity, field, getattr(invoice, field))
        await self.db.flush()
