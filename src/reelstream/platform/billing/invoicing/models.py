"""
Invoice models.

Invoice totals are always derived from the line items and the applied
credit total; nothing sets them independently.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import AliasChoices, Field

from reelstream.platform.billing.core.enums import ChargeType, InvoiceStatus, TaxProvider
from reelstream.platform.billing.core.models import BillingModel
from reelstream.platform.billing.date_utils import UTCDateTime
from reelstream.platform.billing.money_utils import ZERO


class InvoiceLineItem(BillingModel):
    """A billed line. ``total_amount`` is amount plus tax minus discount."""

    id: str | None = None
    description: str
    charge_type: ChargeType
    quantity: Decimal = Decimal("1")
    unit_price: Decimal
    amount: Decimal
    tax_amount: Decimal = ZERO
    tax_rate: Decimal = ZERO
    tax_provider: TaxProvider | None = None
    tax_jurisdiction: str | None = None
    discount_amount: Decimal = ZERO
    total_amount: Decimal = ZERO
    period_start: UTCDateTime | None = None
    period_end: UTCDateTime | None = None
    proration_rate: Decimal | None = None
    details: dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("details", "metadata_json")
    )

    def recalculate_total(self) -> None:
        self.total_amount = self.amount + self.tax_amount - self.discount_amount

    @property
    def is_taxable(self) -> bool:
        return self.amount > ZERO


class Invoice(BillingModel):
    """Invoice with derived totals. Payment is recorded in ``amount_paid``."""

    id: str
    invoice_number: str
    user_id: str
    subscription_id: str | None = None
    plan_change_request_id: str | None = None
    status: InvoiceStatus = InvoiceStatus.DRAFT

    subtotal: Decimal = ZERO
    total_tax: Decimal = ZERO
    total_discount: Decimal = ZERO
    total_credit: Decimal = ZERO
    total: Decimal = ZERO
    amount_due: Decimal = ZERO
    amount_paid: Decimal = ZERO
    currency: str = "USD"

    period_start: UTCDateTime | None = None
    period_end: UTCDateTime | None = None
    due_date: UTCDateTime
    finalized_at: UTCDateTime | None = None
    paid_at: UTCDateTime | None = None
    voided_at: UTCDateTime | None = None
    created_at: UTCDateTime | None = None

    line_items: list[InvoiceLineItem] = Field(default_factory=list)

    def recalculate_totals(self) -> None:
        """Derive every total from the line items and ``total_credit``."""
        self.subtotal = sum((item.amount for item in self.line_items), ZERO)
        self.total_tax = sum((item.tax_amount for item in self.line_items), ZERO)
        self.total_discount = sum((item.discount_amount for item in self.line_items), ZERO)
        self.total = self.subtotal + self.total_tax - self.total_discount
        self.amount_due = max(ZERO, self.total - self.total_credit)

    def apply_credit_total(self, total_credit: Decimal) -> None:
        self.total_credit = total_credit
        self.recalculate_totals()


class InvoiceOptions(BillingModel):
    """Caller options for invoice generation."""

    due_date: datetime | None = None
    immediate_charge: bool = False
    period_start: datetime | None = None
    period_end: datetime | None = None
    plan_change_request_id: str | None = None
