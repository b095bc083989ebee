"""Tests for invoice numbering, totals and status transitions."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from reelstream.platform.billing.core.enums import ChargeType, InvoiceStatus
from reelstream.platform.billing.exceptions import InvoiceNotFoundError, InvoiceStateError
from reelstream.platform.billing.invoicing.models import InvoiceLineItem, InvoiceOptions
from reelstream.platform.billing.invoicing.repository import InvoiceRepository
from reelstream.platform.billing.invoicing.service import InvoiceService

pytestmark = pytest.mark.integration

USER_ID = "user-12345678-abcd"


def _lines() -> list[InvoiceLineItem]:
    charge = InvoiceLineItem(
        description="Prorated charge for Premium (15 days)",
        charge_type=ChargeType.PRORATION,
        unit_price=Decimal("10.00"),
        amount=Decimal("10.00"),
        tax_amount=Decimal("1.00"),
        discount_amount=Decimal("2.00"),
        details={"source": "test"},
    )
    credit = InvoiceLineItem(
        description="Unused time on Basic",
        charge_type=ChargeType.PRORATION,
        unit_price=Decimal("-5.00"),
        amount=Decimal("-5.00"),
        proration_rate=Decimal("0.5"),
    )
    for line in (charge, credit):
        line.recalculate_total()
    return [charge, credit]


@pytest.fixture
def invoice_service(async_db_session) -> InvoiceService:
    return InvoiceService(InvoiceRepository(async_db_session), number_prefix="INV", due_days=7)


class TestGenerateInvoice:
    async def test_number_format_and_monthly_sequence(self, invoice_service):
        prefix = f"INV-{datetime.now(UTC):%Y%m}-user-123-"

        first = await invoice_service.generate_invoice(USER_ID, "sub-1", _lines())
        second = await invoice_service.generate_invoice(USER_ID, "sub-1", _lines())
        other = await invoice_service.generate_invoice("other-user-id", None, _lines())

        assert first.invoice_number == f"{prefix}001"
        assert second.invoice_number == f"{prefix}002"
        assert other.invoice_number.endswith("-other-us-001")

    async def test_totals_are_derived_from_lines(self, invoice_service):
        invoice = await invoice_service.generate_invoice(USER_ID, "sub-1", _lines())

        assert invoice.status == InvoiceStatus.DRAFT
        assert invoice.subtotal == Decimal("5.00")
        assert invoice.total_tax == Decimal("1.00")
        assert invoice.total_discount == Decimal("2.00")
        assert invoice.total == Decimal("4.00")
        assert invoice.amount_due == Decimal("4.00")

    async def test_line_items_round_trip_in_order(self, invoice_service):
        invoice = await invoice_service.generate_invoice(USER_ID, "sub-1", _lines())
        stored = await invoice_service.get_invoice(invoice.id)

        assert [item.amount for item in stored.line_items] == [Decimal("10.00"), Decimal("-5.00")]
        assert stored.line_items[0].details == {"source": "test"}
        assert stored.line_items[1].proration_rate == Decimal("0.5")

    async def test_default_due_date(self, invoice_service):
        before = datetime.now(UTC)
        invoice = await invoice_service.generate_invoice(USER_ID, "sub-1", _lines())

        assert before + timedelta(days=7) <= invoice.due_date
        assert invoice.due_date <= datetime.now(UTC) + timedelta(days=7)

    async def test_caller_due_date(self, invoice_service):
        due = datetime(2025, 1, 16, tzinfo=UTC)
        invoice = await invoice_service.generate_invoice(
            USER_ID, "sub-1", _lines(), options=InvoiceOptions(due_date=due)
        )
        assert invoice.due_date == due

    async def test_credit_never_drives_amount_due_negative(self, invoice_service):
        invoice = await invoice_service.generate_invoice(USER_ID, "sub-1", _lines())
        invoice = await invoice_service.apply_credit_total(invoice, Decimal("10.00"))

        assert invoice.total_credit == Decimal("10.00")
        assert invoice.amount_due == Decimal("0")
        stored = await invoice_service.get_invoice(invoice.id)
        assert stored.amount_due == Decimal("0")


class TestInvoiceTransitions:
    async def test_finalize_then_pay(self, invoice_service):
        invoice = await invoice_service.generate_invoice(USER_ID, "sub-1", _lines())

        opened = await invoice_service.finalize(invoice.id)
        assert opened.status == InvoiceStatus.OPEN
        assert opened.finalized_at is not None

        paid = await invoice_service.mark_paid(invoice.id)
        assert paid.status == InvoiceStatus.PAID
        assert paid.paid_at is not None
        assert paid.amount_paid == Decimal("4.00")

        stored = await invoice_service.get_invoice(invoice.id)
        assert stored.amount_paid == Decimal("4.00")
        assert stored.amount_due == max(Decimal("0"), stored.total - stored.total_credit)
        assert stored.amount_due == Decimal("4.00")

    async def test_paid_amount_follows_credit(self, invoice_service):
        invoice = await invoice_service.generate_invoice(USER_ID, "sub-1", _lines())
        invoice = await invoice_service.apply_credit_total(invoice, Decimal("1.50"))
        await invoice_service.finalize(invoice.id)

        paid = await invoice_service.mark_paid(invoice.id)
        assert paid.amount_paid == Decimal("2.50")
        assert paid.amount_due == paid.total - paid.total_credit

    async def test_paid_invoice_cannot_be_voided(self, invoice_service):
        invoice = await invoice_service.generate_invoice(USER_ID, "sub-1", _lines())
        await invoice_service.finalize(invoice.id)
        await invoice_service.mark_paid(invoice.id)

        with pytest.raises(InvoiceStateError):
            await invoice_service.void(invoice.id)

    async def test_draft_cannot_be_paid_or_written_off(self, invoice_service):
        invoice = await invoice_service.generate_invoice(USER_ID, "sub-1", _lines())

        with pytest.raises(InvoiceStateError):
            await invoice_service.mark_paid(invoice.id)
        with pytest.raises(InvoiceStateError):
            await invoice_service.mark_uncollectible(invoice.id)

    async def test_void_draft(self, invoice_service):
        invoice = await invoice_service.generate_invoice(USER_ID, "sub-1", _lines())
        voided = await invoice_service.void(invoice.id)

        assert voided.status == InvoiceStatus.VOID
        assert voided.voided_at is not None

    async def test_uncollectible_open_invoice(self, invoice_service):
        invoice = await invoice_service.generate_invoice(USER_ID, "sub-1", _lines())
        await invoice_service.finalize(invoice.id)

        written_off = await invoice_service.mark_uncollectible(invoice.id)
        assert written_off.status == InvoiceStatus.UNCOLLECTIBLE

    async def test_unknown_invoice(self, invoice_service):
        with pytest.raises(InvoiceNotFoundError):
            await invoice_service.finalize("missing")
