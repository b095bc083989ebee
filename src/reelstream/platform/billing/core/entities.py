"""
Billing database tables.

Monetary columns are Numeric and round-trip as Decimal. Datetime columns
are timezone aware; repositories normalise them to UTC on read because
SQLite drops tzinfo.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from reelstream.platform.db import Base, TimestampMixin


def _uuid() -> str:
    return str(uuid4())


class BillingPlanTable(Base, TimestampMixin):
    """Subscription plans."""

    __tablename__ = "billing_plans"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    interval: Mapped[str] = mapped_column(String(10), nullable=False)

    # add-on ids offered on this plan
    allowed_add_on_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    # usage type -> included quantity per period
    included_usage: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    # usage type -> tier list overriding the default price table
    usage_tiers: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class BillingAddOnTable(Base, TimestampMixin):
    """Add-on catalog."""

    __tablename__ = "billing_add_ons"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class BillingSubscriptionTable(Base, TimestampMixin):
    """Customer subscriptions."""

    __tablename__ = "billing_subscriptions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    plan_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("billing_plans.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False)

    current_period_start: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    current_period_end: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancel_at_period_end: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    trial_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    billing_address: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    discount_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    add_ons: Mapped[list["BillingSubscriptionAddOnTable"]] = relationship(
        back_populates="subscription",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="BillingSubscriptionAddOnTable.start_date",
    )

    __table_args__ = (Index("ix_billing_subscriptions_user_status", "user_id", "status"),)


class BillingSubscriptionAddOnTable(Base, TimestampMixin):
    """Add-ons attached to a subscription. Removal sets end_date, rows are never deleted."""

    __tablename__ = "billing_subscription_add_ons"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    subscription_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("billing_subscriptions.id"), nullable=False, index=True
    )
    add_on_id: Mapped[str] = mapped_column(String(36), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    subscription: Mapped[BillingSubscriptionTable] = relationship(back_populates="add_ons")


class BillingChargeTable(Base, TimestampMixin):
    """Charges already billed against a subscription period."""

    __tablename__ = "billing_charges"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    subscription_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    charge_type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    period_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    period_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    invoice_id: Mapped[str | None] = mapped_column(String(36), nullable=True)


class BillingUsageRecordTable(Base, TimestampMixin):
    """Metered usage events. The multiplier is frozen when the record is written."""

    __tablename__ = "billing_usage_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    subscription_id: Mapped[str] = mapped_column(String(36), nullable=False)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    usage_type: Mapped[str] = mapped_column(String(30), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(15, 4), nullable=False)
    multiplier: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=1)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    metadata_json: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )
    invoice_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    billed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_billing_usage_sub_recorded", "subscription_id", "recorded_at"),
        Index("ix_billing_usage_sub_invoice", "subscription_id", "invoice_id"),
    )


class BillingTaxRateTable(Base, TimestampMixin):
    """Standard tax rates by region."""

    __tablename__ = "billing_tax_rates"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    country: Mapped[str] = mapped_column(String(2), nullable=False)
    state: Mapped[str | None] = mapped_column(String(50), nullable=True)
    # percentage, e.g. 8.2500
    rate: Mapped[Decimal] = mapped_column(Numeric(7, 4), nullable=False)
    effective_from: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    effective_to: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (Index("ix_billing_tax_rates_region", "country", "state"),)


class BillingDiscountTable(Base, TimestampMixin):
    """Discount definitions."""

    __tablename__ = "billing_discounts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    discount_type: Mapped[str] = mapped_column(String(20), nullable=False)
    # percentage (0-100) or fixed amount in currency units
    value: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    max_redemptions: Mapped[int | None] = mapped_column(Integer, nullable=True)
    current_redemptions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    valid_from: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    valid_to: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    applicable_plan_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    is_stackable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class BillingCreditTable(Base, TimestampMixin):
    """Customer credit balances."""

    __tablename__ = "billing_credits"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    credit_type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    remaining_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    applied_to_invoice_id: Mapped[str | None] = mapped_column(String(36), nullable=True)


class BillingInvoiceTable(Base, TimestampMixin):
    """Invoices. Totals are derived from the line items and applied credits."""

    __tablename__ = "billing_invoices"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    subscription_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    plan_change_request_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)

    subtotal: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=0)
    total_tax: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=0)
    total_discount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=0)
    total_credit: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=0)
    total: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=0)
    amount_due: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=0)
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    period_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    period_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    due_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    finalized_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    voided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    line_items: Mapped[list["BillingInvoiceLineItemTable"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="BillingInvoiceLineItemTable.position",
    )

    __table_args__ = (
        UniqueConstraint("invoice_number", name="uq_billing_invoices_number"),
        UniqueConstraint("plan_change_request_id", name="uq_billing_invoices_plan_change"),
        Index("ix_billing_invoices_user_number", "user_id", "invoice_number"),
    )


class BillingInvoiceLineItemTable(Base):
    """Invoice line items."""

    __tablename__ = "billing_invoice_line_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    invoice_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("billing_invoices.id"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    charge_type: Mapped[str] = mapped_column(String(20), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(15, 4), nullable=False, default=1)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(15, 4), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=0)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(7, 4), nullable=False, default=0)
    tax_provider: Mapped[str | None] = mapped_column(String(20), nullable=True)
    tax_jurisdiction: Mapped[str | None] = mapped_column(String(50), nullable=True)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=0)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    period_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    period_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    proration_rate: Mapped[Decimal | None] = mapped_column(Numeric(18, 10), nullable=True)
    metadata_json: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )

    invoice: Mapped[BillingInvoiceTable] = relationship(back_populates="line_items")


class BillingPlanChangeRequestTable(Base, TimestampMixin):
    """Two-phase plan-change tracking record. The id doubles as the idempotency key."""

    __tablename__ = "billing_plan_change_requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    subscription_id: Mapped[str] = mapped_column(String(36), nullable=False)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    old_plan_id: Mapped[str] = mapped_column(String(36), nullable=False)
    new_plan_id: Mapped[str] = mapped_column(String(36), nullable=False)
    effective_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    charge_immediately: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    # proration snapshot captured in the synchronous phase
    proration_credit: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=0)
    proration_charge: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=0)
    credit_breakdown: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list
    )
    charge_breakdown: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list
    )
    removed_add_on_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    add_on_credit: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=0)

    status: Mapped[str] = mapped_column(String(20), nullable=False)
    invoice_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    job_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    __table_args__ = (
        Index("ix_billing_plan_change_sub_status", "subscription_id", "status"),
        # at most one pending change per subscription
        Index(
            "uq_billing_plan_change_pending",
            "subscription_id",
            unique=True,
            sqlite_where=text("status = 'pending_invoice'"),
            postgresql_where=text("status = 'pending_invoice'"),
        ),
    )


__all__ = [
    "BillingPlanTable",
    "BillingAddOnTable",
    "BillingSubscriptionTable",
    "BillingSubscriptionAddOnTable",
    "BillingChargeTable",
    "BillingUsageRecordTable",
    "BillingTaxRateTable",
    "BillingDiscountTable",
    "BillingCreditTable",
    "BillingInvoiceTable",
    "BillingInvoiceLineItemTable",
    "BillingPlanChangeRequestTable",
]
