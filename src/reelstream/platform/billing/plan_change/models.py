"""
Plan-change request, job payload and orchestrator result models.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import Field

from reelstream.platform.billing.core.enums import PlanChangeStatus
from reelstream.platform.billing.core.models import BillingModel
from reelstream.platform.billing.date_utils import UTCDateTime, utcnow
from reelstream.platform.billing.exceptions import PlanChangeStateError
from reelstream.platform.billing.money_utils import ZERO
from reelstream.platform.billing.subscriptions.models import BillingAddress
from reelstream.platform.billing.subscriptions.proration import ProrationLine, ProrationResult


class PlanChangeRequest(BillingModel):
    """Tracks a plan change between the synchronous and the asynchronous phase.

    ``pending_invoice`` moves to ``invoice_generated`` or ``invoice_failed``.
    A failed request may be retried and later succeed; a generated one never
    changes again.
    """

    id: str
    subscription_id: str
    user_id: str
    old_plan_id: str
    new_plan_id: str
    effective_date: UTCDateTime
    charge_immediately: bool = False
    currency: str = "USD"

    proration_credit: Decimal = ZERO
    proration_charge: Decimal = ZERO
    credit_breakdown: list[ProrationLine] = Field(default_factory=list)
    charge_breakdown: list[ProrationLine] = Field(default_factory=list)
    removed_add_on_ids: list[str] = Field(default_factory=list)
    add_on_credit: Decimal = ZERO

    status: PlanChangeStatus = PlanChangeStatus.PENDING_INVOICE
    invoice_id: str | None = None
    error_message: str | None = None
    retry_count: int = 0
    job_id: str | None = None
    created_at: UTCDateTime | None = None
    updated_at: UTCDateTime | None = None

    @property
    def is_pending(self) -> bool:
        return self.status == PlanChangeStatus.PENDING_INVOICE

    @property
    def is_generated(self) -> bool:
        return self.status == PlanChangeStatus.INVOICE_GENERATED

    @property
    def proration(self) -> ProrationResult:
        return ProrationResult(
            credit=self.proration_credit,
            charge=self.proration_charge,
            credit_breakdown=self.credit_breakdown,
            charge_breakdown=self.charge_breakdown,
        )

    def _ensure_not_generated(self, attempted: PlanChangeStatus) -> None:
        if self.is_generated:
            raise PlanChangeStateError(
                f"Plan change request {self.id} already has invoice {self.invoice_id}",
                current_state=self.status.value,
                attempted_state=attempted.value,
            )

    def mark_generated(self, invoice_id: str) -> None:
        self._ensure_not_generated(PlanChangeStatus.INVOICE_GENERATED)
        self.status = PlanChangeStatus.INVOICE_GENERATED
        self.invoice_id = invoice_id
        self.error_message = None

    def mark_failed(self, error_message: str) -> None:
        self._ensure_not_generated(PlanChangeStatus.INVOICE_FAILED)
        self.status = PlanChangeStatus.INVOICE_FAILED
        self.error_message = error_message
        self.retry_count += 1


class PlanChangeInvoiceEvent(BillingModel):
    """Job payload for invoice generation.

    Carries the proration snapshot and the billing context captured when
    the plan changed, so the worker never reads them from live state.
    """

    request_id: str
    subscription_id: str
    user_id: str
    old_plan_id: str
    new_plan_id: str
    effective_date: UTCDateTime
    proration: ProrationResult
    removed_add_on_ids: list[str] = Field(default_factory=list)
    add_on_credit: Decimal = ZERO
    charge_immediately: bool = False
    currency: str = "USD"
    billing_address: BillingAddress | None = None
    period_start: UTCDateTime | None = None
    period_end: UTCDateTime | None = None
    discount_ids: list[str] = Field(default_factory=list)
    occurred_on: UTCDateTime = Field(default_factory=utcnow)

    def to_message(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_message(cls, message: dict[str, Any]) -> "PlanChangeInvoiceEvent":
        return cls.model_validate(message)


class ChangePlanOptions(BillingModel):
    effective_date: datetime | None = None
    charge_immediately: bool = False
    # client idempotency key; becomes the request id
    request_id: str | None = None


class ChangePlanResult(BillingModel):
    """What the caller gets back synchronously. The invoice follows later."""

    request_id: str
    subscription_id: str
    old_plan_id: str
    new_plan_id: str
    effective_date: UTCDateTime
    invoice_status: str = "pending"
    proration_credit: Decimal = ZERO
    proration_charge: Decimal = ZERO
    estimated_charge: Decimal = ZERO
    removed_add_on_ids: list[str] = Field(default_factory=list)
    add_on_credit: Decimal = ZERO
    job_id: str | None = None

    @classmethod
    def from_request(cls, request: PlanChangeRequest) -> "ChangePlanResult":
        return cls(
            request_id=request.id,
            subscription_id=request.subscription_id,
            old_plan_id=request.old_plan_id,
            new_plan_id=request.new_plan_id,
            effective_date=request.effective_date,
            invoice_status="pending" if request.is_pending else request.status.value,
            proration_credit=request.proration_credit,
            proration_charge=request.proration_charge,
            estimated_charge=request.proration.net,
            removed_add_on_ids=request.removed_add_on_ids,
            add_on_credit=request.add_on_credit,
            job_id=request.job_id,
        )


class PlanChangeStatusView(BillingModel):
    request_id: str
    subscription_id: str
    status: PlanChangeStatus
    invoice_id: str | None = None
    error_message: str | None = None
    retry_count: int = 0
    updated_at: UTCDateTime | None = None
