"""
Two-phase plan changes.

The orchestrator applies the change and enqueues a job synchronously; the
invoice generator turns the job into an invoice asynchronously.
"""

from reelstream.platform.billing.plan_change.models import (
    ChangePlanOptions,
    ChangePlanResult,
    PlanChangeInvoiceEvent,
    PlanChangeRequest,
    PlanChangeStatusView,
)

__all__ = [
    "ChangePlanOptions",
    "ChangePlanResult",
    "PlanChangeInvoiceEvent",
    "PlanChangeRequest",
    "PlanChangeStatusView",
]
