"""
Billing system exceptions.

Custom exceptions for billing operations with clear error messages.
Provides comprehensive error handling with status codes, context, and recovery hints.

Three families are used by the plan-change pipeline:

- validation errors (subscription/plan lookups, same-plan and concurrent
  changes) are raised straight to the caller and never retried;
- provider errors (external tax service) are recovered locally by falling
  back to the standard tax strategy;
- workflow errors are recorded on the plan-change request and re-raised so
  the job transport can retry or dead-letter the job.
"""

from typing import Any


class BillingError(Exception):
    """
    Base billing system error with enhanced context.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code for API responses
        status_code: HTTP status code for this error type
        context: Additional context data about the error
        recovery_hint: Suggested action to resolve the error
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int = 400,
        context: dict[str, Any] | None = None,
        recovery_hint: str | None = None,
    ):
        self.message = message
        self.error_code = error_code or "BILLING_ERROR"
        self.status_code = status_code
        self.context = context or {}
        self.recovery_hint = recovery_hint
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for API responses."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "status_code": self.status_code,
            "context": self.context,
            "recovery_hint": self.recovery_hint,
        }


# ============================================================================
# Subscription and plan errors
# ============================================================================


class SubscriptionError(BillingError):
    """Subscription-related errors."""

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        recovery_hint: str | None = None,
    ):
        super().__init__(
            message,
            "SUBSCRIPTION_ERROR",
            status_code=400,
            context=context,
            recovery_hint=recovery_hint,
        )


class SubscriptionNotFoundError(SubscriptionError):
    """Subscription not found error."""

    def __init__(
        self,
        message: str = "Subscription not found",
        subscription_id: str | None = None,
        user_id: str | None = None,
    ):
        context = {}
        if subscription_id:
            context["subscription_id"] = subscription_id
        if user_id:
            context["user_id"] = user_id

        super().__init__(
            message,
            context=context,
            recovery_hint="Verify the subscription ID belongs to the requesting user",
        )
        self.error_code = "SUBSCRIPTION_NOT_FOUND"
        self.status_code = 404


class InactiveSubscriptionError(SubscriptionError):
    """The subscription exists but is not active."""

    def __init__(
        self,
        message: str = "Cannot change plan of inactive subscription",
        subscription_id: str | None = None,
    ):
        super().__init__(
            message,
            context={"subscription_id": subscription_id} if subscription_id else None,
            recovery_hint="Reactivate the subscription before changing its plan",
        )
        self.error_code = "SUBSCRIPTION_INACTIVE"


class SubscriptionStateError(SubscriptionError):
    """Invalid subscription state transition."""

    def __init__(
        self, message: str, current_state: str | None = None, attempted_action: str | None = None
    ):
        context = {}
        if current_state:
            context["current_state"] = current_state
        if attempted_action:
            context["attempted_action"] = attempted_action

        super().__init__(
            message,
            context=context,
            recovery_hint="Check subscription status before performing this action",
        )
        self.error_code = "INVALID_SUBSCRIPTION_STATE"
        self.status_code = 409


class PlanNotFoundError(SubscriptionError):
    """Subscription plan not found error."""

    def __init__(self, message: str = "Plan not found", plan_id: str | None = None) -> None:
        super().__init__(
            message,
            context={"plan_id": plan_id} if plan_id else None,
            recovery_hint="Verify the plan ID and ensure the plan is available",
        )
        self.error_code = "PLAN_NOT_FOUND"
        self.status_code = 404


class SamePlanError(SubscriptionError):
    """Requested plan is the current plan."""

    def __init__(self, message: str = "Already on this plan", plan_id: str | None = None) -> None:
        super().__init__(
            message,
            context={"plan_id": plan_id} if plan_id else None,
            recovery_hint="Choose a different plan",
        )
        self.error_code = "SAME_PLAN"


class AddOnNotAllowedError(SubscriptionError):
    """Add-on is not offered on the subscription's plan."""

    def __init__(self, message: str, add_on_id: str | None = None, plan_id: str | None = None):
        context = {}
        if add_on_id:
            context["add_on_id"] = add_on_id
        if plan_id:
            context["plan_id"] = plan_id
        super().__init__(message, context=context, recovery_hint="Pick an add-on the plan allows")
        self.error_code = "ADDON_NOT_ALLOWED"


class AddOnNotFoundError(SubscriptionError):
    """Add-on is not active on the subscription."""

    def __init__(self, message: str, add_on_id: str | None = None) -> None:
        super().__init__(message, context={"add_on_id": add_on_id} if add_on_id else None)
        self.error_code = "ADDON_NOT_FOUND"
        self.status_code = 404


# ============================================================================
# Plan-change workflow errors
# ============================================================================


class PlanChangeError(BillingError):
    """Plan-change workflow errors."""

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        recovery_hint: str | None = None,
    ):
        super().__init__(
            message,
            "PLAN_CHANGE_ERROR",
            status_code=400,
            context=context,
            recovery_hint=recovery_hint,
        )


class PlanChangeInProgressError(PlanChangeError):
    """Another plan change for the subscription is still awaiting its invoice."""

    def __init__(self, subscription_id: str, pending_request_id: str | None = None) -> None:
        super().__init__(
            "A plan change is already in progress for this subscription. "
            "Please wait for it to complete.",
            context={
                "subscription_id": subscription_id,
                "pending_request_id": pending_request_id,
            },
            recovery_hint="Retry after the pending invoice has been generated",
        )
        self.error_code = "PLAN_CHANGE_IN_PROGRESS"
        self.status_code = 409


class PlanChangeRequestNotFoundError(PlanChangeError):
    """Plan-change request not found."""

    def __init__(self, request_id: str) -> None:
        super().__init__(
            f"Plan change request {request_id} not found", context={"request_id": request_id}
        )
        self.error_code = "PLAN_CHANGE_REQUEST_NOT_FOUND"
        self.status_code = 404


class PlanChangeStateError(PlanChangeError):
    """Illegal plan-change state transition."""

    def __init__(self, message: str, current_state: str, attempted_state: str) -> None:
        super().__init__(
            message,
            context={"current_state": current_state, "attempted_state": attempted_state},
        )
        self.error_code = "INVALID_PLAN_CHANGE_STATE"
        self.status_code = 409


# ============================================================================
# Invoice errors
# ============================================================================


class InvoiceError(BillingError):
    """Invoice-related errors."""

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        recovery_hint: str | None = None,
    ):
        super().__init__(
            message, "INVOICE_ERROR", status_code=400, context=context, recovery_hint=recovery_hint
        )


class InvoiceNotFoundError(InvoiceError):
    """Invoice not found error."""

    def __init__(self, message: str = "Invoice not found", invoice_id: str | None = None) -> None:
        super().__init__(message, context={"invoice_id": invoice_id} if invoice_id else None)
        self.error_code = "INVOICE_NOT_FOUND"
        self.status_code = 404


class InvoiceStateError(InvoiceError):
    """Illegal invoice status transition."""

    def __init__(self, message: str, current_status: str, attempted_status: str) -> None:
        super().__init__(
            message,
            context={"current_status": current_status, "attempted_status": attempted_status},
            recovery_hint="Only draft invoices can be finalized and only open invoices paid",
        )
        self.error_code = "INVALID_INVOICE_STATE"
        self.status_code = 409


# ============================================================================
# Tax, usage and credit errors
# ============================================================================


class TaxProviderError(BillingError):
    """External tax service failure. Always recovered by the tax calculator."""

    def __init__(self, message: str, provider: str | None = None) -> None:
        super().__init__(
            message,
            "TAX_PROVIDER_ERROR",
            status_code=502,
            context={"provider": provider} if provider else None,
        )


class UsageTrackingError(BillingError):
    """Usage recording errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message, "USAGE_TRACKING_ERROR", status_code=400, context=context)


class CreditBalanceError(BillingError):
    """A credit mutation would leave remaining_amount outside [0, amount]."""

    def __init__(self, message: str, credit_id: str | None = None) -> None:
        super().__init__(
            message,
            "CREDIT_BALANCE_ERROR",
            status_code=500,
            context={"credit_id": credit_id} if credit_id else None,
        )


__all__ = [
    "BillingError",
    "SubscriptionError",
    "SubscriptionNotFoundError",
    "InactiveSubscriptionError",
    "SubscriptionStateError",
    "PlanNotFoundError",
    "SamePlanError",
    "AddOnNotAllowedError",
    "AddOnNotFoundError",
    "PlanChangeError",
    "PlanChangeInProgressError",
    "PlanChangeRequestNotFoundError",
    "PlanChangeStateError",
    "InvoiceError",
    "InvoiceNotFoundError",
    "InvoiceStateError",
    "TaxProviderError",
    "UsageTrackingError",
    "CreditBalanceError",
]
