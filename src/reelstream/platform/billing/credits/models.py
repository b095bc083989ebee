"""
Credit models.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import Field, model_validator

from reelstream.platform.billing.core.enums import CreditType
from reelstream.platform.billing.core.models import BillingModel
from reelstream.platform.billing.date_utils import UTCDateTime, ensure_utc
from reelstream.platform.billing.exceptions import CreditBalanceError
from reelstream.platform.billing.money_utils import ZERO


class Credit(BillingModel):
    """A credit balance. ``remaining_amount`` only ever decreases."""

    id: str
    user_id: str
    credit_type: CreditType
    amount: Decimal = Field(gt=0)
    remaining_amount: Decimal
    currency: str = "USD"
    description: str | None = None
    expires_at: UTCDateTime | None = None
    applied_to_invoice_id: str | None = None
    created_at: UTCDateTime

    @model_validator(mode="after")
    def check_balance(self) -> "Credit":
        if not ZERO <= self.remaining_amount <= self.amount:
            raise CreditBalanceError(
                f"Credit remaining amount {self.remaining_amount} outside [0, {self.amount}]",
                credit_id=self.id,
            )
        return self

    def is_available(self, at: datetime) -> bool:
        return self.remaining_amount > ZERO and (
            self.expires_at is None or self.expires_at > ensure_utc(at)
        )

    def consume(self, amount: Decimal, invoice_id: str) -> None:
        """Draw ``amount`` from the balance for ``invoice_id``."""
        if amount <= ZERO or amount > self.remaining_amount:
            raise CreditBalanceError(
                f"Cannot apply {amount} from credit with {self.remaining_amount} remaining",
                credit_id=self.id,
            )
        self.remaining_amount = self.remaining_amount - amount
        self.applied_to_invoice_id = invoice_id


class CreditApplication(BillingModel):
    credit_id: str
    amount_applied: Decimal
    remaining_balance: Decimal
