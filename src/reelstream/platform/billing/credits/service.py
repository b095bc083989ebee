"""
Credit ledger.

Credits are applied FIFO: credits that expire come first, soonest expiry
first, and ties as well as non-expiring credits go oldest first.
"""

from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal
from uuid import uuid4

import structlog

from reelstream.platform.billing.core.enums import CreditType
from reelstream.platform.billing.credits.models import Credit, CreditApplication
from reelstream.platform.billing.credits.repository import CreditRepository
from reelstream.platform.billing.date_utils import ensure_utc, utcnow
from reelstream.platform.billing.money_utils import ZERO, round_amount

logger = structlog.get_logger(__name__)


def fifo_order(credits: Sequence[Credit]) -> list[Credit]:
    """Order credits for application."""
    return sorted(
        credits,
        key=lambda c: (
            c.expires_at is None,
            c.expires_at or c.created_at,
            c.created_at,
        ),
    )


class CreditLedger:
    def __init__(self, credit_repository: CreditRepository) -> None:
        self.credit_repository = credit_repository

    async def create_credit(
        self,
        user_id: str,
        amount: Decimal,
        credit_type: CreditType,
        currency: str = "USD",
        expires_at: datetime | None = None,
        description: str | None = None,
    ) -> Credit:
        credit = Credit(
            id=str(uuid4()),
            user_id=user_id,
            credit_type=credit_type,
            amount=round_amount(amount, currency),
            remaining_amount=round_amount(amount, currency),
            currency=currency,
            description=description,
            expires_at=expires_at,
            created_at=utcnow(),
        )
        await self.credit_repository.save(credit)
        logger.info(
            "credit.created",
            credit_id=credit.id,
            user_id=user_id,
            credit_type=credit_type.value,
            amount=str(credit.amount),
        )
        return credit

    async def get_available_credits(self, user_id: str, at: datetime | None = None) -> list[Credit]:
        at = ensure_utc(at) if at else utcnow()
        credits = await self.credit_repository.find_available(user_id, at)
        return fifo_order([c for c in credits if c.is_available(at)])

    async def get_credit_balance(self, user_id: str, at: datetime | None = None) -> Decimal:
        credits = await self.get_available_credits(user_id, at)
        return sum((c.remaining_amount for c in credits), ZERO)

    async def apply_credits_to_invoice(
        self,
        invoice_id: str,
        invoice_total: Decimal,
        credits: Sequence[Credit],
        at: datetime | None = None,
    ) -> list[CreditApplication]:
        """Draw down ``credits`` against ``invoice_total``.

        Never applies more than the invoice total; every touched credit is
        persisted.
        """
        at = ensure_utc(at) if at else utcnow()
        remaining = invoice_total
        applications: list[CreditApplication] = []

        for credit in fifo_order([c for c in credits if c.is_available(at)]):
            if remaining <= ZERO:
                break
            amount = min(credit.remaining_amount, remaining)
            credit.consume(amount, invoice_id)
            remaining -= amount
            await self.credit_repository.save(credit)
            applications.append(
                CreditApplication(
                    credit_id=credit.id,
                    amount_applied=amount,
                    remaining_balance=credit.remaining_amount,
                )
            )

        if applications:
            logger.info(
                "credits.applied",
                invoice_id=invoice_id,
                credits=len(applications),
                total=str(invoice_total - remaining),
            )
        return applications
