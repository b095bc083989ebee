"""
Tax calculator: strategy selection and provider fallback.
"""

from collections.abc import Sequence
from datetime import datetime

import structlog

from reelstream.platform.billing.config import EU_MEMBER_STATES
from reelstream.platform.billing.exceptions import TaxProviderError
from reelstream.platform.billing.invoicing.models import InvoiceLineItem
from reelstream.platform.billing.subscriptions.models import BillingAddress
from reelstream.platform.billing.tax.strategies import (
    ExternalTaxStrategy,
    StandardTaxStrategy,
    TaxStrategy,
    VatTaxStrategy,
)

logger = structlog.get_logger(__name__)

DEFAULT_BILLING_ADDRESS = BillingAddress(country="US")


class TaxCalculator:
    def __init__(
        self,
        standard: StandardTaxStrategy,
        vat: VatTaxStrategy,
        external: ExternalTaxStrategy | None = None,
        extended_tax_enabled: bool = False,
    ) -> None:
        self.standard = standard
        self.vat = vat
        self.external = external
        self.extended_tax_enabled = extended_tax_enabled

    def select_strategy(self, address: BillingAddress) -> TaxStrategy:
        if address.country in EU_MEMBER_STATES:
            return self.vat
        if address.country == "US" and self.extended_tax_enabled and self.external is not None:
            return self.external
        return self.standard

    async def calculate_line_taxes(
        self,
        lines: Sequence[InvoiceLineItem],
        address: BillingAddress | None,
        effective_date: datetime,
        currency: str = "USD",
    ) -> None:
        """Tax the positive lines in place, then recompute every line total.

        Credit lines are not taxed. A failing external provider falls back
        to the standard strategy.
        """
        address = address or DEFAULT_BILLING_ADDRESS
        taxable = [line for line in lines if line.is_taxable]
        strategy = self.select_strategy(address)

        try:
            await strategy.calculate(taxable, address, effective_date, currency)
        except TaxProviderError as e:
            logger.warning(
                "tax.provider.fallback",
                provider=strategy.provider.value,
                country=address.country,
                state=address.state,
                error=e.message,
            )
            await self.standard.calculate(taxable, address, effective_date, currency)

        for line in lines:
            line.recalculate_total()

        logger.debug(
            "tax.calculated",
            provider=strategy.provider.value,
            lines=len(taxable),
            country=address.country,
        )
