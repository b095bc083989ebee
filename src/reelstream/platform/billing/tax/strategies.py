"""
Tax calculation strategies.

Each strategy fills ``tax_amount``, ``tax_rate``, ``tax_provider`` and
``tax_jurisdiction`` on the taxable (positive) lines it is given.
"""

from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol

import httpx
import structlog

from reelstream.platform.billing.config import TaxConfig
from reelstream.platform.billing.core.enums import TaxProvider
from reelstream.platform.billing.exceptions import TaxProviderError
from reelstream.platform.billing.invoicing.models import InvoiceLineItem
from reelstream.platform.billing.money_utils import ZERO, round_amount
from reelstream.platform.billing.subscriptions.models import BillingAddress
from reelstream.platform.billing.tax.repository import TaxRateRepository

logger = structlog.get_logger(__name__)


class TaxStrategy(Protocol):
    provider: TaxProvider

    async def calculate(
        self,
        lines: Sequence[InvoiceLineItem],
        address: BillingAddress,
        effective_date: datetime,
        currency: str,
    ) -> None: ...


def _apply_rate(
    line: InvoiceLineItem,
    rate: Decimal,
    provider: TaxProvider,
    jurisdiction: str,
    currency: str,
) -> None:
    line.tax_rate = rate
    line.tax_amount = round_amount(line.amount * rate / Decimal(100), currency)
    line.tax_provider = provider
    line.tax_jurisdiction = jurisdiction


class StandardTaxStrategy:
    """Internal rate table keyed by country and state. No match means 0%."""

    provider = TaxProvider.STANDARD

    def __init__(self, tax_rate_repository: TaxRateRepository) -> None:
        self.tax_rate_repository = tax_rate_repository

    async def calculate(
        self,
        lines: Sequence[InvoiceLineItem],
        address: BillingAddress,
        effective_date: datetime,
        currency: str,
    ) -> None:
        tax_rate = await self.tax_rate_repository.find_rate(
            address.country, address.state, effective_date
        )
        rate = tax_rate.rate if tax_rate else ZERO
        jurisdiction = (
            tax_rate.jurisdiction
            if tax_rate
            else (f"{address.country}-{address.state}" if address.state else address.country)
        )
        for line in lines:
            _apply_rate(line, rate, self.provider, jurisdiction, currency)


class VatTaxStrategy:
    """Flat VAT per EU member state."""

    provider = TaxProvider.VAT

    def __init__(self, config: TaxConfig) -> None:
        self.config = config

    def rate_for(self, country: str) -> Decimal:
        return self.config.vat_rates.get(country, self.config.default_vat_rate)

    async def calculate(
        self,
        lines: Sequence[InvoiceLineItem],
        address: BillingAddress,
        effective_date: datetime,
        currency: str,
    ) -> None:
        rate = self.rate_for(address.country)
        for line in lines:
            _apply_rate(line, rate, self.provider, f"EU-{address.country}", currency)


class ExternalTaxStrategy:
    """
    External tax service client.

    Sends one request with a line per taxable item and maps the response
    back by position. Every failure surfaces as ``TaxProviderError`` and
    leaves the lines untouched.
    """

    provider = TaxProvider.EXTERNAL

    def __init__(self, http_client: httpx.AsyncClient, config: TaxConfig) -> None:
        self.http_client = http_client
        self.config = config

    def _build_request(
        self,
        lines: Sequence[InvoiceLineItem],
        address: BillingAddress,
        effective_date: datetime,
        currency: str,
    ) -> dict[str, Any]:
        return {
            "currency": currency,
            "transaction_date": effective_date.isoformat(),
            "address": address.model_dump(),
            "lines": [
                {
                    "index": index,
                    "description": line.description,
                    "charge_type": line.charge_type.value,
                    "quantity": str(line.quantity),
                    "amount": str(line.amount),
                }
                for index, line in enumerate(lines)
            ],
        }

    @staticmethod
    def _parse_line(
        result: dict[str, Any], address: BillingAddress, currency: str
    ) -> tuple[Decimal, Decimal, str]:
        tax_amount = Decimal(str(result["tax_amount"]))
        rate = Decimal(str(result["tax_rate"]))
        if not (tax_amount.is_finite() and rate.is_finite()):
            raise ValueError(f"non-finite tax value {tax_amount}/{rate}")
        if tax_amount < ZERO or rate < ZERO:
            raise ValueError(f"negative tax value {tax_amount}/{rate}")
        jurisdiction = str(result.get("jurisdiction") or address.country)
        return round_amount(tax_amount, currency), rate, jurisdiction

    async def calculate(
        self,
        lines: Sequence[InvoiceLineItem],
        address: BillingAddress,
        effective_date: datetime,
        currency: str,
    ) -> None:
        if not lines:
            return

        headers = {}
        if self.config.service_api_key:
            headers["Authorization"] = f"Bearer {self.config.service_api_key}"

        try:
            response = await self.http_client.post(
                self.config.service_url,
                json=self._build_request(lines, address, effective_date, currency),
                headers=headers,
                timeout=self.config.service_timeout,
            )
            response.raise_for_status()
            results = response.json()["lines"]
        except httpx.HTTPError as e:
            raise TaxProviderError(f"Tax service request failed: {e}", provider="external") from e
        except (ValueError, KeyError, TypeError) as e:
            raise TaxProviderError(
                f"Tax service returned an invalid response: {e}", provider="external"
            ) from e

        if not isinstance(results, list) or len(results) != len(lines):
            raise TaxProviderError(
                "Tax service returned a different number of lines than requested",
                provider="external",
            )

        # every line is validated before any is written
        try:
            parsed = [self._parse_line(result, address, currency) for result in results]
        except (KeyError, TypeError, ValueError, InvalidOperation) as e:
            raise TaxProviderError(
                f"Tax service returned an invalid line: {e}", provider="external"
            ) from e

        for line, (tax_amount, rate, jurisdiction) in zip(lines, parsed):
            line.tax_amount = tax_amount
            line.tax_rate = rate
            line.tax_provider = self.provider
            line.tax_jurisdiction = jurisdiction
