"""Tests for tax strategies, provider selection and external-provider fallback."""

import json
from datetime import UTC, datetime
from decimal import Decimal

import httpx
import pytest

from reelstream.platform.billing.config import TaxConfig
from reelstream.platform.billing.core.enums import ChargeType, TaxProvider
from reelstream.platform.billing.exceptions import TaxProviderError
from reelstream.platform.billing.invoicing.models import InvoiceLineItem
from reelstream.platform.billing.subscriptions.models import BillingAddress
from reelstream.platform.billing.tax.calculator import TaxCalculator
from reelstream.platform.billing.tax.models import TaxRate
from reelstream.platform.billing.tax.repository import TaxRateRepository
from reelstream.platform.billing.tax.strategies import (
    ExternalTaxStrategy,
    StandardTaxStrategy,
    VatTaxStrategy,
)

JAN_16 = datetime(2025, 1, 16, tzinfo=UTC)
CALIFORNIA = BillingAddress(country="us", state="CA", city="Los Angeles", zipcode="90001")


def _lines() -> list[InvoiceLineItem]:
    return [
        InvoiceLineItem(
            description="Unused time on Basic",
            charge_type=ChargeType.PRORATION,
            unit_price=Decimal("-5.00"),
            amount=Decimal("-5.00"),
        ),
        InvoiceLineItem(
            description="Prorated charge for Premium (15 days)",
            charge_type=ChargeType.PRORATION,
            unit_price=Decimal("10.00"),
            amount=Decimal("10.00"),
        ),
    ]


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def tax_config() -> TaxConfig:
    return TaxConfig(
        extended_tax_enabled=True,
        service_url="https://tax.test/v1/calculate",
        service_api_key="secret",
    )


@pytest.fixture
async def tax_rates(async_db_session):
    repository = TaxRateRepository(async_db_session)
    for rate_id, state, rate in (("rate-us", None, "5.00"), ("rate-ca", "CA", "7.25")):
        await repository.save(
            TaxRate(
                id=rate_id,
                name=f"US {state or 'federal'}",
                country="US",
                state=state,
                rate=Decimal(rate),
                effective_from=datetime(2024, 1, 1, tzinfo=UTC),
            )
        )
    return repository


@pytest.mark.unit
class TestVatStrategy:
    async def test_member_state_rate(self, tax_config):
        lines = _lines()[1:]
        await VatTaxStrategy(tax_config).calculate(
            lines, BillingAddress(country="DE"), JAN_16, "EUR"
        )

        assert lines[0].tax_rate == Decimal("19")
        assert lines[0].tax_amount == Decimal("1.90")
        assert lines[0].tax_provider == TaxProvider.VAT
        assert lines[0].tax_jurisdiction == "EU-DE"

    async def test_missing_member_uses_default_rate(self):
        config = TaxConfig(vat_rates={}, default_vat_rate=Decimal("20"))
        lines = _lines()[1:]
        await VatTaxStrategy(config).calculate(lines, BillingAddress(country="FR"), JAN_16, "EUR")
        assert lines[0].tax_amount == Decimal("2.00")


@pytest.mark.integration
class TestStandardStrategy:
    async def test_state_rate_wins(self, tax_rates):
        lines = _lines()[1:]
        await StandardTaxStrategy(tax_rates).calculate(lines, CALIFORNIA, JAN_16, "USD")

        assert lines[0].tax_rate == Decimal("7.25")
        assert lines[0].tax_amount == Decimal("0.73")
        assert lines[0].tax_jurisdiction == "US-CA"

    async def test_country_rate_without_state_match(self, tax_rates):
        lines = _lines()[1:]
        address = BillingAddress(country="US", state="TX")
        await StandardTaxStrategy(tax_rates).calculate(lines, address, JAN_16, "USD")

        assert lines[0].tax_rate == Decimal("5.00")
        assert lines[0].tax_jurisdiction == "US"

    async def test_no_rate_is_zero(self, tax_rates):
        lines = _lines()[1:]
        await StandardTaxStrategy(tax_rates).calculate(
            lines, BillingAddress(country="CA", state="ON"), JAN_16, "USD"
        )

        assert lines[0].tax_amount == Decimal("0")
        assert lines[0].tax_jurisdiction == "CA-ON"


@pytest.mark.unit
class TestExternalStrategy:
    async def test_maps_response_by_position(self, tax_config):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={"lines": [{"tax_amount": "0.86", "tax_rate": "8.625", "jurisdiction": "NY"}]},
            )

        lines = _lines()[1:]
        async with _client(handler) as client:
            await ExternalTaxStrategy(client, tax_config).calculate(
                lines, CALIFORNIA, JAN_16, "USD"
            )

        assert seen["auth"] == "Bearer secret"
        assert seen["body"]["lines"][0]["amount"] == "10.00"
        assert lines[0].tax_amount == Decimal("0.86")
        assert lines[0].tax_provider == TaxProvider.EXTERNAL
        assert lines[0].tax_jurisdiction == "NY"

    async def test_server_error_raises_provider_error(self, tax_config):
        async with _client(lambda request: httpx.Response(503)) as client:
            with pytest.raises(TaxProviderError):
                await ExternalTaxStrategy(client, tax_config).calculate(
                    _lines()[1:], CALIFORNIA, JAN_16, "USD"
                )

    async def test_line_count_mismatch_raises_provider_error(self, tax_config):
        async with _client(lambda request: httpx.Response(200, json={"lines": []})) as client:
            with pytest.raises(TaxProviderError):
                await ExternalTaxStrategy(client, tax_config).calculate(
                    _lines()[1:], CALIFORNIA, JAN_16, "USD"
                )

    @pytest.mark.parametrize("bad_amount", ["NaN", "Infinity", "-Infinity", "-0.50"])
    async def test_unusable_amount_raises_provider_error(self, tax_config, bad_amount):
        response = {
            "lines": [
                {"tax_amount": "0.86", "tax_rate": "8.625"},
                {"tax_amount": bad_amount, "tax_rate": "8.625"},
            ]
        }
        lines = [_lines()[1], _lines()[1]]
        async with _client(lambda request: httpx.Response(200, json=response)) as client:
            with pytest.raises(TaxProviderError):
                await ExternalTaxStrategy(client, tax_config).calculate(
                    lines, CALIFORNIA, JAN_16, "USD"
                )

        # the valid first line is left untouched as well
        assert [line.tax_amount for line in lines] == [Decimal("0"), Decimal("0")]
        assert all(line.tax_provider is None for line in lines)

    async def test_non_finite_rate_raises_provider_error(self, tax_config):
        response = {"lines": [{"tax_amount": "0.86", "tax_rate": "NaN"}]}
        async with _client(lambda request: httpx.Response(200, json=response)) as client:
            with pytest.raises(TaxProviderError):
                await ExternalTaxStrategy(client, tax_config).calculate(
                    _lines()[1:], CALIFORNIA, JAN_16, "USD"
                )


@pytest.mark.integration
class TestTaxCalculator:
    def _calculator(self, tax_rates, tax_config, client=None, enabled=True):
        return TaxCalculator(
            standard=StandardTaxStrategy(tax_rates),
            vat=VatTaxStrategy(tax_config),
            external=ExternalTaxStrategy(client, tax_config) if client else None,
            extended_tax_enabled=enabled,
        )

    @pytest.mark.parametrize(
        ("country", "enabled", "expected"),
        [
            ("DE", True, TaxProvider.VAT),
            ("IE", False, TaxProvider.VAT),
            ("US", True, TaxProvider.EXTERNAL),
            ("US", False, TaxProvider.STANDARD),
            ("CA", True, TaxProvider.STANDARD),
        ],
    )
    async def test_strategy_selection(self, tax_rates, tax_config, country, enabled, expected):
        async with _client(lambda request: httpx.Response(500)) as client:
            calculator = self._calculator(tax_rates, tax_config, client, enabled)
            assert calculator.select_strategy(BillingAddress(country=country)).provider == expected

    async def test_provider_failure_falls_back_to_standard(self, tax_rates, tax_config):
        lines = _lines()
        async with _client(lambda request: httpx.Response(500)) as client:
            calculator = self._calculator(tax_rates, tax_config, client)
            await calculator.calculate_line_taxes(lines, CALIFORNIA, JAN_16, "USD")

        assert lines[1].tax_provider == TaxProvider.STANDARD
        assert lines[1].tax_amount == Decimal("0.73")
        assert lines[1].total_amount == Decimal("10.73")

    async def test_non_finite_provider_amount_falls_back_to_standard(self, tax_rates, tax_config):
        response = {"lines": [{"tax_amount": "Infinity", "tax_rate": "8.625"}]}
        lines = _lines()
        async with _client(lambda request: httpx.Response(200, json=response)) as client:
            calculator = self._calculator(tax_rates, tax_config, client)
            await calculator.calculate_line_taxes(lines, CALIFORNIA, JAN_16, "USD")

        assert lines[1].tax_provider == TaxProvider.STANDARD
        assert lines[1].tax_amount == Decimal("0.73")

    async def test_credit_lines_are_not_taxed(self, tax_rates, tax_config):
        lines = _lines()
        calculator = self._calculator(tax_rates, tax_config, enabled=False)
        await calculator.calculate_line_taxes(lines, CALIFORNIA, JAN_16, "USD")

        assert lines[0].tax_amount == Decimal("0")
        assert lines[0].tax_provider is None
        assert lines[0].total_amount == Decimal("-5.00")

    async def test_missing_address_defaults_to_us(self, tax_rates, tax_config):
        lines = _lines()
        calculator = self._calculator(tax_rates, tax_config, enabled=False)
        await calculator.calculate_line_taxes(lines, None, JAN_16, "USD")

        assert lines[1].tax_rate == Decimal("5.00")
