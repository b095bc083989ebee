"""
Billing module configuration
"""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

# Standard VAT percentages for EU member states
EU_VAT_RATES: dict[str, Decimal] = {
    "AT": Decimal("20"),
    "BE": Decimal("21"),
    "BG": Decimal("20"),
    "HR": Decimal("25"),
    "CY": Decimal("19"),
    "CZ": Decimal("21"),
    "DK": Decimal("25"),
    "EE": Decimal("22"),
    "FI": Decimal("24"),
    "FR": Decimal("20"),
    "DE": Decimal("19"),
    "GR": Decimal("24"),
    "HU": Decimal("27"),
    "IE": Decimal("23"),
    "IT": Decimal("22"),
    "LV": Decimal("21"),
    "LT": Decimal("21"),
    "LU": Decimal("17"),
    "MT": Decimal("18"),
    "NL": Decimal("21"),
    "PL": Decimal("23"),
    "PT": Decimal("23"),
    "RO": Decimal("19"),
    "SK": Decimal("20"),
    "SI": Decimal("22"),
    "ES": Decimal("21"),
    "SE": Decimal("25"),
}

EU_MEMBER_STATES: frozenset[str] = frozenset(EU_VAT_RATES)


class TaxConfig(BaseModel):
    """Tax configuration"""

    model_config = ConfigDict()

    extended_tax_enabled: bool = Field(
        False, description="Route US invoices to the external tax service"
    )
    service_url: str = Field(
        "https://tax.example.com/v1/calculate", description="External tax service endpoint"
    )
    service_api_key: str | None = Field(None, description="External tax service API key")
    service_timeout: float = Field(10.0, description="External tax request timeout in seconds")
    vat_rates: dict[str, Decimal] = Field(
        default_factory=lambda: dict(EU_VAT_RATES), description="VAT percentage per country"
    )
    default_vat_rate: Decimal = Field(
        Decimal("20"), description="VAT percentage for EU members missing from vat_rates"
    )


class CurrencyConfig(BaseModel):
    """Currency configuration - Single currency support"""

    model_config = ConfigDict()

    default_currency: str = Field("USD", description="Default currency code")
    default_locale: str = Field("en_US", description="Locale for formatted amounts")


class InvoiceConfig(BaseModel):
    """Invoice configuration"""

    model_config = ConfigDict()

    number_prefix: str = Field("INV", description="Provider prefix of invoice numbers")
    due_days_default: int = Field(7, description="Default payment terms in days")


class UsageConfig(BaseModel):
    """Usage metering configuration"""

    model_config = ConfigDict()

    quota_thresholds: list[int] = Field(
        default_factory=lambda: [75, 90, 100],
        description="Quota percentages that trigger usage notifications",
    )


class PlanChangeConfig(BaseModel):
    """Plan change configuration"""

    model_config = ConfigDict()

    addon_estimated_period_days: int = Field(
        30, description="Assumed add-on period length when the period end is unknown"
    )


class BillingConfig(BaseModel):
    """Main billing configuration"""

    model_config = ConfigDict()

    tax: TaxConfig = Field(default_factory=TaxConfig)
    currency: CurrencyConfig = Field(default_factory=CurrencyConfig)
    invoice: InvoiceConfig = Field(default_factory=InvoiceConfig)
    usage: UsageConfig = Field(default_factory=UsageConfig)
    plan_change: PlanChangeConfig = Field(default_factory=PlanChangeConfig)

    @classmethod
    def from_settings(cls) -> "BillingConfig":
        """Create configuration from the platform settings."""
        from reelstream.platform.settings import settings

        billing = settings.billing
        return cls(
            tax=TaxConfig(
                extended_tax_enabled=billing.extended_tax_enabled,
                service_url=billing.tax_service_url,
                service_api_key=billing.tax_service_api_key or None,
                service_timeout=billing.tax_service_timeout,
                default_vat_rate=Decimal(billing.default_vat_rate),
            ),
            currency=CurrencyConfig(default_currency=billing.default_currency),
            invoice=InvoiceConfig(
                number_prefix=billing.invoice_number_prefix,
                due_days_default=billing.invoice_due_days,
            ),
            usage=UsageConfig(quota_thresholds=billing.usage_quota_thresholds),
            plan_change=PlanChangeConfig(
                addon_estimated_period_days=billing.addon_estimated_period_days
            ),
        )


# Global configuration instance
_billing_config: BillingConfig | None = None


def get_billing_config() -> BillingConfig:
    """Get the global billing configuration instance"""
    global _billing_config
    if _billing_config is None:
        _billing_config = BillingConfig.from_settings()
    return _billing_config


def set_billing_config(config: BillingConfig | None) -> None:
    """Set the global billing configuration instance"""
    global _billing_config
    _billing_config = config
