"""
Money and currency utilities using py-moneyed and Babel.

Every persisted monetary amount goes through ``round_amount`` so that
stored values carry exactly the currency's minor-unit precision.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from babel import Locale
from babel.core import UnknownLocaleError
from babel.numbers import format_currency, get_currency_precision
from moneyed import Currency, Money, get_currency
from moneyed.classes import CurrencyDoesNotExist

ZERO = Decimal("0")

# Default locale for formatting
DEFAULT_LOCALE = "en_US"


class MoneyHandler:
    """Central handler for money operations with proper error handling."""

    def __init__(self, default_currency: str = "USD", default_locale: str = DEFAULT_LOCALE) -> None:
        self.default_currency = self._validate_currency(default_currency)
        self.default_locale = self._validate_locale(default_locale)

    def _validate_currency(self, currency_code: str) -> Currency:
        """Validate and return Currency object."""
        try:
            return get_currency(currency_code.upper())
        except CurrencyDoesNotExist:
            raise ValueError(f"Invalid currency code: {currency_code}")

    def _validate_locale(self, locale_code: str) -> str:
        try:
            Locale.parse(locale_code)
            return locale_code
        except (UnknownLocaleError, ValueError):
            return DEFAULT_LOCALE

    def create_money(self, amount: int | Decimal | str, currency: str | None = None) -> Money:
        """Create Money object with proper validation."""
        currency = currency or self.default_currency.code
        validated_currency = self._validate_currency(currency)
        return Money(amount=Decimal(str(amount)), currency=validated_currency)

    def get_currency_precision(self, currency_code: str) -> int:
        """Get decimal precision for a currency."""
        return get_currency_precision(currency_code.upper())

    def quantum(self, currency_code: str) -> Decimal:
        """Smallest representable amount for a currency, e.g. 0.01 for USD."""
        return Decimal(1).scaleb(-self.get_currency_precision(currency_code))

    def round_amount(self, amount: Decimal, currency_code: str | None = None) -> Decimal:
        """Round a Decimal half-up to the currency's precision."""
        currency_code = currency_code or self.default_currency.code
        return amount.quantize(self.quantum(currency_code), rounding=ROUND_HALF_UP)

    def format_money(self, money: Money, locale: str | None = None, **kwargs: Any) -> str:
        """Format Money object with locale-aware formatting."""
        validated_locale = self._validate_locale(locale or self.default_locale)
        try:
            return format_currency(
                number=money.amount, currency=money.currency.code, locale=validated_locale, **kwargs
            )
        except (TypeError, ValueError):
            return f"{money.currency.code} {money.amount}"


# Global instance for convenience
money_handler = MoneyHandler()


def round_amount(amount: Decimal, currency: str = "USD") -> Decimal:
    """Round an amount half-up to currency precision with the default handler."""
    return money_handler.round_amount(amount, currency)


def create_money(amount: int | Decimal | str, currency: str = "USD") -> Money:
    """Create Money object with default handler."""
    return money_handler.create_money(amount, currency)


def format_money(amount: Decimal, currency: str = "USD", locale: str | None = None) -> str:
    """Format an amount for display, e.g. ``$9.99``."""
    return money_handler.format_money(create_money(amount, currency), locale)


__all__ = [
    "ZERO",
    "MoneyHandler",
    "money_handler",
    "round_amount",
    "create_money",
    "format_money",
]
