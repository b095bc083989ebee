"""
Tax engine.

Routes each invoice to a jurisdiction-appropriate strategy: VAT for EU
billing addresses, the external tax service for US addresses when the
merchant enabled it, and the internal standard-rate table otherwise.
"""

from reelstream.platform.billing.tax.calculator import TaxCalculator
from reelstream.platform.billing.tax.models import TaxRate
from reelstream.platform.billing.tax.strategies import (
    ExternalTaxStrategy,
    StandardTaxStrategy,
    TaxStrategy,
    VatTaxStrategy,
)

__all__ = [
    "TaxCalculator",
    "TaxRate",
    "TaxStrategy",
    "StandardTaxStrategy",
    "ExternalTaxStrategy",
    "VatTaxStrategy",
]
