"""
Explicit wiring of billing services.

Each factory builds a service and its collaborators around one session.
Nothing here is cached; callers own the session and the HTTP client.
"""

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from reelstream.platform.billing.config import BillingConfig, get_billing_config
from reelstream.platform.billing.credits.repository import CreditRepository
from reelstream.platform.billing.credits.service import CreditLedger
from reelstream.platform.billing.discounts.engine import DiscountEngine, DiscountService
from reelstream.platform.billing.discounts.repository import DiscountRepository
from reelstream.platform.billing.invoicing.repository import InvoiceRepository
from reelstream.platform.billing.invoicing.service import InvoiceService
from reelstream.platform.billing.plan_change.invoice_generator import PlanChangeInvoiceGenerator
from reelstream.platform.billing.plan_change.producer import (
    CeleryPlanChangeInvoiceQueue,
    PlanChangeInvoiceQueue,
)
from reelstream.platform.billing.plan_change.repository import PlanChangeRequestRepository
from reelstream.platform.billing.plan_change.service import PlanChangeService
from reelstream.platform.billing.subscriptions.addons import AddOnMigrator
from reelstream.platform.billing.subscriptions.proration import ProrationCalculator
from reelstream.platform.billing.subscriptions.repository import (
    AddOnRepository,
    ChargeRepository,
    PlanRepository,
    SubscriptionRepository,
)
from reelstream.platform.billing.subscriptions.service import SubscriptionService
from reelstream.platform.billing.tax.calculator import TaxCalculator
from reelstream.platform.billing.tax.repository import TaxRateRepository
from reelstream.platform.billing.tax.strategies import (
    ExternalTaxStrategy,
    StandardTaxStrategy,
    VatTaxStrategy,
)
from reelstream.platform.billing.usage.repository import UsageRecordRepository
from reelstream.platform.billing.usage.service import UsageService
from reelstream.platform.events import EventBus, get_event_bus


def build_tax_calculator(
    db: AsyncSession,
    http_client: httpx.AsyncClient | None = None,
    config: BillingConfig | None = None,
) -> TaxCalculator:
    config = config or get_billing_config()
    external = ExternalTaxStrategy(http_client, config.tax) if http_client is not None else None
    return TaxCalculator(
        standard=StandardTaxStrategy(TaxRateRepository(db)),
        vat=VatTaxStrategy(config.tax),
        external=external,
        extended_tax_enabled=config.tax.extended_tax_enabled,
    )


def build_usage_service(
    db: AsyncSession,
    event_bus: EventBus | None = None,
    config: BillingConfig | None = None,
) -> UsageService:
    config = config or get_billing_config()
    return UsageService(
        usage_repository=UsageRecordRepository(db),
        subscription_repository=SubscriptionRepository(db),
        plan_repository=PlanRepository(db),
        event_bus=event_bus or get_event_bus(),
        quota_thresholds=config.usage.quota_thresholds,
    )


def build_invoice_service(db: AsyncSession, config: BillingConfig | None = None) -> InvoiceService:
    config = config or get_billing_config()
    return InvoiceService(
        InvoiceRepository(db),
        number_prefix=config.invoice.number_prefix,
        due_days=config.invoice.due_days_default,
    )


def build_credit_ledger(db: AsyncSession) -> CreditLedger:
    return CreditLedger(CreditRepository(db))


def build_subscription_service(
    db: AsyncSession,
    event_bus: EventBus | None = None,
) -> SubscriptionService:
    return SubscriptionService(
        db=db,
        subscription_repository=SubscriptionRepository(db),
        plan_repository=PlanRepository(db),
        add_on_repository=AddOnRepository(db),
        event_bus=event_bus or get_event_bus(),
    )


def build_plan_change_service(
    db: AsyncSession,
    invoice_queue: PlanChangeInvoiceQueue | None = None,
    event_bus: EventBus | None = None,
    config: BillingConfig | None = None,
) -> PlanChangeService:
    config = config or get_billing_config()
    calculator = ProrationCalculator(config.currency.default_currency)
    return PlanChangeService(
        db=db,
        subscription_repository=SubscriptionRepository(db),
        plan_repository=PlanRepository(db),
        charge_repository=ChargeRepository(db),
        request_repository=PlanChangeRequestRepository(db),
        proration_calculator=calculator,
        add_on_migrator=AddOnMigrator(
            calculator, estimated_period_days=config.plan_change.addon_estimated_period_days
        ),
        invoice_queue=invoice_queue or CeleryPlanChangeInvoiceQueue(),
        event_bus=event_bus or get_event_bus(),
    )


def build_plan_change_invoice_generator(
    db: AsyncSession,
    http_client: httpx.AsyncClient | None = None,
    event_bus: EventBus | None = None,
    config: BillingConfig | None = None,
) -> PlanChangeInvoiceGenerator:
    config = config or get_billing_config()
    return PlanChangeInvoiceGenerator(
        db=db,
        request_repository=PlanChangeRequestRepository(db),
        plan_repository=PlanRepository(db),
        invoice_service=build_invoice_service(db, config),
        usage_service=build_usage_service(db, event_bus, config),
        tax_calculator=build_tax_calculator(db, http_client, config),
        discount_service=DiscountService(
            DiscountRepository(db), DiscountEngine(config.currency.default_currency)
        ),
        credit_ledger=build_credit_ledger(db),
    )
