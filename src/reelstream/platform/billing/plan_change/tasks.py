"""
Celery task that runs the plan-change invoice worker.
"""

import asyncio
from typing import Any

import httpx
import structlog
from celery import shared_task

from reelstream.platform.billing.config import get_billing_config
from reelstream.platform.billing.invoicing.models import Invoice
from reelstream.platform.billing.plan_change.models import PlanChangeInvoiceEvent
from reelstream.platform.billing.plan_change.producer import GENERATE_INVOICE_TASK
from reelstream.platform.db import dispose_async_engine, get_async_db
from reelstream.platform.settings import settings

logger = structlog.get_logger(__name__)


async def _generate_invoice(event: PlanChangeInvoiceEvent) -> Invoice:
    # Imported here so the worker module loads without building the full graph
    from reelstream.platform.billing.dependencies import build_plan_change_invoice_generator

    config = get_billing_config()
    try:
        async with httpx.AsyncClient(timeout=config.tax.service_timeout) as http_client:
            async with get_async_db() as db:
                generator = build_plan_change_invoice_generator(db, http_client, config=config)
                return await generator.generate(event)
    finally:
        await dispose_async_engine()


@shared_task(
    name=GENERATE_INVOICE_TASK,
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=settings.celery.plan_change_backoff_max,
    retry_jitter=True,
    max_retries=settings.celery.plan_change_max_retries,
    acks_late=True,
)
def generate_plan_change_invoice_task(self: Any, message: dict[str, Any]) -> dict[str, Any]:
    """Generate the invoice for one plan-change request."""
    event = PlanChangeInvoiceEvent.from_message(message)
    logger.info(
        "plan_change.job.started",
        request_id=event.request_id,
        job_id=self.request.id,
        attempt=self.request.retries,
    )
    invoice = asyncio.run(_generate_invoice(event))
    return {
        "request_id": event.request_id,
        "invoice_id": invoice.id,
        "invoice_number": invoice.invoice_number,
        "status": invoice.status.value,
        "amount_due": str(invoice.amount_due),
    }
