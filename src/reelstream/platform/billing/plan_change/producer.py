"""
Async job channel for plan-change invoices.
"""

import asyncio
from typing import Protocol

import structlog

from reelstream.platform.billing.plan_change.models import PlanChangeInvoiceEvent

logger = structlog.get_logger(__name__)

GENERATE_INVOICE_TASK = "billing.plan_change.generate_invoice"


def job_id_for(request_id: str) -> str:
    return f"plan-change-{request_id}"


class PlanChangeInvoiceQueue(Protocol):
    async def publish(self, event: PlanChangeInvoiceEvent) -> str:
        """Enqueue invoice generation and return the job id."""
        ...


class CeleryPlanChangeInvoiceQueue:
    """Sends plan-change jobs to the Celery worker by task name.

    The job id is derived from the request id, so a re-sent job carries the
    same id as the original.
    """

    def __init__(self, queue: str | None = None) -> None:
        from reelstream.platform.settings import settings

        self.queue = queue or settings.celery.plan_change_queue

    async def publish(self, event: PlanChangeInvoiceEvent) -> str:
        from reelstream.platform.celery_app import celery_app

        job_id = job_id_for(event.request_id)
        # send_task blocks on the broker connection
        await asyncio.to_thread(
            celery_app.send_task,
            GENERATE_INVOICE_TASK,
            kwargs={"message": event.to_message()},
            task_id=job_id,
            queue=self.queue,
        )
        logger.info(
            "plan_change.job.published",
            request_id=event.request_id,
            job_id=job_id,
            queue=self.queue,
        )
        return job_id
