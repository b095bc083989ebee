"""
Celery application configuration.

The plan-change invoice task runs on its own queue so billing jobs are not
starved by other work.
"""

from typing import Any

from celery import Celery
from celery.signals import worker_process_init
from kombu import Queue

from reelstream.platform.logging import setup_logging
from reelstream.platform.settings import settings

# Create Celery application
celery_app = Celery(
    "reelstream_billing",
    broker=settings.celery.broker_url,
    backend=settings.celery.result_backend,
    include=[
        "reelstream.platform.billing.plan_change.tasks",
    ],
)

# Configure Celery settings
celery_app.conf.update(
    # Task routing
    task_routes={
        "billing.plan_change.*": {"queue": settings.celery.plan_change_queue},
    },
    # Queue configuration
    task_default_queue="default",
    task_queues=(
        Queue("default", routing_key="default"),
        Queue(settings.celery.plan_change_queue, routing_key=settings.celery.plan_change_queue),
    ),
    # Task execution settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.celery.timezone,
    enable_utc=settings.celery.enable_utc,
    # Task result settings
    result_expires=3600,  # 1 hour
    task_track_started=True,
    task_time_limit=settings.celery.task_time_limit,
    task_soft_time_limit=settings.celery.task_soft_time_limit,
    # Worker settings
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_max_tasks_per_child=1000,
    # Monitoring
    worker_send_task_events=True,
    task_send_sent_event=True,
)


@worker_process_init.connect
def configure_worker_logging(**kwargs: Any) -> None:
    """Configure structlog in every worker process."""
    setup_logging()


__all__ = ["celery_app"]
