"""Celery application configuration."""

from __future__ import annotations

import logging

from celery import Celery

from todocal.core.config import settings

logger = logging.getLogger(__name__)

celery_app = Celery(
    "todocal",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["todocal.tasks.notifications"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    broker_connection_retry_on_startup=True,
    # Acknowledge after execution, re-queue if the worker dies
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_default_retry_delay=60,
    task_max_retries=3,
    result_expires=3600,
    worker_prefetch_multiplier=1,
)

logger.info("Celery app configured with broker: %s", settings.CELERY_BROKER_URL)
