"""Celery tasks for the notification log."""

from __future__ import annotations

import logging
from uuid import UUID

from sqlmodel import Session

from todocal.celery_app import celery_app
from todocal.db import engine
from todocal.services.notifications import fan_out

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3, default_retry_delay=60)
def fan_out_notification_task(self, user_ids: list[str], message: str) -> dict:
    """
    Write one notification log row per recipient in the background.

    Args:
        user_ids: Recipients (task creator and active calendar members)
        message: Text of the log entry

    Returns:
        dict: Number of rows created
    """
    try:
        with Session(engine) as session:
            created = fan_out(session, [UUID(user_id) for user_id in user_ids], message)
        logger.info("Created %s notifications: %s", created, message)
        return {"success": True, "created": created}
    except Exception as exc:
        logger.error("Error fanning out notification %r: %s", message, exc, exc_info=True)
        raise self.retry(exc=exc)
