# notifications/tasks.py
from __future__ import annotations

import logging

from celery import shared_task
from django.conf import settings

from .outbox import process_outbox_batch

logger = logging.getLogger(__name__)


@shared_task(bind=True)
def process_email_outbox(self, limit: int | None = None) -> dict:
    """Beat entry point: drain up to ``limit`` due jobs (default OUTBOX_BATCH_LIMIT)."""
    summary = process_outbox_batch(limit or settings.OUTBOX_BATCH_LIMIT)
    if summary.claimed:
        logger.info("process_email_outbox: %s", summary.as_dict())
    return {"ok": True, **summary.as_dict()}
