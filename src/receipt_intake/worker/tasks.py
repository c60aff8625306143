from __future__ import annotations

# Ensure all models are registered before any task runs
# isort: off
import receipt_intake.models  # noqa: F401
# isort: on

import time
from datetime import UTC, datetime, timedelta

from receipt_intake.core.config import settings
from receipt_intake.core.db import SessionLocal
from receipt_intake.core.logging import (
    get_logger,
    log_event,
    log_exception,
    monotonic_ms,
    reset_task_context,
    set_task_context,
)
from receipt_intake.modules.receipts.service import expire_stale_receipts
from receipt_intake.worker.celery_app import celery_app

logger = get_logger(__name__)


def run_reaper(*, timeout_minutes: int, now: datetime | None = None) -> int:
    if timeout_minutes <= 0:
        return 0
    cutoff = (now or datetime.now(UTC)) - timedelta(minutes=timeout_minutes)
    with SessionLocal() as session:
        return expire_stale_receipts(session, older_than=cutoff)


@celery_app.task(name="expire_stale_receipts", bind=True)
def expire_stale_receipts_task(self) -> int:
    task_id = getattr(self.request, "id", None)
    token = set_task_context(task_id)
    start = time.monotonic()
    log_event(logger, "celery.task.start", task_name="expire_stale_receipts")
    try:
        expired = run_reaper(timeout_minutes=settings.processing_timeout_minutes)
        log_event(
            logger,
            "celery.task.finish",
            task_name="expire_stale_receipts",
            expired=expired,
            duration_ms=monotonic_ms(start),
        )
        return expired
    except Exception:
        log_exception(
            logger,
            "celery.task.error",
            task_name="expire_stale_receipts",
            duration_ms=monotonic_ms(start),
        )
        raise
    finally:
        reset_task_context(token)
