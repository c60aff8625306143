from __future__ import annotations

from celery import Celery

from receipt_intake.core.config import settings


def make_celery() -> Celery:
    app = Celery("receipt_intake", broker=settings.redis_url, backend=settings.redis_url)
    app.conf.update(
        task_always_eager=settings.environment in ("dev", "test"),
        task_eager_propagates=True,
        task_track_started=True,
    )
    if settings.processing_timeout_minutes > 0:
        app.conf.beat_schedule = {
            "expire-stale-receipts": {
                "task": "expire_stale_receipts",
                "schedule": float(settings.reaper_interval_seconds),
            }
        }
    app.autodiscover_tasks(["receipt_intake.worker.tasks"])
    return app


celery_app = make_celery()
