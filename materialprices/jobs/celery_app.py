"""Celery configuration for scheduled and manual price updates."""

from __future__ import annotations

import os

from celery import Celery
from celery.schedules import crontab

from materialprices.utils.dates import timezone_name

broker_url = os.environ.get("REDIS_URL", "redis://redis:6379/0")
backend_url = os.environ.get("REDIS_URL", "redis://redis:6379/0")

celery_app = Celery("materialprices", broker=broker_url, backend=backend_url, include=["materialprices.jobs.price_update"])
celery_app.conf.timezone = timezone_name()
celery_app.conf.beat_schedule = {
    "scheduled-price-update": {
        "task": "materialprices.jobs.price_update.run_price_update",
        "schedule": crontab(
            minute=0,
            hour=int(os.environ.get("SCRAPE_HOUR", "2")),
            day_of_month=os.environ.get("SCRAPE_DAYS", "1,15"),
        ),
    },
}


@celery_app.task(name="materialprices.jobs.price_update.run_price_update")
def run_price_update_task(run_id: int | None = None):  # pragma: no cover - executed by worker
    import asyncio

    from materialprices.jobs.price_update import run_price_update

    record = asyncio.run(run_price_update(run_id))
    return record.status if record else None


def dispatch_price_update(run_id: int) -> None:
    """Queue an already-recorded run on the worker."""
    run_price_update_task.delay(run_id)
