"""Run bookkeeping in scraping_logs."""

from __future__ import annotations

import logging
import os
from datetime import timedelta

from sqlalchemy.engine import Engine
from sqlalchemy.sql import text

from materialprices.db.session import transaction
from materialprices.scraping.models import RUN_COMPLETED, RUN_FAILED, RUN_RUNNING, RunRecord
from materialprices.utils.dates import utcnow

logger = logging.getLogger(__name__)

RUN_STALE_AFTER = timedelta(minutes=int(os.environ.get("RUN_STALE_AFTER_MINUTES", 360)))


class RunInProgressError(RuntimeError):
    pass


def start_run(engine: Engine, *, stale_after: timedelta = RUN_STALE_AFTER) -> int:
    """Create a ``running`` record unless a recent run is still running."""
    now = utcnow()
    with transaction(engine) as conn:
        run_id = conn.execute(
            text(
                """
                INSERT INTO scraping_logs (status, started_at, materials_updated)
                SELECT :status, :now, 0
                WHERE NOT EXISTS (
                    SELECT 1 FROM scraping_logs
                    WHERE status = :status AND started_at > :cutoff
                )
                RETURNING id
                """
            ),
            {"status": RUN_RUNNING, "now": now, "cutoff": now - stale_after},
        ).scalar_one_or_none()
    if run_id is None:
        raise RunInProgressError("A price update is already running")
    logger.info("Started price update run %s", run_id)
    return int(run_id)


def complete_run(engine: Engine, run_id: int, materials_updated: int) -> None:
    _finish(engine, run_id, RUN_COMPLETED, materials_updated=materials_updated)


def fail_run(engine: Engine, run_id: int, error: str) -> None:
    _finish(engine, run_id, RUN_FAILED, errors=error or "Unknown error")


def _finish(engine: Engine, run_id: int, status: str, *, materials_updated: int | None = None, errors: str | None = None) -> None:
    with transaction(engine) as conn:
        result = conn.execute(
            text(
                """
                UPDATE scraping_logs
                SET status = :status,
                    materials_updated = COALESCE(:materials_updated, materials_updated),
                    errors = :errors,
                    completed_at = :completed_at
                WHERE id = :id AND status = :running
                """
            ),
            {
                "status": status,
                "materials_updated": materials_updated,
                "errors": errors,
                "completed_at": utcnow(),
                "id": run_id,
                "running": RUN_RUNNING,
            },
        )
    if result.rowcount == 0:
        logger.warning("Run %s was not running; %s status not recorded", run_id, status)
    else:
        logger.info("Run %s %s", run_id, status)


def get_run(engine: Engine, run_id: int) -> RunRecord | None:
    with engine.connect() as conn:
        row = conn.execute(
            text(
                """
                SELECT id, status, started_at, completed_at, materials_updated, errors
                FROM scraping_logs WHERE id = :id
                """
            ),
            {"id": run_id},
        ).mappings().first()
    return RunRecord(**row) if row else None


def recent_runs(engine: Engine, limit: int = 10) -> list[RunRecord]:
    with engine.connect() as conn:
        rows = conn.execute(
            text(
                """
                SELECT id, status, started_at, completed_at, materials_updated, errors
                FROM scraping_logs
                ORDER BY created_at DESC, id DESC
                LIMIT :limit
                """
            ),
            {"limit": limit},
        ).mappings().all()
    return [RunRecord(**row) for row in rows]
