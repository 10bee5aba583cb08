"""
Celery Tasks — Run Execution

Task: process_run(run_id)
  Executes one Run through ProcessingOrchestrator. Published with
  task_id="run-<run_id>" (enqueue_run), so the run id doubles as the
  message idempotency key.

  Retries: only errors that escape the orchestrator are retried (per-
  document failures are absorbed inside the run; setup failures mark the
  run FAILED and return normally). Backoff is exponential from
  settings.run_retry_backoff_seconds: 5s, 10s, 20s ... up to
  settings.run_max_retries attempts. A retried run resumes from its
  COMPLETED steps; a run already COMPLETED/FAILED is a no-op.

Task: health_check
  Pings the database from inside the worker.

Task: seed_templates
  Upserts the built-in templates into docextract.templates.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any

from celery import Task

from app.core.config import settings
from app.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Async task helper
# Run async coroutines inside Celery's synchronous task context.
# ---------------------------------------------------------------------------

def run_async(coro):
    """Execute an async coroutine from a synchronous Celery task."""
    try:
        loop = asyncio.get_event_loop()
        if loop.is_running():
            import concurrent.futures
            with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
                future = pool.submit(asyncio.run, coro)
                return future.result()
        return loop.run_until_complete(coro)
    except RuntimeError:
        return asyncio.run(coro)


def task_id_for_run(run_id: uuid.UUID | str) -> str:
    return f"run-{run_id}"


def retry_countdown(retries: int) -> int:
    """Exponential backoff: base, 2*base, 4*base, ..."""
    return settings.run_retry_backoff_seconds * (2 ** retries)


# ---------------------------------------------------------------------------
# Main processing task
# ---------------------------------------------------------------------------

@celery_app.task(
    name="app.workers.tasks.process_run",
    bind=True,
    max_retries=settings.run_max_retries,
    rate_limit=settings.run_rate_limit,
    acks_late=True,
    reject_on_worker_lost=True,
)
def process_run(self: Task, run_id: str) -> dict[str, Any]:
    """Execute one extraction run."""
    from app.services.orchestrator import ProcessingOrchestrator

    try:
        run_async(ProcessingOrchestrator(uuid.UUID(run_id)).execute())
    except Exception as exc:
        countdown = retry_countdown(self.request.retries)
        logger.exception(
            "Run task error | run=%s attempt=%d retry_in=%ds",
            run_id, self.request.retries + 1, countdown,
        )
        raise self.retry(exc=exc, countdown=countdown)

    return {"status": "done", "run_id": run_id}


def enqueue_run(run_id: uuid.UUID) -> str:
    """Publish process_run for `run_id`; returns the Celery task id."""
    task_id = task_id_for_run(run_id)
    process_run.apply_async(args=[str(run_id)], task_id=task_id)
    logger.info("Run enqueued | run=%s task_id=%s", run_id, task_id)
    return task_id


# ---------------------------------------------------------------------------
# Health check task
# ---------------------------------------------------------------------------

@celery_app.task(name="app.workers.tasks.health_check")
def health_check() -> dict[str, Any]:
    from app.db.session import check_db_health

    return {"worker": "healthy", "database": run_async(check_db_health())}


# ---------------------------------------------------------------------------
# Template seeding task
# ---------------------------------------------------------------------------

@celery_app.task(name="app.workers.tasks.seed_templates")
def seed_templates() -> dict[str, Any]:
    """Insert or refresh the built-in templates (coi, trade-invoice, resume)."""
    from app.templates.registry import seed_builtin_templates

    slugs = run_async(seed_builtin_templates())
    return {"status": "seeded", "templates": slugs}
