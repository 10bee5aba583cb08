"""
Celery Application Factory

Configures the Celery app that executes extraction runs.
Broker: RabbitMQ (amqp://) in production; Redis (redis://) for local dev.
Result backend: Redis (optional — run state is tracked in PostgreSQL).

Queue topology:
  runs.process   — one message per Run; the task id is "run-<run_id>"
  system.health  — internal health-check tasks

Scheduling limits live here, not in the orchestrator:
  worker_concurrency    at most N runs in flight per worker
  process_run rate      at most M run starts per window (settings.run_rate_limit)

Never pass document bytes in task payloads — only the run id; the worker
loads everything else from the database and storage.
"""

from __future__ import annotations

import logging

from celery import Celery
from celery.signals import after_setup_logger, task_failure, task_postrun, task_prerun
from kombu import Exchange, Queue

from app.core.config import settings
from app.core.logging import configure_logging

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Queue and exchange definitions
# ---------------------------------------------------------------------------

RUNS_EXCHANGE = Exchange("runs", type="direct", durable=True)

TASK_QUEUES = (
    Queue(
        "runs.process",
        exchange=RUNS_EXCHANGE,
        routing_key="runs.process",
        durable=True,
    ),
    Queue(
        "system.health",
        Exchange("system", type="direct"),
        routing_key="system.health",
        durable=True,
    ),
)

TASK_ROUTES = {
    "app.workers.tasks.process_run":  {"queue": "runs.process"},
    "app.workers.tasks.health_check": {"queue": "system.health"},
    "app.workers.tasks.seed_templates": {"queue": "system.health"},
}

# ---------------------------------------------------------------------------
# Celery app factory
# ---------------------------------------------------------------------------

def create_celery_app() -> Celery:
    app = Celery("docextract")

    app.conf.update(
        # --- Broker / Backend ---
        broker_url=settings.celery_broker_url,
        result_backend=settings.celery_result_backend,

        # --- Serialization (reject non-JSON messages) ---
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        event_serializer="json",

        # --- Queues ---
        task_queues=TASK_QUEUES,
        task_routes=TASK_ROUTES,
        task_default_queue="runs.process",
        task_default_exchange="runs",
        task_default_routing_key="runs.process",

        # --- Reliability ---
        task_acks_late=True,         # ack only after the run finishes (redelivered on crash)
        task_reject_on_worker_lost=True,
        worker_prefetch_multiplier=1,  # one run at a time per worker process

        # --- Retries ---
        task_max_retries=settings.run_max_retries,
        task_default_retry_delay=settings.run_retry_backoff_seconds,

        # --- Result TTL ---
        result_expires=3600,   # run state lives in PostgreSQL, not Celery results

        # --- Timezone ---
        timezone="UTC",
        enable_utc=True,

        # --- Worker ---
        worker_concurrency=settings.worker_concurrency,
        worker_max_tasks_per_child=200,   # recycle workers to prevent memory bloat
        worker_disable_rate_limits=False,
    )

    # Auto-discover tasks module
    app.autodiscover_tasks(["app.workers"])

    return app


celery_app = create_celery_app()


# ---------------------------------------------------------------------------
# Celery signals — logging setup and per-task audit lines
# ---------------------------------------------------------------------------

@after_setup_logger.connect
def on_after_setup_logger(logger, **_):
    configure_logging(logger)


@task_prerun.connect
def on_task_prerun(task_id, task, args, kwargs, **_):
    logger.info(
        "Task start | task_id=%s task=%s run=%s",
        task_id, task.name, kwargs.get("run_id", args[0] if args else "?"),
    )


@task_postrun.connect
def on_task_postrun(task_id, task, args, kwargs, retval, state, **_):
    logger.info(
        "Task end | task_id=%s task=%s state=%s run=%s",
        task_id, task.name, state, kwargs.get("run_id", args[0] if args else "?"),
    )


@task_failure.connect
def on_task_failure(task_id, exception, args, kwargs, traceback, einfo, **_):
    logger.error(
        "Task failed | task_id=%s run=%s error=%s",
        task_id, kwargs.get("run_id", args[0] if args else "?"), exception,
        exc_info=True,
    )
