"""Celery application configuration for Planet Worker."""

import os

from celery import Celery
from celery.schedules import crontab

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/1")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/2")

app = Celery(
    "planet_worker",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
    include=[
        "planet_worker.tasks.account",
        "planet_worker.tasks.index",
    ],
)

app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Task execution
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # Time limits (seconds)
    task_soft_time_limit=300,
    task_time_limit=600,
    # Retry settings
    task_default_retry_delay=60,
    task_max_retries=5,
    # Queue routing
    task_routes={
        "account.*": {"queue": "account"},
        "index.*": {"queue": "index"},
    },
    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=4,
)

# Beat schedule for periodic tasks
app.conf.beat_schedule = {
    # Nightly search column sweep at 3 AM UTC
    "nightly-search-reindex": {
        "task": "index.reindex_messages",
        "schedule": crontab(hour=3, minute=0),
        # Bounded runs; each one re-enqueues the rest of the sweep
        "kwargs": {"max_batches": 100},
    },
}


if __name__ == "__main__":
    app.start()
