"""Celery application bootstrap."""

from __future__ import annotations

import os

from celery import Celery
from celery.schedules import crontab

from cortex.core.config import get_config

config = get_config()

celery_app = Celery(
    "cortex",
    broker=config.CELERY_BROKER_URL,
    backend=config.CELERY_RESULT_BACKEND,
    include=["cortex.tasks.pipeline_tasks", "cortex.tasks.maintenance_tasks"],
)
celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone=config.BUSINESS_TIMEZONE,
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    worker_concurrency=config.PIPELINE_MAX_CONCURRENCY,
    beat_schedule={
        "maintenance-sweep-hourly": {
            "task": "maintenance.sweep",
            "schedule": crontab(minute=0),
        },
        "pipeline-resume-stalled": {
            "task": "pipeline.resume_stalled",
            "schedule": crontab(minute="*/10"),
        },
    },
)

# Local/dev convenience: run tasks synchronously when requested.
if os.getenv("CELERY_TASK_ALWAYS_EAGER", "false").lower() in {"1", "true", "yes", "on"}:
    celery_app.conf.task_always_eager = True
