"""Scheduled maintenance task."""

from __future__ import annotations

import logging
from typing import Any

from cortex.core.dependencies import ServiceContainer, get_container
from cortex.tasks.celery_app import celery_app
from cortex.tasks.hooks import after_task, before_task
from cortex.utils.ids import new_trace_id

logger = logging.getLogger(__name__)

SWEEP_TASK = "maintenance.sweep"


def run_sweep(container: ServiceContainer | None = None) -> dict[str, Any]:
    container = container or get_container()
    context = {"trace_id": new_trace_id()}
    logger.info("task.start", extra=before_task(SWEEP_TASK, context))
    report = container.sweeper.run().to_dict()
    status = "failed" if "error" in report["cleanup"] or "error" in report["reminders"] else "succeeded"
    logger.info("task.finish", extra=after_task(SWEEP_TASK, context, status=status))
    return report


@celery_app.task(name=SWEEP_TASK)
def sweep() -> dict[str, Any]:
    return run_sweep()
