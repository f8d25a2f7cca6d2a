"""Queue entry points for the conversation pipeline."""

from __future__ import annotations

import logging
from typing import Any

from cortex.core.dependencies import ServiceContainer, get_container
from cortex.schemas.events import InboundMessageEvent
from cortex.tasks.celery_app import celery_app
from cortex.tasks.hooks import after_task, before_task
from cortex.utils.ids import new_trace_id

logger = logging.getLogger(__name__)

PROCESS_TASK = "pipeline.process_inbound_event"
RESUME_TASK = "pipeline.resume_stalled"
MAX_DEFERRALS = 5


def _deferred(event: InboundMessageEvent, context: dict[str, Any], reason: str) -> dict[str, Any]:
    logger.info("task.finish", extra=after_task(PROCESS_TASK, context, status="deferred", reason=reason))
    return {"status": "deferred", "event_id": event.external_message_id, "reason": reason}


def handle_inbound_event(
    payload: dict[str, Any],
    container: ServiceContainer | None = None,
    enforce_rate_limit: bool = True,
    lock_wait_seconds: float = 0.0,
) -> dict[str, Any]:
    """Rate-limit gate and per-sender lock, then the pipeline.

    A limited or busy sender is deferred, not dropped. Only one event per
    sender runs at a time across all workers.
    """
    container = container or get_container()
    event = InboundMessageEvent.model_validate(payload)
    context = {"event_id": event.external_message_id, "sender_id": event.sender_id, "trace_id": new_trace_id()}
    logger.info("task.start", extra=before_task(PROCESS_TASK, context))

    if enforce_rate_limit and container.rate_limiter.is_limited(event.sender_id):
        return _deferred(event, context, "rate_limited")

    with container.sender_lock.hold(event.sender_id, wait_seconds=lock_wait_seconds) as acquired:
        if not acquired:
            return _deferred(event, context, "sender_busy")
        result = container.pipeline.process(event).to_dict()

    context["lead_id"] = result.get("lead_id")
    logger.info("task.finish", extra=after_task(PROCESS_TASK, context, status=result["status"]))
    return result


def enqueue_inbound_event(event: InboundMessageEvent) -> str:
    """Producer used by the HTTP surface; returns the Celery task id."""
    async_result = process_inbound_event.delay(event.to_payload())
    return async_result.id


@celery_app.task(bind=True, name=PROCESS_TASK, max_retries=MAX_DEFERRALS)
def process_inbound_event(self, payload: dict[str, Any]) -> dict[str, Any]:
    result = handle_inbound_event(payload)
    if result["status"] != "deferred":
        return result
    if self.request.retries < self.max_retries:
        raise self.retry(countdown=get_container().config.RATE_LIMIT_DEFER_SECONDS)
    # Deferred long enough: skip the rate limit and wait out the sender lock rather than drop.
    config = get_container().config
    return handle_inbound_event(payload, enforce_rate_limit=False, lock_wait_seconds=config.SENDER_LOCK_TTL_SECONDS)


def resume_stalled_events(container: ServiceContainer | None = None) -> dict[str, Any]:
    container = container or get_container()
    stalled = container.ledger.find_stalled()
    for row in stalled:
        process_inbound_event.delay(row.payload)
    if stalled:
        logger.warning(
            "pipeline.resumed_stalled",
            extra={"event": "pipeline.resumed_stalled", "count": len(stalled)},
        )
    return {"requeued": len(stalled), "event_ids": [row.external_message_id for row in stalled]}


@celery_app.task(name=RESUME_TASK)
def resume_stalled() -> dict[str, Any]:
    return resume_stalled_events()
