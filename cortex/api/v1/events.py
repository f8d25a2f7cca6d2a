"""Inbound event intake for API v1."""

from __future__ import annotations

from fastapi import APIRouter, status

from cortex.schemas.events import EventAcceptedResponse, InboundMessageEvent
from cortex.tasks import pipeline_tasks

router = APIRouter(tags=["events"])


@router.post("/events/inbound", response_model=EventAcceptedResponse, status_code=status.HTTP_202_ACCEPTED)
def receive_inbound_event(payload: InboundMessageEvent) -> EventAcceptedResponse:
    """Queue an already-verified inbound message for pipeline processing."""
    task_id = pipeline_tasks.enqueue_inbound_event(payload)
    return EventAcceptedResponse(status="queued", external_message_id=payload.external_message_id, task_id=task_id)
