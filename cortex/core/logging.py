"""Structured logging helpers for pipeline and worker logs."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any


@dataclass(frozen=True)
class LogContext:
    """Normalized context fields expected in structured logs."""

    event_id: str | None = None
    sender_id: str | None = None
    lead_id: str | None = None
    task_name: str | None = None
    trace_id: str | None = None


def build_log_event(event: str, context: LogContext, **fields: Any) -> dict[str, Any]:
    """Build a normalized structured log payload."""
    payload: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event": event,
        "event_id": context.event_id,
        "sender_id": context.sender_id,
        "lead_id": context.lead_id,
        "task_name": context.task_name,
        "trace_id": context.trace_id,
    }
    payload.update(fields)
    return payload
