"""Durable, checkpointed pipeline steps and the inbound event ledger."""

from __future__ import annotations

import enum
import logging
import time
from collections.abc import Callable
from datetime import datetime, timedelta
from time import perf_counter
from typing import Any

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from cortex.core.exceptions import DatabaseError, StepFailedError
from cortex.models.base import utcnow
from cortex.models.enums import CheckpointStatus, EventStatus
from cortex.models.pipeline import InboundEvent, PipelineCheckpoint
from cortex.services.audit_service import AuditService
from cortex.services.base_service import BaseService

logger = logging.getLogger(__name__)

StepFn = Callable[[], dict[str, Any] | None]


class CheckpointStore(BaseService):
    """One row per (event, step); a completed row is the step's replay value."""

    def load(self, event_id: str, step: str) -> dict[str, Any] | None:
        with self.session() as db:
            row = db.scalar(
                select(PipelineCheckpoint).where(
                    PipelineCheckpoint.event_id == event_id,
                    PipelineCheckpoint.step == step,
                    PipelineCheckpoint.status == CheckpointStatus.COMPLETED,
                )
            )
            return dict(row.result or {}) if row is not None else None

    def _upsert(self, event_id: str, step: str, **values) -> None:
        with self.session() as db:
            row = db.scalar(
                select(PipelineCheckpoint).where(PipelineCheckpoint.event_id == event_id, PipelineCheckpoint.step == step)
            )
            if row is None:
                db.add(PipelineCheckpoint(event_id=event_id, step=step, **values))
            else:
                for key, value in values.items():
                    setattr(row, key, value)
            self.commit(db)

    def save(self, event_id: str, step: str, result: dict[str, Any], attempts: int) -> None:
        self._upsert(
            event_id,
            step,
            status=CheckpointStatus.COMPLETED,
            result=result,
            attempts=attempts,
            error=None,
        )

    def mark_failed(self, event_id: str, step: str, attempts: int, error: str) -> None:
        try:
            self._upsert(event_id, step, status=CheckpointStatus.FAILED, attempts=attempts, error=error[:2000])
        except SQLAlchemyError:
            logger.exception(
                "pipeline.checkpoint_write_failed",
                extra={"event": "pipeline.checkpoint_write_failed", "event_id": event_id, "step": step},
            )

    def completed_steps(self, event_id: str) -> list[str]:
        with self.session() as db:
            rows = db.scalars(
                select(PipelineCheckpoint.step)
                .where(
                    PipelineCheckpoint.event_id == event_id,
                    PipelineCheckpoint.status == CheckpointStatus.COMPLETED,
                )
                .order_by(PipelineCheckpoint.created_at)
            ).all()
            return list(rows)


class StepRunner:
    """Runs a named step at most once to completion per event.

    A completed checkpoint short-circuits the step. Otherwise the step is
    retried with exponential backoff; on exhaustion an optional ``fallback``
    supplies a degraded result, else ``StepFailedError`` is raised.
    """

    def __init__(
        self,
        checkpoints: CheckpointStore,
        audit: AuditService,
        max_attempts: int = 3,
        backoff_seconds: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.checkpoints = checkpoints
        self.audit = audit
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.sleep = sleep

    def run(
        self,
        event_id: str,
        step: str,
        fn: StepFn,
        lead_id: str | None = None,
        fallback: Callable[[Exception], dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        cached = self.checkpoints.load(event_id, step)
        if cached is not None:
            logger.info("pipeline.step.replayed", extra={"event": "pipeline.step.replayed", "event_id": event_id, "step": step})
            return cached

        last_error: Exception | None = None
        for attempt in range(1, self.max_attempts + 1):
            started = perf_counter()
            try:
                result = fn() or {}
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "pipeline.step.failed",
                    extra={
                        "event": "pipeline.step.failed",
                        "event_id": event_id,
                        "step": step,
                        "attempt": attempt,
                        "attempts_total": self.max_attempts,
                        "error": str(exc),
                    },
                )
                if attempt < self.max_attempts:
                    delay = self.backoff_seconds * (2 ** (attempt - 1))
                    if delay > 0:
                        self.sleep(delay)
                continue

            latency_ms = int((perf_counter() - started) * 1000)
            self._complete(event_id, step, result, attempt, lead_id, latency_ms)
            return result

        error_text = str(last_error) if last_error else "unknown"
        if fallback is not None and last_error is not None:
            result = fallback(last_error)
            logger.warning(
                "pipeline.step.recovered",
                extra={"event": "pipeline.step.recovered", "event_id": event_id, "step": step, "error": error_text},
            )
            self._complete(event_id, step, result, self.max_attempts, lead_id, 0, recovered=True)
            return result

        self.checkpoints.mark_failed(event_id, step, self.max_attempts, error_text)
        self.audit.record(
            "pipeline_step_failed",
            {"event_id": event_id, "step": step, "attempts": self.max_attempts, "error": error_text[:500]},
            lead_id=lead_id,
        )
        raise StepFailedError(step, self.max_attempts, error_text)

    def _complete(
        self,
        event_id: str,
        step: str,
        result: dict[str, Any],
        attempts: int,
        lead_id: str | None,
        latency_ms: int,
        recovered: bool = False,
    ) -> None:
        try:
            self.checkpoints.save(event_id, step, result, attempts)
        except IntegrityError:
            # A concurrent run finished the same step first; its row is authoritative.
            logger.info("pipeline.step.raced", extra={"event": "pipeline.step.raced", "event_id": event_id, "step": step})
        self.audit.record(
            "pipeline_step",
            {"event_id": event_id, "step": step, "attempts": attempts, "recovered": recovered},
            lead_id=lead_id,
            latency_ms=latency_ms,
        )


class ClaimOutcome(str, enum.Enum):
    CLAIMED = "claimed"
    DUPLICATE = "duplicate"
    IN_PROGRESS = "in_progress"
    EXHAUSTED = "exhausted"


class EventLedger(BaseService):
    """Tracks each external message id so an event is processed to completion once."""

    def __init__(self, session_factory, stall_after: timedelta = timedelta(minutes=10), max_attempts: int = 5) -> None:
        super().__init__(session_factory)
        self.stall_after = stall_after
        self.max_attempts = max_attempts

    def claim(self, external_message_id: str, sender_id: str, payload: dict) -> ClaimOutcome:
        try:
            with self.session() as db:
                db.add(
                    InboundEvent(
                        external_message_id=external_message_id,
                        sender_id=sender_id,
                        payload=payload,
                        status=EventStatus.PROCESSING,
                        attempts=1,
                    )
                )
                try:
                    self.commit(db)
                    return ClaimOutcome.CLAIMED
                except IntegrityError:
                    pass

                stale_before = utcnow() - self.stall_after
                claimed = db.execute(
                    update(InboundEvent)
                    .where(
                        InboundEvent.external_message_id == external_message_id,
                        InboundEvent.attempts < self.max_attempts,
                        or_(
                            InboundEvent.status.in_((EventStatus.RECEIVED, EventStatus.FAILED)),
                            (InboundEvent.status == EventStatus.PROCESSING) & (InboundEvent.updated_at < stale_before),
                        ),
                    )
                    .values(status=EventStatus.PROCESSING, attempts=InboundEvent.attempts + 1, updated_at=utcnow())
                )
                self.commit(db)
                if claimed.rowcount == 1:
                    return ClaimOutcome.CLAIMED

                row = db.scalar(select(InboundEvent).where(InboundEvent.external_message_id == external_message_id))
                if row is None or row.status == EventStatus.PROCESSING:
                    return ClaimOutcome.IN_PROGRESS
                if row.status == EventStatus.COMPLETED:
                    return ClaimOutcome.DUPLICATE
                return ClaimOutcome.EXHAUSTED
        except SQLAlchemyError as exc:
            raise DatabaseError(f"Failed to claim inbound event: {exc}") from exc

    def get(self, external_message_id: str) -> InboundEvent | None:
        with self.session() as db:
            return db.scalar(select(InboundEvent).where(InboundEvent.external_message_id == external_message_id))

    def _finish(self, external_message_id: str, **values) -> None:
        with self.session() as db:
            db.execute(
                update(InboundEvent).where(InboundEvent.external_message_id == external_message_id).values(**values)
            )
            self.commit(db)

    def mark_completed(self, external_message_id: str, result: dict, lead_id: str | None = None) -> None:
        self._finish(
            external_message_id,
            status=EventStatus.COMPLETED,
            result=result,
            lead_id=lead_id,
            error=None,
            completed_at=utcnow(),
            updated_at=utcnow(),
        )

    def mark_failed(self, external_message_id: str, error: str, lead_id: str | None = None) -> None:
        try:
            self._finish(
                external_message_id,
                status=EventStatus.FAILED,
                error=error[:2000],
                lead_id=lead_id,
                updated_at=utcnow(),
            )
        except SQLAlchemyError:
            logger.exception(
                "pipeline.event_fail_mark_failed",
                extra={"event": "pipeline.event_fail_mark_failed", "event_id": external_message_id},
            )

    def find_stalled(self, now: datetime | None = None, limit: int = 100) -> list[InboundEvent]:
        cutoff = (now or utcnow()) - self.stall_after
        stmt = (
            select(InboundEvent)
            .where(
                InboundEvent.status == EventStatus.PROCESSING,
                InboundEvent.updated_at < cutoff,
                InboundEvent.attempts < self.max_attempts,
            )
            .order_by(InboundEvent.updated_at)
            .limit(limit)
        )
        with self.session() as db:
            return list(db.scalars(stmt).all())
