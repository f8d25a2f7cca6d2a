from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import select, update

from cortex.core.exceptions import StepFailedError
from cortex.models.audit_log import AuditLog
from cortex.models.base import utcnow
from cortex.models.pipeline import InboundEvent
from cortex.orchestration.steps import CheckpointStore, ClaimOutcome, EventLedger, StepRunner
from cortex.services.audit_service import AuditService


def _runner(database, sleeps=None, max_attempts: int = 3) -> StepRunner:
    return StepRunner(
        CheckpointStore(database.session_factory),
        AuditService(database.session_factory),
        max_attempts=max_attempts,
        backoff_seconds=0.5,
        sleep=(sleeps.append if sleeps is not None else lambda seconds: None),
    )


def test_completed_step_is_replayed_without_running_again(database):
    runner = _runner(database)
    calls = []

    def step():
        calls.append(1)
        return {"value": 42}

    assert runner.run("evt-1", "compute", step) == {"value": 42}
    assert runner.run("evt-1", "compute", step) == {"value": 42}
    assert len(calls) == 1
    assert runner.checkpoints.completed_steps("evt-1") == ["compute"]


def test_failed_attempts_back_off_exponentially(database):
    sleeps = []
    runner = _runner(database, sleeps)
    outcomes = [RuntimeError("boom"), RuntimeError("boom"), {"ok": True}]

    def flaky():
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    assert runner.run("evt-1", "flaky", flaky) == {"ok": True}
    assert sleeps == [0.5, 1.0]


def test_exhausted_step_raises_and_is_audited(database):
    runner = _runner(database, max_attempts=2)

    def always_fails():
        raise RuntimeError("gateway down")

    with pytest.raises(StepFailedError) as excinfo:
        runner.run("evt-1", "send-reply", always_fails, lead_id=None)

    assert excinfo.value.step == "send-reply"
    assert excinfo.value.attempts == 2
    assert runner.checkpoints.load("evt-1", "send-reply") is None
    with database.session() as db:
        row = db.scalar(select(AuditLog).where(AuditLog.event_type == "pipeline_step_failed"))
    assert row.payload["error"] == "gateway down"


def test_failed_step_can_succeed_on_a_later_run(database):
    runner = _runner(database, max_attempts=1)

    def down():
        raise RuntimeError("down")

    with pytest.raises(StepFailedError):
        runner.run("evt-1", "send-reply", down)

    assert runner.run("evt-1", "send-reply", lambda: {"sent": True}) == {"sent": True}
    assert runner.checkpoints.load("evt-1", "send-reply") == {"sent": True}


def test_fallback_supplies_a_checkpointed_result(database):
    runner = _runner(database, max_attempts=2)

    def always_fails():
        raise RuntimeError("model offline")

    result = runner.run("evt-1", "generate", always_fails, fallback=lambda exc: {"degraded": True, "error": str(exc)})

    assert result == {"degraded": True, "error": "model offline"}
    assert runner.run("evt-1", "generate", always_fails) == result


def test_ledger_claims_once_and_reports_duplicates(database):
    ledger = EventLedger(database.session_factory)

    assert ledger.claim("wamid.1", "573001112233", {"text": "hola"}) == ClaimOutcome.CLAIMED
    assert ledger.claim("wamid.1", "573001112233", {"text": "hola"}) == ClaimOutcome.IN_PROGRESS

    ledger.mark_completed("wamid.1", {"status": "completed"})
    assert ledger.claim("wamid.1", "573001112233", {"text": "hola"}) == ClaimOutcome.DUPLICATE


def test_ledger_reclaims_failed_events_until_attempts_run_out(database):
    ledger = EventLedger(database.session_factory, max_attempts=2)
    assert ledger.claim("wamid.1", "573001112233", {}) == ClaimOutcome.CLAIMED
    ledger.mark_failed("wamid.1", "send-reply: down")

    assert ledger.claim("wamid.1", "573001112233", {}) == ClaimOutcome.CLAIMED
    assert ledger.get("wamid.1").attempts == 2
    ledger.mark_failed("wamid.1", "send-reply: down")

    assert ledger.claim("wamid.1", "573001112233", {}) == ClaimOutcome.EXHAUSTED


def test_ledger_finds_and_reclaims_stalled_events(database):
    ledger = EventLedger(database.session_factory, stall_after=timedelta(minutes=10))
    ledger.claim("wamid.1", "573001112233", {"senderId": "573001112233"})
    ledger.claim("wamid.2", "573001112233", {"senderId": "573001112233"})
    with database.session() as db:
        db.execute(
            update(InboundEvent)
            .where(InboundEvent.external_message_id == "wamid.1")
            .values(updated_at=utcnow() - timedelta(minutes=30))
        )
        db.commit()

    stalled = ledger.find_stalled()

    assert [row.external_message_id for row in stalled] == ["wamid.1"]
    assert ledger.claim("wamid.1", "573001112233", {}) == ClaimOutcome.CLAIMED
    assert ledger.claim("wamid.2", "573001112233", {}) == ClaimOutcome.IN_PROGRESS
