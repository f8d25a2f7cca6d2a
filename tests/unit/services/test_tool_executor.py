from __future__ import annotations

from datetime import date

from sqlalchemy import select

from cortex.models.audit_log import AuditLog
from cortex.models.enums import AppointmentStatus
from cortex.schemas.agent import CheckAvailabilityCall
from cortex.services.tool_executor import MISSING_DATE_ERROR, MISSING_TIME_ERROR, UNKNOWN_TOOL_ERROR


def _lead(container, sender_id: str = "573001112233"):
    lead, _ = container.leads.resolve_or_create(sender_id, "Ana")
    return lead


def test_check_availability_distinguishes_missing_and_malformed_dates(container):
    lead = _lead(container)

    missing = container.executor.execute_one({"tool": "checkAvailability", "args": {}}, lead)
    malformed = container.executor.execute_one({"tool": "checkAvailability", "args": {"date": "tomorrow"}}, lead)

    assert missing.success is False
    assert missing.error == MISSING_DATE_ERROR
    assert malformed.success is False
    assert "tomorrow" in malformed.error
    assert malformed.error != missing.error


def test_check_availability_lists_only_free_slots(container):
    lead = _lead(container)
    assert container.booking.book_slot(lead.id, date(2026, 3, 3), "10:00").ok

    result = container.executor.execute_one(
        CheckAvailabilityCall(tool="checkAvailability", args={"date": "2026-03-03"}), lead
    )

    assert result.success is True
    starts = [slot["start_time"] for slot in result.result["slots"]]
    assert "10:00" not in starts
    assert starts[0] == "09:00"
    assert "next_available" not in result.result


def test_check_availability_on_closed_day_suggests_next_slot(container):
    lead = _lead(container)

    result = container.executor.execute_one({"tool": "checkAvailability", "args": {"date": "2026-03-07"}}, lead)

    assert result.success is True
    assert result.result["slots"] == []
    assert result.result["next_available"]["date"] == "2026-03-09"


def test_check_availability_understands_spanish_relative_dates(container):
    lead = _lead(container)

    result = container.executor.execute_one({"tool": "checkAvailability", "args": {"date": "mañana"}}, lead)

    assert result.success is True
    assert result.result["date"] == "2026-03-03"


def test_book_slot_success_and_conflict(container):
    first = _lead(container)
    second = _lead(container, "573009998877")
    call = {"tool": "bookSlot", "args": {"date": "2026-03-03", "startTime": "10:00", "notes": "Demo"}}

    booked = container.executor.execute_one(call, first)
    conflict = container.executor.execute_one(call, second)

    assert booked.success is True
    assert booked.result["status"] == AppointmentStatus.UNCONFIRMED.value
    assert conflict.success is False
    assert conflict.error.startswith("Slot unavailable or conflict")


def test_book_slot_requires_time(container):
    lead = _lead(container)

    result = container.executor.execute_one({"tool": "bookSlot", "args": {"date": "2026-03-03"}}, lead)

    assert result.success is False
    assert result.error == MISSING_TIME_ERROR


def test_unknown_tool_and_bad_arguments_are_reported(container):
    lead = _lead(container)

    unknown = container.executor.execute_one({"tool": "deleteEverything", "args": {}}, lead)
    bad_args = container.executor.execute_one({"tool": "updateLeadProfile", "args": {"leadScore": 500}}, lead)

    assert unknown.success is False
    assert unknown.error == UNKNOWN_TOOL_ERROR
    assert bad_args.success is False


def test_one_failing_call_does_not_abort_the_others(container):
    lead = _lead(container)

    results = container.executor.execute(
        [
            {"tool": "checkAvailability", "args": {}},
            {"tool": "updateLeadProfile", "args": {"company": "Tienda Sol", "painPoints": ["inventario"]}},
            {"tool": "updateLeadProfile", "args": {"painPoints": ["ventas"], "leadScore": 55}},
        ],
        lead,
    )

    assert [result.success for result in results] == [False, True, True]
    stored = container.leads.get(lead.id)
    assert stored.profile["company"] == "Tienda Sol"
    assert stored.profile["name"] == "Ana"
    assert set(stored.profile["pain_points"]) == {"inventario", "ventas"}
    assert stored.lead_score == 55


def test_handoff_pauses_ai_and_writes_audit(container, database):
    lead = _lead(container)

    result = container.executor.execute_one(
        {"tool": "handoffToHuman", "args": {"reason": "Pide hablar con un asesor", "urgency": "high"}}, lead
    )

    assert result.success is True
    assert container.leads.get(lead.id).ai_paused is True
    with database.session() as db:
        row = db.scalar(select(AuditLog).where(AuditLog.event_type == "handoff_requested"))
    assert row.lead_id == lead.id
    assert row.payload["urgency"] == "high"
