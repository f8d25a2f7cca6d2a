from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from sqlalchemy import update

from cortex.models.appointment import Appointment
from cortex.models.enums import AppointmentStatus
from cortex.services.sweeper import render_reminder

from conftest import FIXED_NOW


def _lead(container, sender_id: str = "573001112233", name: str | None = "Ana"):
    lead, _ = container.leads.resolve_or_create(sender_id, name)
    return lead


def _set_created_at(database, appointment_id: str, created_at: datetime) -> None:
    with database.session() as db:
        db.execute(update(Appointment).where(Appointment.id == appointment_id).values(created_at=created_at))
        db.commit()


def _confirmed_appointment(database, lead_id: str, start: datetime) -> str:
    with database.session() as db:
        appointment = Appointment(
            lead_id=lead_id,
            start_time=start,
            end_time=start + timedelta(hours=1),
            status=AppointmentStatus.CONFIRMED,
        )
        db.add(appointment)
        db.commit()
        return appointment.id


def test_render_reminder_uses_local_twelve_hour_time():
    start = datetime(2026, 3, 3, 15, 30, tzinfo=ZoneInfo("America/Bogota"))

    assert render_reminder("Ana", start) == (
        "👋 Hola Ana, te recordamos tu cita para mañana a las 3:30 p. m. ¡Nos vemos pronto!"
    )
    assert render_reminder(None, start).startswith("👋 Hola, te recordamos")


def test_stale_unconfirmed_appointments_are_cancelled(container, database):
    lead = _lead(container)
    stale = container.booking.book_slot(lead.id, date(2026, 3, 3), "09:00").appointment
    fresh = container.booking.book_slot(lead.id, date(2026, 3, 3), "10:00").appointment
    confirmed = container.booking.book_slot(lead.id, date(2026, 3, 3), "11:00").appointment
    container.booking.confirm_appointment(confirmed.id)
    _set_created_at(database, stale.id, FIXED_NOW - timedelta(minutes=61))
    _set_created_at(database, fresh.id, FIXED_NOW - timedelta(minutes=30))
    _set_created_at(database, confirmed.id, FIXED_NOW - timedelta(minutes=90))

    report = container.sweeper.cleanup_stale_appointments()

    assert report == {"cancelled": 1, "ids": [stale.id]}
    assert container.booking.get_appointment(stale.id).status == AppointmentStatus.CANCELLED
    assert container.booking.get_appointment(fresh.id).status == AppointmentStatus.UNCONFIRMED
    assert container.booking.get_appointment(confirmed.id).status == AppointmentStatus.CONFIRMED


def test_reminder_is_sent_once_for_appointment_in_window(container, database, messenger):
    lead = _lead(container)
    inside = _confirmed_appointment(database, lead.id, FIXED_NOW + timedelta(hours=24))
    _confirmed_appointment(database, lead.id, FIXED_NOW + timedelta(hours=30))

    first = container.sweeper.dispatch_reminders()
    second = container.sweeper.dispatch_reminders()

    assert first["ids"] == [inside]
    assert second["sent"] == 0
    assert len(messenger.sent) == 1
    to, text = messenger.sent[0]
    assert to == "573001112233"
    # 12:00 UTC is 07:00 in Bogota.
    assert "Hola Ana" in text and "7:00 a. m." in text
    assert container.booking.get_appointment(inside).reminder_sent is True


def test_reminder_send_failure_is_isolated_per_appointment(container, database, messenger):
    first_lead = _lead(container)
    second_lead = _lead(container, "573009998877", None)
    failing = _confirmed_appointment(database, first_lead.id, FIXED_NOW + timedelta(hours=23, minutes=30))
    delivered = _confirmed_appointment(database, second_lead.id, FIXED_NOW + timedelta(hours=24))
    messenger.fail_times = 1

    report = container.sweeper.dispatch_reminders()

    assert report["ids"] == [delivered]
    assert [error["appointment_id"] for error in report["errors"]] == [failing]
    assert container.booking.get_appointment(failing).reminder_sent is False


def test_cleanup_failure_does_not_block_reminders(container, database, messenger, monkeypatch):
    lead = _lead(container)
    _confirmed_appointment(database, lead.id, FIXED_NOW + timedelta(hours=24))

    def broken_cleanup():
        raise RuntimeError("lock timeout")

    monkeypatch.setattr(container.sweeper, "cleanup_stale_appointments", broken_cleanup)

    report = container.sweeper.run().to_dict()

    assert report["cleanup"] == {"error": "lock timeout"}
    assert report["reminders"]["sent"] == 1
    assert len(messenger.sent) == 1


def test_sweep_ignores_reminders_for_cancelled_appointments(container, database, messenger):
    lead = _lead(container)
    appointment_id = _confirmed_appointment(database, lead.id, datetime(2026, 3, 3, 12, 0, tzinfo=timezone.utc))
    container.booking.cancel_appointment(appointment_id)

    assert container.sweeper.dispatch_reminders()["sent"] == 0
    assert messenger.sent == []
