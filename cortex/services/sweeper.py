"""Maintenance sweeper: stale booking cleanup and appointment reminders."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from cortex.core.exceptions import CortexException
from cortex.models.appointment import Appointment
from cortex.models.base import utcnow
from cortex.models.enums import AppointmentStatus
from cortex.models.lead import Lead
from cortex.services.audit_service import AuditService
from cortex.services.base_service import BaseService
from cortex.services.settings_service import BusinessSettingsService

logger = logging.getLogger(__name__)

REMINDER_TEMPLATE = "👋 Hola{name}, te recordamos tu cita para mañana a las {time}. ¡Nos vemos pronto!"


def format_time_es(moment: datetime) -> str:
    """12-hour clock as written in es-CO, e.g. ``3:30 p. m.``."""
    hour = moment.hour % 12 or 12
    suffix = "a. m." if moment.hour < 12 else "p. m."
    return f"{hour}:{moment.minute:02d} {suffix}"


def render_reminder(name: str | None, start_local: datetime) -> str:
    return REMINDER_TEMPLATE.format(name=f" {name}" if name else "", time=format_time_es(start_local).rstrip("."))


@dataclass
class SweepReport:
    cleanup: dict[str, Any] = field(default_factory=dict)
    reminders: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"cleanup": self.cleanup, "reminders": self.reminders}


class MaintenanceSweeper(BaseService):
    """Two independent, fault-isolated tasks run on the hourly schedule."""

    def __init__(
        self,
        session_factory,
        messenger,
        settings_service: BusinessSettingsService,
        audit: AuditService,
        clock: Callable[[], datetime] = utcnow,
        stale_after: timedelta = timedelta(minutes=60),
        reminder_window: tuple[timedelta, timedelta] = (timedelta(hours=23), timedelta(hours=25)),
    ) -> None:
        super().__init__(session_factory)
        self.messenger = messenger
        self.settings_service = settings_service
        self.audit = audit
        self.clock = clock
        self.stale_after = stale_after
        self.reminder_window = reminder_window

    def cleanup_stale_appointments(self) -> dict[str, Any]:
        cutoff = self.clock() - self.stale_after
        with self.session() as db:
            stale_ids = list(
                db.scalars(
                    select(Appointment.id).where(
                        Appointment.status == AppointmentStatus.UNCONFIRMED,
                        Appointment.created_at < cutoff,
                    )
                ).all()
            )
            if not stale_ids:
                return {"cancelled": 0, "ids": []}

            # Re-check the status so a confirmation that landed meanwhile wins.
            db.execute(
                update(Appointment)
                .where(Appointment.id.in_(stale_ids), Appointment.status == AppointmentStatus.UNCONFIRMED)
                .values(status=AppointmentStatus.CANCELLED, updated_at=utcnow())
            )
            self.commit(db)
            cancelled_ids = list(
                db.scalars(
                    select(Appointment.id).where(
                        Appointment.id.in_(stale_ids), Appointment.status == AppointmentStatus.CANCELLED
                    )
                ).all()
            )

        self.audit.record("stale_appointments_cancelled", {"count": len(cancelled_ids), "ids": cancelled_ids})
        logger.info(
            "sweeper.cleanup",
            extra={"event": "sweeper.cleanup", "cancelled": len(cancelled_ids)},
        )
        return {"cancelled": len(cancelled_ids), "ids": cancelled_ids}

    def dispatch_reminders(self) -> dict[str, Any]:
        now = self.clock()
        window_start, window_end = now + self.reminder_window[0], now + self.reminder_window[1]
        tz = self.settings_service.get_settings().tz

        with self.session() as db:
            rows = db.execute(
                select(Appointment.id, Appointment.start_time, Appointment.lead_id, Lead.sender_id, Lead.profile)
                .join(Lead, Lead.id == Appointment.lead_id)
                .where(
                    Appointment.status == AppointmentStatus.CONFIRMED,
                    Appointment.reminder_sent.is_(False),
                    Appointment.start_time >= window_start,
                    Appointment.start_time <= window_end,
                )
                .order_by(Appointment.start_time)
            ).all()

        sent: list[str] = []
        errors: list[dict[str, str]] = []
        for appointment_id, start_time, lead_id, sender_id, profile in rows:
            try:
                text = render_reminder((profile or {}).get("name"), start_time.astimezone(tz))
                self.messenger.send(sender_id, text)
                with self.session() as db:
                    db.execute(
                        update(Appointment)
                        .where(Appointment.id == appointment_id, Appointment.reminder_sent.is_(False))
                        .values(reminder_sent=True, updated_at=utcnow())
                    )
                    self.commit(db)
                sent.append(appointment_id)
                self.audit.record("reminder_sent", {"appointment_id": appointment_id}, lead_id=lead_id)
            except (CortexException, SQLAlchemyError) as exc:
                errors.append({"appointment_id": appointment_id, "error": str(exc)[:500]})
                logger.warning(
                    "sweeper.reminder_failed",
                    extra={"event": "sweeper.reminder_failed", "appointment_id": appointment_id, "error": str(exc)},
                )
                self.audit.record(
                    "reminder_failed",
                    {"appointment_id": appointment_id, "error": str(exc)[:500]},
                    lead_id=lead_id,
                )

        logger.info(
            "sweeper.reminders",
            extra={"event": "sweeper.reminders", "sent": len(sent), "failed": len(errors)},
        )
        return {"sent": len(sent), "ids": sent, "errors": errors}

    def run(self) -> SweepReport:
        report = SweepReport()
        try:
            report.cleanup = self.cleanup_stale_appointments()
        except Exception as exc:
            logger.exception("sweeper.cleanup_failed", extra={"event": "sweeper.cleanup_failed"})
            report.cleanup = {"error": str(exc)}
        try:
            report.reminders = self.dispatch_reminders()
        except Exception as exc:
            logger.exception("sweeper.reminders_failed", extra={"event": "sweeper.reminders_failed"})
            report.reminders = {"error": str(exc)}
        return report
