"""Booking engine: slot generation and the conflict-checked appointment calendar."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from sqlalchemy import select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from cortex.core.exceptions import DatabaseError, NotFoundError
from cortex.models.appointment import Appointment
from cortex.models.base import utcnow
from cortex.models.enums import ACTIVE_APPOINTMENT_STATUSES, AppointmentStatus
from cortex.services.base_service import BaseService
from cortex.services.settings_service import BusinessSettings, BusinessSettingsService
from cortex.utils.dates import local_day_bounds, parse_hhmm

logger = logging.getLogger(__name__)

LOOKAHEAD_DAYS = 14

# Striped in-process mutexes keyed by calendar date. Across processes the
# database serialises bookings: PostgreSQL through an advisory transaction
# lock, SQLite through a write transaction opened before the overlap read.
_DATE_LOCK_STRIPES = 64
_DATE_LOCKS = tuple(threading.Lock() for _ in range(_DATE_LOCK_STRIPES))


def _lock_for(day: date) -> threading.Lock:
    return _DATE_LOCKS[day.toordinal() % _DATE_LOCK_STRIPES]


def intervals_overlap(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open ``[start, end)`` overlap test used for every conflict decision."""
    return start_a < end_b and end_a > start_b


@dataclass(frozen=True)
class TimeSlot:
    date: date
    start: datetime
    end: datetime
    available: bool

    @property
    def start_time(self) -> str:
        return self.start.strftime("%H:%M")

    @property
    def end_time(self) -> str:
        return self.end.strftime("%H:%M")

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "start_time": self.start_time,
            "end_time": self.end_time,
            "available": self.available,
        }


@dataclass(frozen=True)
class BookingResult:
    appointment: Appointment | None = None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.appointment is not None


class BookingEngine(BaseService):
    """The only code path that writes Appointment rows."""

    def __init__(
        self,
        session_factory,
        settings_service: BusinessSettingsService,
        clock: Callable[[], datetime] = utcnow,
        lookahead_days: int = LOOKAHEAD_DAYS,
    ) -> None:
        super().__init__(session_factory)
        self.settings_service = settings_service
        self.clock = clock
        self.lookahead_days = lookahead_days

    def _active_overlapping(self, db: Session, window_start: datetime, window_end: datetime) -> list[Appointment]:
        stmt = (
            select(Appointment)
            .where(
                Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES),
                Appointment.start_time < window_end,
                Appointment.end_time > window_start,
            )
            .order_by(Appointment.start_time)
        )
        return list(db.scalars(stmt).all())

    def _candidate_slots(self, day: date, settings: BusinessSettings) -> list[tuple[datetime, datetime]]:
        schedule = settings.day_schedule(day)
        if not schedule.enabled:
            return []
        tz = settings.tz
        day_start = datetime.combine(day, schedule.start, tzinfo=tz)
        day_end = datetime.combine(day, schedule.end, tzinfo=tz)
        duration = timedelta(minutes=settings.slot_duration_minutes)

        slots = []
        cursor = day_start
        while cursor + duration <= day_end:
            slots.append((cursor, cursor + duration))
            cursor += duration
        return slots

    def get_available_slots(self, day: date) -> list[TimeSlot]:
        """All slots for ``day`` with their availability flag.

        Slots overlapping an active appointment, or starting inside the
        booking buffer, are flagged unavailable.
        """
        settings = self.settings_service.get_settings()
        candidates = self._candidate_slots(day, settings)
        if not candidates:
            return []

        earliest_start = self.clock() + timedelta(hours=settings.booking_buffer_hours)
        try:
            with self.session() as db:
                existing = self._active_overlapping(db, candidates[0][0], candidates[-1][1])
        except SQLAlchemyError as exc:
            raise DatabaseError(f"Failed to load appointments for {day}: {exc}") from exc

        slots = []
        for start, end in candidates:
            taken = any(intervals_overlap(start, end, apt.start_time, apt.end_time) for apt in existing)
            slots.append(TimeSlot(date=day, start=start, end=end, available=not taken and start >= earliest_start))
        return slots

    def _acquire_calendar_lock(self, db: Session, day: date) -> None:
        dialect = db.get_bind().dialect.name
        if dialect == "postgresql":
            db.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": day.toordinal()})
        elif dialect == "sqlite":
            # pysqlite defers BEGIN until the first write, so take the write
            # lock explicitly; other processes block here until commit.
            driver_connection = db.connection().connection.driver_connection
            if not driver_connection.in_transaction:
                db.execute(text("BEGIN IMMEDIATE"))

    def book_slot(self, lead_id: str, day: date, start_time: str, notes: str | None = None) -> BookingResult:
        """Insert an unconfirmed appointment unless the slot conflicts.

        The overlap check and the insert run in one transaction while holding
        the date's lock, so two concurrent attempts for the same slot cannot
        both succeed.
        """
        settings = self.settings_service.get_settings()
        schedule = settings.day_schedule(day)
        if not schedule.enabled:
            return BookingResult(reason="not_a_working_day")

        try:
            start_clock = parse_hhmm(start_time)
        except ValueError:
            return BookingResult(reason="invalid_start_time")

        tz = settings.tz
        start = datetime.combine(day, start_clock, tzinfo=tz)
        end = start + timedelta(minutes=settings.slot_duration_minutes)
        if start_clock < schedule.start or end > datetime.combine(day, schedule.end, tzinfo=tz):
            return BookingResult(reason="outside_business_hours")
        if start < self.clock() + timedelta(hours=settings.booking_buffer_hours):
            return BookingResult(reason="inside_booking_buffer")

        day_start, day_end = local_day_bounds(day, tz)
        with _lock_for(day):
            with self.session() as db:
                try:
                    self._acquire_calendar_lock(db, day)
                    same_day = self._active_overlapping(db, min(day_start, start), max(day_end, end))
                    if any(intervals_overlap(start, end, apt.start_time, apt.end_time) for apt in same_day):
                        db.rollback()
                        return self._rejected(lead_id, day, start_time, "slot_taken")

                    booked_today = sum(1 for apt in same_day if day_start <= apt.start_time < day_end)
                    if booked_today >= settings.max_daily_appointments:
                        db.rollback()
                        return self._rejected(lead_id, day, start_time, "daily_limit_reached")

                    appointment = Appointment(
                        lead_id=lead_id,
                        start_time=start,
                        end_time=end,
                        status=AppointmentStatus.UNCONFIRMED,
                        notes=notes,
                    )
                    db.add(appointment)
                    self.commit(db)
                except IntegrityError:
                    return self._rejected(lead_id, day, start_time, "slot_taken")
                except SQLAlchemyError as exc:
                    db.rollback()
                    raise DatabaseError(f"Failed to book slot {day} {start_time}: {exc}") from exc

        logger.info(
            "booking.created",
            extra={
                "event": "booking.created",
                "lead_id": lead_id,
                "appointment_id": appointment.id,
                "start_time": appointment.start_time.isoformat(),
            },
        )
        return BookingResult(appointment=appointment)

    def _rejected(self, lead_id: str, day: date, start_time: str, reason: str) -> BookingResult:
        logger.info(
            "booking.rejected",
            extra={
                "event": "booking.rejected",
                "lead_id": lead_id,
                "date": day.isoformat(),
                "start_time": start_time,
                "reason": reason,
            },
        )
        return BookingResult(reason=reason)

    def _transition(self, appointment_id: str, target: AppointmentStatus, allowed_from: Sequence[AppointmentStatus]) -> bool:
        try:
            with self.session() as db:
                appointment = db.get(Appointment, appointment_id)
                if appointment is None:
                    raise NotFoundError(f"Appointment {appointment_id} not found.")
                if appointment.status == target:
                    return True
                if appointment.status not in allowed_from:
                    logger.info(
                        "booking.transition_rejected",
                        extra={
                            "event": "booking.transition_rejected",
                            "appointment_id": appointment_id,
                            "from_status": appointment.status.value,
                            "to_status": target.value,
                        },
                    )
                    return False
                # Guard against a concurrent writer (e.g. the sweeper) moving it first.
                result = db.execute(
                    update(Appointment)
                    .where(Appointment.id == appointment_id, Appointment.status.in_(allowed_from))
                    .values(status=target, updated_at=utcnow())
                )
                self.commit(db)
                return result.rowcount == 1
        except SQLAlchemyError as exc:
            raise DatabaseError(f"Failed to update appointment {appointment_id}: {exc}") from exc

    def confirm_appointment(self, appointment_id: str) -> bool:
        return self._transition(appointment_id, AppointmentStatus.CONFIRMED, (AppointmentStatus.UNCONFIRMED,))

    def cancel_appointment(self, appointment_id: str) -> bool:
        return self._transition(appointment_id, AppointmentStatus.CANCELLED, ACTIVE_APPOINTMENT_STATUSES)

    def complete_appointment(self, appointment_id: str) -> bool:
        return self._transition(appointment_id, AppointmentStatus.COMPLETED, (AppointmentStatus.CONFIRMED,))

    def get_appointment(self, appointment_id: str) -> Appointment:
        with self.session() as db:
            appointment = db.get(Appointment, appointment_id)
            if appointment is None:
                raise NotFoundError(f"Appointment {appointment_id} not found.")
            return appointment

    def get_next_available_slot(self, from_day: date | None = None) -> TimeSlot | None:
        settings = self.settings_service.get_settings()
        first_day = from_day or self.clock().astimezone(settings.tz).date()
        for offset in range(self.lookahead_days):
            for slot in self.get_available_slots(first_day + timedelta(days=offset)):
                if slot.available:
                    return slot
        return None

    def list_appointments(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        statuses: Sequence[AppointmentStatus] | None = None,
        lead_id: str | None = None,
    ) -> list[Appointment]:
        """Read-only calendar query used by the admin surface."""
        stmt = select(Appointment).order_by(Appointment.start_time)
        if start is not None:
            stmt = stmt.where(Appointment.start_time >= start)
        if end is not None:
            stmt = stmt.where(Appointment.start_time < end)
        if statuses:
            stmt = stmt.where(Appointment.status.in_(tuple(statuses)))
        if lead_id is not None:
            stmt = stmt.where(Appointment.lead_id == lead_id)
        with self.session() as db:
            return list(db.scalars(stmt).all())
