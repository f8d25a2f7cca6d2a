"""Business settings: persistent store, typed view, and write path."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from cortex.core.exceptions import DatabaseError, ValidationError
from cortex.models.business_setting import BusinessSetting
from cortex.services.base_service import BaseService
from cortex.services.settings_cache import SettingsCache
from cortex.utils.dates import parse_hhmm

logger = logging.getLogger(__name__)

WEEKDAY_KEYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

WEEKDAY_LABELS_ES = {
    "monday": "Lunes",
    "tuesday": "Martes",
    "wednesday": "Miércoles",
    "thursday": "Jueves",
    "friday": "Viernes",
    "saturday": "Sábado",
    "sunday": "Domingo",
}

DEFAULT_TIMEZONE = "America/Bogota"

DEFAULT_SETTING_VALUES: dict[str, dict[str, Any]] = {
    "business_hours": {
        "monday": {"enabled": True, "start": "09:00", "end": "17:00"},
        "tuesday": {"enabled": True, "start": "09:00", "end": "17:00"},
        "wednesday": {"enabled": True, "start": "09:00", "end": "17:00"},
        "thursday": {"enabled": True, "start": "09:00", "end": "17:00"},
        "friday": {"enabled": True, "start": "09:00", "end": "17:00"},
        "saturday": {"enabled": False, "start": "09:00", "end": "13:00"},
        "sunday": {"enabled": False, "start": "09:00", "end": "13:00"},
    },
    "slot_duration": {"minutes": 60},
    "timezone": {"value": DEFAULT_TIMEZONE},
    "booking_buffer": {"hours": 2},
    "max_daily_appointments": {"value": 8},
}

SETTING_KEYS = frozenset(DEFAULT_SETTING_VALUES)


@dataclass(frozen=True)
class DaySchedule:
    enabled: bool
    start: time
    end: time

    def format(self) -> str:
        return f"{self.start.strftime('%H:%M')} - {self.end.strftime('%H:%M')}"


@dataclass(frozen=True)
class BusinessSettings:
    """Typed snapshot of the scheduling configuration."""

    business_hours: dict[str, DaySchedule]
    slot_duration_minutes: int = 60
    timezone: str = DEFAULT_TIMEZONE
    booking_buffer_hours: int = 2
    max_daily_appointments: int = 8
    warnings: tuple[str, ...] = field(default=(), compare=False)

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def day_schedule(self, day: date) -> DaySchedule:
        return self.business_hours[WEEKDAY_KEYS[day.weekday()]]


class SettingsStore(BaseService):
    """Key/value settings rows: ``read(key) -> value | None`` and ``write``."""

    def read(self, key: str) -> dict | None:
        try:
            with self.session() as db:
                row = db.get(BusinessSetting, key)
                return copy.deepcopy(row.value) if row is not None else None
        except SQLAlchemyError as exc:
            raise DatabaseError(f"Failed to read setting '{key}': {exc}") from exc

    def write(self, key: str, value: dict, updated_by: str | None = None) -> None:
        try:
            with self.session() as db:
                row = db.get(BusinessSetting, key)
                if row is None:
                    db.add(BusinessSetting(key=key, value=value, updated_by=updated_by))
                else:
                    row.value = value
                    row.updated_by = updated_by
                self.commit(db)
        except SQLAlchemyError as exc:
            raise DatabaseError(f"Failed to write setting '{key}': {exc}") from exc

    def all(self) -> dict[str, dict]:
        try:
            with self.session() as db:
                rows = db.scalars(select(BusinessSetting)).all()
                return {row.key: copy.deepcopy(row.value) for row in rows}
        except SQLAlchemyError as exc:
            raise DatabaseError(f"Failed to list settings: {exc}") from exc


def _parse_day(raw: Any, fallback: dict) -> DaySchedule:
    if not isinstance(raw, dict):
        raw = fallback
    start = parse_hhmm(str(raw.get("start", fallback["start"])))
    end = parse_hhmm(str(raw.get("end", fallback["end"])))
    if end <= start:
        raise ValueError(f"day ends ({end}) before it starts ({start})")
    return DaySchedule(enabled=bool(raw.get("enabled", False)), start=start, end=end)


def _positive_int(raw: Any, field_name: str) -> int:
    if not isinstance(raw, dict) or isinstance(raw.get(field_name), bool):
        raise ValueError(f"expected an object with '{field_name}'")
    value = int(raw[field_name])
    if value < 0:
        raise ValueError(f"'{field_name}' must be >= 0")
    return value


def _validate_value(key: str, value: Any) -> None:
    """Raise ``ValueError`` if ``value`` cannot be interpreted for ``key``."""
    if key == "business_hours":
        if not isinstance(value, dict):
            raise ValueError("business_hours must be an object keyed by weekday")
        unknown = set(value) - set(WEEKDAY_KEYS)
        if unknown:
            raise ValueError(f"unknown weekdays: {sorted(unknown)}")
        for day_key in WEEKDAY_KEYS:
            _parse_day(value.get(day_key), DEFAULT_SETTING_VALUES["business_hours"][day_key])
    elif key == "slot_duration":
        if _positive_int(value, "minutes") < 5:
            raise ValueError("slot duration must be at least 5 minutes")
    elif key == "timezone":
        if not isinstance(value, dict):
            raise ValueError("expected an object with 'value'")
        try:
            ZoneInfo(str(value.get("value")))
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone {value.get('value')!r}") from exc
    elif key == "booking_buffer":
        _positive_int(value, "hours")
    elif key == "max_daily_appointments":
        _positive_int(value, "value")


class BusinessSettingsService:
    """Reads business settings through the cache and owns the write path."""

    def __init__(self, cache: SettingsCache, store: SettingsStore, default_timezone: str = DEFAULT_TIMEZONE) -> None:
        self.cache = cache
        self.store = store
        self.default_timezone = default_timezone

    def _defaults(self) -> dict[str, dict[str, Any]]:
        defaults = copy.deepcopy(DEFAULT_SETTING_VALUES)
        defaults["timezone"] = {"value": self.default_timezone}
        return defaults

    def get_raw(self, key: str) -> Any:
        return self.cache.get(key, self._defaults().get(key))

    def get_settings(self) -> BusinessSettings:
        defaults = self._defaults()
        warnings: list[str] = []

        def read(key: str, parser):
            try:
                return parser(self.cache.get(key, defaults[key]))
            except (ValueError, TypeError, KeyError) as exc:
                warnings.append(f"{key}: {exc}")
                logger.warning(
                    "settings.invalid_value",
                    extra={"event": "settings.invalid_value", "key": key, "error": str(exc)},
                )
                return parser(defaults[key])

        def parse_hours(raw):
            if not isinstance(raw, dict):
                raise ValueError("business_hours must be an object")
            default_hours = defaults["business_hours"]
            return {day_key: _parse_day(raw.get(day_key), default_hours[day_key]) for day_key in WEEKDAY_KEYS}

        def parse_timezone(raw):
            name = str(raw["value"])
            ZoneInfo(name)
            return name

        def parse_slot(raw):
            minutes = _positive_int(raw, "minutes")
            if minutes < 5:
                raise ValueError("slot duration must be at least 5 minutes")
            return minutes

        tz_name = read("timezone", parse_timezone)
        return BusinessSettings(
            business_hours=read("business_hours", parse_hours),
            slot_duration_minutes=read("slot_duration", parse_slot),
            timezone=tz_name,
            booking_buffer_hours=read("booking_buffer", lambda raw: _positive_int(raw, "hours")),
            max_daily_appointments=read("max_daily_appointments", lambda raw: _positive_int(raw, "value")),
            warnings=tuple(warnings),
        )

    def day_schedule(self, day: date) -> DaySchedule:
        return self.get_settings().day_schedule(day)

    def is_within_business_hours(self, moment: datetime) -> bool:
        settings = self.get_settings()
        local = moment.astimezone(settings.tz)
        schedule = settings.day_schedule(local.date())
        if not schedule.enabled:
            return False
        return schedule.start <= local.time() < schedule.end

    def format_business_hours(self) -> str:
        settings = self.get_settings()
        lines = []
        for day_key in WEEKDAY_KEYS:
            schedule = settings.business_hours[day_key]
            label = WEEKDAY_LABELS_ES[day_key]
            lines.append(f"{label}: {schedule.format() if schedule.enabled else 'Cerrado'}")
        return "\n".join(lines)

    def update_setting(self, key: str, value: dict, updated_by: str | None = None) -> None:
        """Validate, persist, then invalidate the cached entry."""
        if key not in SETTING_KEYS:
            raise ValidationError(f"Unknown setting '{key}'.")
        try:
            _validate_value(key, value)
        except (ValueError, TypeError) as exc:
            raise ValidationError(f"Invalid value for '{key}': {exc}") from exc

        self.store.write(key, value, updated_by=updated_by)
        self.cache.invalidate(key)
        logger.info(
            "settings.updated",
            extra={"event": "settings.updated", "key": key, "updated_by": updated_by},
        )

    def seed_defaults(self, overwrite: bool = False) -> list[str]:
        """Write any missing default settings; returns the keys written."""
        existing = self.store.all()
        written = []
        for key, value in self._defaults().items():
            if key in existing and not overwrite:
                continue
            self.store.write(key, value, updated_by="system")
            written.append(key)
        self.cache.invalidate_all()
        return written
