"""Parsing helpers for the dates and times users type in Spanish.

Only unambiguous expressions are recognised; anything else yields ``None``
so callers can report a malformed value instead of guessing.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta

ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
EMBEDDED_ISO_DATE_PATTERN = re.compile(r"\b(\d{4}-\d{2}-\d{2})\b")
HHMM_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")

WEEKDAYS = {
    "lunes": 0,
    "lun": 0,
    "martes": 1,
    "mar": 1,
    "miércoles": 2,
    "miercoles": 2,
    "mié": 2,
    "mie": 2,
    "jueves": 3,
    "jue": 3,
    "viernes": 4,
    "vie": 4,
    "sábado": 5,
    "sabado": 5,
    "sáb": 5,
    "sab": 5,
    "domingo": 6,
    "dom": 6,
}


def next_weekday(today: date, weekday: int) -> date:
    """Next occurrence of ``weekday`` strictly after ``today``."""
    days_ahead = weekday - today.weekday()
    if days_ahead <= 0:
        days_ahead += 7
    return today + timedelta(days=days_ahead)


def parse_iso_date(value: str) -> date | None:
    if not ISO_DATE_PATTERN.match(value):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def parse_spanish_date(value: str | None, today: date | None = None) -> date | None:
    if not value:
        return None

    text = value.lower().strip()
    today = today or date.today()

    if ISO_DATE_PATTERN.match(text):
        return parse_iso_date(text)

    embedded = EMBEDDED_ISO_DATE_PATTERN.search(text)
    if embedded:
        return parse_iso_date(embedded.group(1))

    if "pasado mañana" in text or "pasado manana" in text:
        return today + timedelta(days=2)
    if re.search(r"\bhoy\b", text):
        return today
    if re.search(r"\bma[ñn]ana\b", text) and not re.search(r"de la ma[ñn]ana", text):
        return today + timedelta(days=1)

    for name, weekday in WEEKDAYS.items():
        if re.search(rf"\b{name}\b", text):
            return next_weekday(today, weekday)

    if any(phrase in text for phrase in ("próxima semana", "proxima semana", "siguiente semana")):
        return next_weekday(today, 0)

    return None


def parse_spanish_time(value: str | None) -> str | None:
    """Return a 24h ``HH:MM`` string, or ``None`` when nothing is recognisable."""
    if not value:
        return None

    text = value.lower().strip()

    match = HHMM_PATTERN.match(text)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        if hour > 23 or minute > 59:
            return None
        return f"{hour:02d}:{minute:02d}"

    match = re.search(r"(\d{1,2})\s*(am|pm|a\.\s?m\.|p\.\s?m\.)", text)
    if match:
        hour = int(match.group(1))
        if hour < 1 or hour > 12:
            return None
        is_pm = match.group(2).startswith("p")
        if is_pm and hour != 12:
            hour += 12
        if not is_pm and hour == 12:
            hour = 0
        return f"{hour:02d}:00"

    match = re.search(r"(?:a\s+)?las?\s+(\d{1,2})(?::(\d{2}))?", text)
    if match:
        hour = int(match.group(1))
        minutes = match.group(2) or "00"
        if 1 <= hour <= 6:
            hour += 12
        if ("tarde" in text or "noche" in text) and hour < 12:
            hour += 12
        if re.search(r"ma[ñn]ana", text) and hour >= 13:
            hour -= 12
        if hour > 23 or int(minutes) > 59:
            return None
        return f"{hour:02d}:{minutes}"

    match = re.match(r"^(\d{1,2})$", text)
    if match:
        hour = int(match.group(1))
        if 7 <= hour <= 17:
            return f"{hour:02d}:00"

    return None


def parse_hhmm(value: str) -> time:
    """Strict ``HH:MM`` parser; raises ``ValueError`` on anything else."""
    match = HHMM_PATTERN.match(value.strip())
    if not match:
        raise ValueError(f"invalid time '{value}'")
    return time(int(match.group(1)), int(match.group(2)))


def local_day_bounds(day: date, tz) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min, tzinfo=tz)
    return start, start + timedelta(days=1)
