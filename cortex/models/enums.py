"""Canonical enum values for the conversation schema."""

from __future__ import annotations

import enum


class LeadStatus(str, enum.Enum):
    NEW = "new"
    DIAGNOSING = "diagnosing"
    QUALIFIED = "qualified"
    BOOKED = "booked"
    NURTURE = "nurture"
    CLOSED_LOST = "closed_lost"


class MessageRole(str, enum.Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    HUMAN_AGENT = "human_agent"


class AppointmentStatus(str, enum.Enum):
    UNCONFIRMED = "unconfirmed"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


# Statuses that occupy the calendar.
ACTIVE_APPOINTMENT_STATUSES = (AppointmentStatus.UNCONFIRMED, AppointmentStatus.CONFIRMED)


class EventStatus(str, enum.Enum):
    RECEIVED = "received"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class CheckpointStatus(str, enum.Enum):
    COMPLETED = "completed"
    FAILED = "failed"
