"""Appointment and availability schemas for API contracts."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict

from cortex.models.enums import AppointmentStatus


class AppointmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    lead_id: str
    start_time: datetime
    end_time: datetime
    status: AppointmentStatus
    notes: str | None = None
    reminder_sent: bool = False
    created_at: datetime | None = None


class TimeSlotResponse(BaseModel):
    date: date
    start_time: str
    end_time: str
    available: bool


class AppointmentActionResponse(BaseModel):
    id: str
    action: str
    ok: bool
