"""Appointment calendar and availability endpoints for API v1."""

from __future__ import annotations

from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status

from cortex.core.dependencies import ServiceContainer, get_container
from cortex.core.exceptions import NotFoundError
from cortex.models.enums import AppointmentStatus
from cortex.schemas.appointments import AppointmentActionResponse, AppointmentResponse, TimeSlotResponse

router = APIRouter(tags=["appointments"])


@router.get("/appointments", response_model=list[AppointmentResponse])
def list_appointments(
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    status_filter: AppointmentStatus | None = Query(default=None, alias="status"),
    container: ServiceContainer = Depends(get_container),
) -> list[AppointmentResponse]:
    if start is not None and end is not None and end <= start:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="end must be after start")
    statuses = [status_filter] if status_filter is not None else None
    rows = container.booking.list_appointments(start=start, end=end, statuses=statuses)
    return [AppointmentResponse.model_validate(row) for row in rows]


def _apply(action: str, appointment_id: str, container: ServiceContainer) -> AppointmentActionResponse:
    operations = {
        "confirm": container.booking.confirm_appointment,
        "cancel": container.booking.cancel_appointment,
        "complete": container.booking.complete_appointment,
    }
    try:
        ok = operations[action](appointment_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if not ok:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Appointment {appointment_id} cannot be marked '{action}' from its current status.",
        )
    container.audit.record(f"appointment_{action}", {"appointment_id": appointment_id})
    return AppointmentActionResponse(id=appointment_id, action=action, ok=True)


@router.post("/appointments/{appointment_id}/confirm", response_model=AppointmentActionResponse)
def confirm_appointment(appointment_id: str, container: ServiceContainer = Depends(get_container)) -> AppointmentActionResponse:
    return _apply("confirm", appointment_id, container)


@router.post("/appointments/{appointment_id}/cancel", response_model=AppointmentActionResponse)
def cancel_appointment(appointment_id: str, container: ServiceContainer = Depends(get_container)) -> AppointmentActionResponse:
    return _apply("cancel", appointment_id, container)


@router.post("/appointments/{appointment_id}/complete", response_model=AppointmentActionResponse)
def complete_appointment(appointment_id: str, container: ServiceContainer = Depends(get_container)) -> AppointmentActionResponse:
    return _apply("complete", appointment_id, container)


@router.get("/availability", response_model=list[TimeSlotResponse])
def get_availability(
    day: date = Query(alias="date"),
    only_available: bool = Query(default=False),
    container: ServiceContainer = Depends(get_container),
) -> list[TimeSlotResponse]:
    slots = container.booking.get_available_slots(day)
    return [
        TimeSlotResponse(**slot.to_dict())
        for slot in slots
        if slot.available or not only_available
    ]
