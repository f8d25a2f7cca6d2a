from __future__ import annotations

from datetime import date

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from cortex.api.v1 import appointments, events, health, leads, settings
from cortex.core.dependencies import get_container
from cortex.main import create_app
from cortex.models.enums import AppointmentStatus
from cortex.schemas.events import InboundMessageEvent
from cortex.schemas.leads import AIPauseRequest, HumanMessageRequest
from cortex.schemas.settings import SettingUpdateRequest
from cortex.tasks import pipeline_tasks

from conftest import inbound


def _booked(container):
    lead, _ = container.leads.resolve_or_create("573001112233", "Ana")
    return lead, container.booking.book_slot(lead.id, date(2026, 3, 3), "10:00").appointment


def test_health_reports_database_status(container):
    assert health.health(container)["database"] == "ok"


def test_inbound_event_is_queued(monkeypatch):
    queued = []
    monkeypatch.setattr(pipeline_tasks, "enqueue_inbound_event", lambda event: queued.append(event) or "task-1")

    response = events.receive_inbound_event(
        InboundMessageEvent.model_validate(inbound("573001112233", "Hola", "wamid.1"))
    )

    assert response.status == "queued"
    assert response.task_id == "task-1"
    assert queued[0].external_message_id == "wamid.1"


def test_confirm_cancel_and_complete_endpoints(container):
    _, appointment = _booked(container)

    assert appointments.confirm_appointment(appointment.id, container).ok is True
    with pytest.raises(HTTPException) as missing:
        appointments.confirm_appointment("missing", container)
    assert missing.value.status_code == 404

    assert appointments.complete_appointment(appointment.id, container).ok is True
    with pytest.raises(HTTPException) as invalid:
        appointments.cancel_appointment(appointment.id, container)
    assert invalid.value.status_code == 409


def test_list_appointments_and_availability(container):
    _, appointment = _booked(container)

    listed = appointments.list_appointments(
        start=None, end=None, status_filter=AppointmentStatus.UNCONFIRMED, container=container
    )
    slots = appointments.get_availability(day=date(2026, 3, 3), only_available=True, container=container)

    assert [row.id for row in listed] == [appointment.id]
    assert "10:00" not in [slot.start_time for slot in slots]
    assert len(slots) == 7


def test_update_setting_validates_input(container):
    updated = settings.update_setting("booking_buffer", SettingUpdateRequest(value={"hours": 4}), container)

    assert updated.value == {"hours": 4}
    assert container.settings.get_settings().booking_buffer_hours == 4
    with pytest.raises(HTTPException) as exc:
        settings.update_setting("favorite_color", SettingUpdateRequest(value={"value": "azul"}), container)
    assert exc.value.status_code == 400


def test_operator_pause_and_human_message(container, messenger):
    lead, _ = container.leads.resolve_or_create("573001112233", "Ana")

    paused = leads.set_ai_pause(lead.id, AIPauseRequest(paused=True), container)
    sent = leads.send_human_message(lead.id, HumanMessageRequest(content="Hola, soy Carlos"), container)

    assert paused.ai_paused is True
    assert sent["sent"] is True
    assert messenger.sent == [("573001112233", "Hola, soy Carlos")]
    with pytest.raises(HTTPException) as exc:
        leads.set_ai_pause("missing", AIPauseRequest(paused=False), container)
    assert exc.value.status_code == 404


def test_human_message_delivery_failure_maps_to_bad_gateway(container, messenger):
    lead, _ = container.leads.resolve_or_create("573001112233")
    messenger.fail_times = 1

    with pytest.raises(HTTPException) as exc:
        leads.send_human_message(lead.id, HumanMessageRequest(content="Hola"), container)

    assert exc.value.status_code == 502


def test_routes_are_mounted_under_api_prefix(container):
    app = create_app()
    app.dependency_overrides[get_container] = lambda: container
    client = TestClient(app)
    prefix = container.config.API_PREFIX

    health_response = client.get(f"{prefix}/health")
    availability = client.get(f"{prefix}/availability", params={"date": "2026-03-07"})

    assert health_response.status_code == 200
    assert health_response.json()["status"] == "ok"
    assert availability.status_code == 200
    assert availability.json() == []
