"""Tool executor: runs the agent's structured tool calls against domain services."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date
from time import perf_counter
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError

from cortex.core.exceptions import ServiceError
from cortex.models.lead import Lead
from cortex.schemas.agent import (
    TOOL_ARG_MODELS,
    BookSlotArgs,
    CheckAvailabilityArgs,
    HandoffToHumanArgs,
    UpdateLeadProfileArgs,
)
from cortex.services.audit_service import AuditService
from cortex.services.booking_service import BookingEngine
from cortex.services.lead_service import LeadService
from cortex.utils.dates import ISO_DATE_PATTERN, parse_iso_date, parse_spanish_date, parse_spanish_time

logger = logging.getLogger(__name__)

MISSING_DATE_ERROR = "Por favor, proporciona una fecha específica (YYYY-MM-DD) para verificar la disponibilidad."
MISSING_TIME_ERROR = "Por favor, proporciona una hora específica (HH:MM) para la cita."
UNKNOWN_TOOL_ERROR = "Unknown tool"

BOOKING_REJECTION_MESSAGES = {
    "slot_taken": "Slot unavailable or conflict: ese horario ya está ocupado.",
    "not_a_working_day": "Slot unavailable or conflict: ese día no atendemos.",
    "outside_business_hours": "Slot unavailable or conflict: la hora está fuera del horario de atención.",
    "inside_booking_buffer": "Slot unavailable or conflict: se requiere más anticipación para agendar.",
    "daily_limit_reached": "Slot unavailable or conflict: no quedan cupos para ese día.",
    "invalid_start_time": "Formato de hora inválido. Usa HH:MM (24h).",
}


def malformed_date_error(raw: str) -> str:
    return f"Formato de fecha inválido: '{raw}'. Usa YYYY-MM-DD."


def malformed_time_error(raw: str) -> str:
    return f"Formato de hora inválido: '{raw}'. Usa HH:MM (24h)."


@dataclass(frozen=True)
class ToolExecutionResult:
    tool: str
    success: bool
    result: Any = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"tool": self.tool, "success": self.success}
        if self.success:
            payload["result"] = self.result
        else:
            payload["error"] = self.error
        return payload


class ToolArgumentError(ValueError):
    """Malformed or missing tool argument; reported, never propagated."""


class ToolExecutor:
    """Executes each call independently; one failure never aborts the rest."""

    def __init__(
        self,
        leads: LeadService,
        booking: BookingEngine,
        audit: AuditService,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.leads = leads
        self.booking = booking
        self.audit = audit
        self.today = today
        self._handlers: dict[str, Callable[[Lead, Any], Any]] = {
            "updateLeadProfile": self._update_lead_profile,
            "checkAvailability": self._check_availability,
            "bookSlot": self._book_slot,
            "handoffToHuman": self._handoff_to_human,
        }

    def execute(self, tool_calls: Iterable[Any], lead: Lead) -> list[ToolExecutionResult]:
        results = []
        for call in tool_calls:
            results.append(self.execute_one(call, lead))
        return results

    def execute_one(self, call: Any, lead: Lead) -> ToolExecutionResult:
        name, args = self._normalize(call)
        handler = self._handlers.get(name or "")
        if handler is None:
            logger.warning("tool.unknown", extra={"event": "tool.unknown", "lead_id": lead.id, "tool": name})
            return ToolExecutionResult(tool=str(name), success=False, error=UNKNOWN_TOOL_ERROR)

        started = perf_counter()
        try:
            if not isinstance(args, BaseModel):
                args = TOOL_ARG_MODELS[name].model_validate(args or {})
            result = handler(lead, args)
        except SchemaValidationError as exc:
            return self._failed(name, lead, f"Argumentos inválidos para {name}: {exc.error_count()} error(es).")
        except ToolArgumentError as exc:
            return self._failed(name, lead, str(exc))
        except Exception as exc:
            logger.exception(
                "tool.execution_failed",
                extra={"event": "tool.execution_failed", "lead_id": lead.id, "tool": name},
            )
            return self._failed(name, lead, str(exc) or exc.__class__.__name__)

        logger.info(
            "tool.executed",
            extra={
                "event": "tool.executed",
                "lead_id": lead.id,
                "tool": name,
                "latency_ms": int((perf_counter() - started) * 1000),
            },
        )
        return ToolExecutionResult(tool=name, success=True, result=result)

    def _failed(self, name: str, lead: Lead, error: str) -> ToolExecutionResult:
        logger.info("tool.rejected", extra={"event": "tool.rejected", "lead_id": lead.id, "tool": name, "error": error})
        return ToolExecutionResult(tool=name, success=False, error=error)

    @staticmethod
    def _normalize(call: Any) -> tuple[str | None, Any]:
        if isinstance(call, BaseModel):
            return getattr(call, "tool", None), getattr(call, "args", None)
        if isinstance(call, dict):
            args = call.get("args")
            return call.get("tool"), args if args is not None else {}
        return None, None

    def _resolve_date(self, raw: str | None) -> date:
        if raw is None or not str(raw).strip():
            raise ToolArgumentError(MISSING_DATE_ERROR)
        value = str(raw).strip()
        if ISO_DATE_PATTERN.match(value):
            parsed = parse_iso_date(value)
        else:
            parsed = parse_spanish_date(value, today=self.today())
        if parsed is None:
            raise ToolArgumentError(malformed_date_error(value))
        return parsed

    def _resolve_time(self, raw: str | None) -> str:
        if raw is None or not str(raw).strip():
            raise ToolArgumentError(MISSING_TIME_ERROR)
        parsed = parse_spanish_time(str(raw))
        if parsed is None:
            raise ToolArgumentError(malformed_time_error(str(raw).strip()))
        return parsed

    def _update_lead_profile(self, lead: Lead, args: UpdateLeadProfileArgs) -> dict:
        updates = args.model_dump(exclude_none=True, exclude={"lead_score"})
        profile = self.leads.update_profile(lead.id, updates, lead_score=args.lead_score)
        return {"profile": profile, "lead_score": args.lead_score}

    def _check_availability(self, lead: Lead, args: CheckAvailabilityArgs) -> dict:
        day = self._resolve_date(args.date)
        available = [slot.to_dict() for slot in self.booking.get_available_slots(day) if slot.available]
        result: dict[str, Any] = {"date": day.isoformat(), "slots": available}
        if not available:
            suggestion = self.booking.get_next_available_slot(day)
            result["next_available"] = suggestion.to_dict() if suggestion else None
        return result

    def _book_slot(self, lead: Lead, args: BookSlotArgs) -> dict:
        day = self._resolve_date(args.date)
        start_time = self._resolve_time(args.start_time)
        outcome = self.booking.book_slot(lead.id, day, start_time, notes=args.notes)
        if not outcome.ok:
            raise ToolArgumentError(
                BOOKING_REJECTION_MESSAGES.get(outcome.reason or "", "Slot unavailable or conflict")
            )
        appointment = outcome.appointment
        return {
            "appointment_id": appointment.id,
            "start_time": appointment.start_time.isoformat(),
            "end_time": appointment.end_time.isoformat(),
            "status": appointment.status.value,
        }

    def _handoff_to_human(self, lead: Lead, args: HandoffToHumanArgs) -> dict:
        self.leads.set_ai_paused(lead.id, True)
        payload = {"reason": args.reason, "urgency": args.urgency, "summary": args.summary}
        if not self.audit.record("handoff_requested", payload, lead_id=lead.id):
            raise ServiceError("Handoff audit entry could not be written.")
        return {"ai_paused": True, **payload}
