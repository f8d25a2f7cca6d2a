"""Agent router: picks a response mode by lead status and guards the model output."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import date
from time import perf_counter
from typing import Callable

from pydantic import ValidationError as SchemaValidationError

from cortex.core.exceptions import LLMError
from cortex.llm.client import LLMClient
from cortex.llm.prompt_templates.defaults import DEFAULT_PROMPT_REGISTRY, FALLBACK_MESSAGE
from cortex.llm.validators.guardrails import apply_guardrails, validate_non_empty_output
from cortex.models.enums import LeadStatus
from cortex.schemas.agent import AgentResponse

logger = logging.getLogger(__name__)

PromptRenderer = Callable[[dict], str]


class AgentMode(str, enum.Enum):
    DIAGNOSTIC = "diagnostic"
    SCHEDULING = "scheduling"


MODE_BY_STATUS = {
    LeadStatus.NEW: AgentMode.DIAGNOSTIC,
    LeadStatus.DIAGNOSING: AgentMode.DIAGNOSTIC,
    LeadStatus.QUALIFIED: AgentMode.SCHEDULING,
    LeadStatus.BOOKED: AgentMode.SCHEDULING,
}

MODE_PROMPT_KEYS = {
    AgentMode.DIAGNOSTIC: "agent.diagnostic",
    AgentMode.SCHEDULING: "agent.scheduling",
}

MODE_TEMPERATURES = {
    AgentMode.DIAGNOSTIC: 0.7,
    AgentMode.SCHEDULING: 0.5,
}

LOW_CONFIDENCE_THRESHOLD = 0.3


@dataclass(frozen=True)
class LeadState:
    lead_id: str
    status: LeadStatus
    profile: dict = field(default_factory=dict)
    summary: str | None = None
    sentiment: str | None = None


@dataclass(frozen=True)
class AgentDecision:
    response: AgentResponse
    mode: AgentMode
    degraded: bool
    latency_ms: int
    model_name: str
    failure_reason: str | None = None
    guardrails: tuple[str, ...] = ()

    def to_payload(self) -> dict:
        return {
            "response": self.response.to_payload(),
            "mode": self.mode.value,
            "degraded": self.degraded,
            "latency_ms": self.latency_ms,
            "model_name": self.model_name,
            "failure_reason": self.failure_reason,
            "guardrails": list(self.guardrails),
        }


def fallback_response() -> AgentResponse:
    return AgentResponse(message=FALLBACK_MESSAGE, tool_calls=[], confidence=0.0)


def select_mode(status: LeadStatus) -> AgentMode:
    return MODE_BY_STATUS.get(status, AgentMode.DIAGNOSTIC)


class AgentRouter:
    """Unified generation entrypoint: ``respond(lead_state, history, user_message)``.

    Never raises for model trouble; a failed or malformed call degrades to the
    fixed fallback reply with zero confidence and no tool calls.
    """

    def __init__(
        self,
        client: LLMClient,
        business_hours: Callable[[], str] | None = None,
        prompt_registry: dict[str, PromptRenderer] | None = None,
        max_history: int = 20,
        max_length: int = 4000,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.client = client
        self.business_hours = business_hours or (lambda: "")
        self.prompt_registry = prompt_registry or dict(DEFAULT_PROMPT_REGISTRY)
        self.max_history = max_history
        self.max_length = max_length
        self.today = today

    def build_context(self, lead_state: LeadState, history: list[str]) -> dict:
        return {
            "today": self.today().isoformat(),
            "status": lead_state.status.value,
            "profile": lead_state.profile,
            "summary": lead_state.summary,
            "sentiment": lead_state.sentiment,
            "business_hours": self.business_hours(),
            "history": "\n".join(history[-self.max_history:]),
        }

    def respond(self, lead_state: LeadState, history: list[str], user_message: str) -> AgentDecision:
        mode = select_mode(lead_state.status)
        system = self.prompt_registry[MODE_PROMPT_KEYS[mode]](self.build_context(lead_state, history))
        started = perf_counter()

        try:
            raw = self.client.generate(system, user_message, json_mode=True, temperature=MODE_TEMPERATURES[mode])
            ok, reason = validate_non_empty_output(raw.text)
            if not ok:
                raise LLMError(reason or "empty output")
            parsed = AgentResponse.model_validate_json(raw.text)
        except (LLMError, SchemaValidationError) as exc:
            latency_ms = int((perf_counter() - started) * 1000)
            logger.warning(
                "router.degraded",
                extra={"event": "router.degraded", "lead_id": lead_state.lead_id, "mode": mode.value, "error": str(exc)},
            )
            return AgentDecision(
                response=fallback_response(),
                mode=mode,
                degraded=True,
                latency_ms=latency_ms,
                model_name=getattr(self.client, "model_name", "unknown"),
                failure_reason=str(exc)[:500],
            )

        message, fired = apply_guardrails(parsed.message, self.max_length)
        if not message:
            message = FALLBACK_MESSAGE
        response = parsed.model_copy(update={"message": message})
        if fired:
            logger.info(
                "router.guardrails_applied",
                extra={"event": "router.guardrails_applied", "lead_id": lead_state.lead_id, "rules": fired},
            )
        if response.confidence < LOW_CONFIDENCE_THRESHOLD:
            logger.warning(
                "router.low_confidence",
                extra={"event": "router.low_confidence", "lead_id": lead_state.lead_id, "confidence": response.confidence},
            )

        return AgentDecision(
            response=response,
            mode=mode,
            degraded=False,
            latency_ms=raw.latency_ms,
            model_name=raw.model_name,
            guardrails=tuple(fired),
        )
