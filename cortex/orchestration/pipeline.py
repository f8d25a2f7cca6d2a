"""Conversation pipeline: inbound event to reply, tool effects and lead state."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from cortex.core.exceptions import LLMError, MessagingError, StepFailedError
from cortex.llm.router import AgentDecision, AgentRouter, LeadState, fallback_response, select_mode
from cortex.llm.sentiment import sentiment_signal
from cortex.llm.summarizer import ConversationSummarizer
from cortex.models.enums import LeadStatus, MessageRole
from cortex.orchestration.state_machine import LEAD_STATE_MACHINE, StateMachine
from cortex.orchestration.steps import ClaimOutcome, EventLedger, StepRunner
from cortex.schemas.agent import AgentResponse
from cortex.schemas.events import InboundMessageEvent
from cortex.services.audit_service import AuditService
from cortex.services.lead_service import LeadService
from cortex.services.message_service import MessageService, history_lines
from cortex.services.tool_executor import ToolExecutor
from cortex.utils.validators import contains_pii, redact_pii, sanitize_input

logger = logging.getLogger(__name__)

STATUS_COMPLETED = "completed"
STATUS_RECOVERED = "recovered"
STATUS_FAILED = "failed"
STATUS_DUPLICATE = "duplicate"
STATUS_IN_PROGRESS = "in_progress"
STATUS_PAUSED = "ai_paused"
STATUS_SKIPPED = "skipped"


@dataclass(frozen=True)
class PipelineResult:
    status: str
    event_id: str
    lead_id: str | None = None
    reply: str | None = None
    tool_results: list[dict[str, Any]] = field(default_factory=list)
    new_status: str | None = None
    error: str | None = None
    duration_ms: int = 0

    @property
    def recovered(self) -> bool:
        return self.status == STATUS_RECOVERED

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "event_id": self.event_id,
            "lead_id": self.lead_id,
            "reply": self.reply,
            "tool_results": self.tool_results,
            "new_status": self.new_status,
            "error": self.error,
            "duration_ms": self.duration_ms,
        }


class ConversationPipeline:
    """Durable, step-wise processing of one inbound message.

    Every stage runs through the ``StepRunner`` keyed by the external message
    id, so a redelivered or resumed event replays finished stages from their
    checkpoints and never re-sends a reply that already went out.
    """

    def __init__(
        self,
        *,
        ledger: EventLedger,
        steps: StepRunner,
        leads: LeadService,
        messages: MessageService,
        router: AgentRouter,
        executor: ToolExecutor,
        messenger,
        audit: AuditService,
        summarizer: ConversationSummarizer | None = None,
        state_machine: StateMachine = LEAD_STATE_MACHINE,
        max_history: int = 20,
        summary_every: int = 20,
    ) -> None:
        self.ledger = ledger
        self.steps = steps
        self.leads = leads
        self.messages = messages
        self.router = router
        self.executor = executor
        self.messenger = messenger
        self.audit = audit
        self.summarizer = summarizer
        self.state_machine = state_machine
        self.max_history = max_history
        self.summary_every = summary_every

    def process(self, event: InboundMessageEvent) -> PipelineResult:
        started = perf_counter()
        event_id = event.external_message_id

        claim = self.ledger.claim(event_id, event.sender_id, event.to_payload())
        if claim != ClaimOutcome.CLAIMED:
            logger.info(
                "pipeline.event_not_claimed",
                extra={"event": "pipeline.event_not_claimed", "event_id": event_id, "outcome": claim.value},
            )
            return self._unclaimed(event_id, claim, started)

        try:
            result = self._run(event, started)
            lead_id = result.lead_id
        except StepFailedError as exc:
            return self._fail(event_id, self._lead_id_for(event), f"{exc.step}: {exc.last_error}", started)
        except Exception as exc:
            logger.exception(
                "pipeline.unexpected_error",
                extra={"event": "pipeline.unexpected_error", "event_id": event_id},
            )
            return self._fail(event_id, self._lead_id_for(event), f"{exc.__class__.__name__}: {exc}", started)

        self.ledger.mark_completed(event_id, result.to_dict(), lead_id=lead_id)
        logger.info(
            "pipeline.completed",
            extra={
                "event": "pipeline.completed",
                "event_id": event_id,
                "lead_id": lead_id,
                "status": result.status,
                "duration_ms": result.duration_ms,
            },
        )
        return result

    def _unclaimed(self, event_id: str, claim: ClaimOutcome, started: float) -> PipelineResult:
        duration_ms = int((perf_counter() - started) * 1000)
        if claim == ClaimOutcome.DUPLICATE:
            stored = self.ledger.get(event_id)
            previous = (stored.result or {}) if stored is not None else {}
            return PipelineResult(
                status=STATUS_DUPLICATE,
                event_id=event_id,
                lead_id=previous.get("lead_id"),
                reply=previous.get("reply"),
                duration_ms=duration_ms,
            )
        if claim == ClaimOutcome.EXHAUSTED:
            return PipelineResult(
                status=STATUS_FAILED,
                event_id=event_id,
                error="event exhausted its processing attempts",
                duration_ms=duration_ms,
            )
        return PipelineResult(status=STATUS_IN_PROGRESS, event_id=event_id, duration_ms=duration_ms)

    def _lead_id_for(self, event: InboundMessageEvent) -> str | None:
        try:
            lead = self.leads.get_by_sender(event.sender_id)
        except SQLAlchemyError:
            return None
        return lead.id if lead is not None else None

    def _fail(self, event_id: str, lead_id: str | None, error: str, started: float) -> PipelineResult:
        self.audit.record("pipeline_error", {"event_id": event_id, "error": error[:1000]}, lead_id=lead_id)
        self.ledger.mark_failed(event_id, error, lead_id=lead_id)
        return PipelineResult(
            status=STATUS_FAILED,
            event_id=event_id,
            lead_id=lead_id,
            error=error,
            duration_ms=int((perf_counter() - started) * 1000),
        )

    def _run(self, event: InboundMessageEvent, started: float) -> PipelineResult:
        event_id = event.external_message_id
        text = sanitize_input(event.text)
        if contains_pii(text):
            logger.warning(
                "pipeline.pii_detected",
                extra={"event": "pipeline.pii_detected", "event_id": event_id, "redacted": redact_pii(text)[:500]},
            )

        lead_info = self.steps.run(event_id, "resolve-lead", lambda: self._resolve_lead(event))
        lead_id = lead_info["lead_id"]

        def finish(status: str, **values) -> PipelineResult:
            return PipelineResult(
                status=status,
                event_id=event_id,
                lead_id=lead_id,
                duration_ms=int((perf_counter() - started) * 1000),
                **values,
            )

        if not text:
            return finish(STATUS_SKIPPED)

        self.steps.run(
            event_id,
            "record-inbound",
            lambda: self._record(lead_id, MessageRole.USER, text, event_id),
            lead_id=lead_id,
        )
        if lead_info["ai_paused"]:
            logger.info("pipeline.ai_paused", extra={"event": "pipeline.ai_paused", "event_id": event_id, "lead_id": lead_id})
            return finish(STATUS_PAUSED)

        current_status = LeadStatus(lead_info["status"])
        generated = self.steps.run(
            event_id,
            "generate-response",
            lambda: self._generate(lead_id, current_status, text, event_id),
            lead_id=lead_id,
            fallback=lambda exc: self._fallback_decision(current_status, exc),
        )
        response = AgentResponse.model_validate(generated["response"])
        degraded = bool(generated.get("degraded"))

        self.steps.run(
            event_id,
            "save-reply",
            lambda: self._record(lead_id, MessageRole.ASSISTANT, response.message, f"{event_id}:reply"),
            lead_id=lead_id,
        )
        self.steps.run(
            event_id,
            "send-reply",
            lambda: self._send(lead_id, event.sender_id, response.message),
            lead_id=lead_id,
        )

        tool_results: list[dict[str, Any]] = []
        if response.tool_calls:
            executed = self.steps.run(
                event_id,
                "execute-tools",
                lambda: self._execute_tools(lead_id, response),
                lead_id=lead_id,
            )
            tool_results = executed["results"]

        new_status = None
        if response.next_state is not None and response.next_state != current_status:
            transition = self.steps.run(
                event_id,
                "update-status",
                lambda: self._update_status(lead_id, current_status, response.next_state),
                lead_id=lead_id,
            )
            new_status = transition.get("status") if transition.get("applied") else None

        if self.summarizer is not None:
            try:
                self.steps.run(event_id, "summarize-memory", lambda: self._summarize(lead_id), lead_id=lead_id)
            except StepFailedError as exc:
                logger.warning(
                    "pipeline.summary_skipped",
                    extra={"event": "pipeline.summary_skipped", "event_id": event_id, "error": exc.last_error},
                )

        return finish(
            STATUS_RECOVERED if degraded else STATUS_COMPLETED,
            reply=response.message,
            tool_results=tool_results,
            new_status=new_status,
        )

    def _resolve_lead(self, event: InboundMessageEvent) -> dict[str, Any]:
        lead, created = self.leads.resolve_or_create(event.sender_id, event.display_name)
        return {
            "lead_id": lead.id,
            "status": lead.status.value,
            "ai_paused": lead.ai_paused,
            "created": created,
        }

    def _record(self, lead_id: str, role: MessageRole, content: str, external_id: str) -> dict[str, Any]:
        message = self.messages.record(lead_id, role, content, external_message_id=external_id)
        return {"message_id": message.id}

    def _generate(self, lead_id: str, status: LeadStatus, text: str, event_id: str) -> dict[str, Any]:
        lead = self.leads.get(lead_id)
        history = [
            msg for msg in self.messages.recent(lead_id, self.max_history + 1) if msg.external_message_id != event_id
        ][-self.max_history:]

        signal = sentiment_signal(text)
        if signal:
            self.audit.record("sentiment_signal", {"signal": signal, "event_id": event_id}, lead_id=lead_id)

        decision: AgentDecision = self.router.respond(
            LeadState(
                lead_id=lead_id,
                status=status,
                profile=dict(lead.profile or {}),
                summary=lead.conversation_summary,
                sentiment=signal,
            ),
            history_lines(history),
            text,
        )
        self.audit.record(
            "ai_response",
            {
                "mode": decision.mode.value,
                "degraded": decision.degraded,
                "confidence": decision.response.confidence,
                "tool_calls": len(decision.response.tool_calls),
                "failure_reason": decision.failure_reason,
            },
            lead_id=lead_id,
            latency_ms=decision.latency_ms,
            model_used=decision.model_name,
        )
        return decision.to_payload()

    def _fallback_decision(self, status: LeadStatus, exc: Exception) -> dict[str, Any]:
        return {
            "response": fallback_response().to_payload(),
            "mode": select_mode(status).value,
            "degraded": True,
            "latency_ms": 0,
            "model_name": "n/a",
            "failure_reason": str(exc)[:500],
            "guardrails": [],
        }

    def _send(self, lead_id: str, sender_id: str, text: str) -> dict[str, Any]:
        try:
            self.messenger.send(sender_id, text)
        except MessagingError as exc:
            self.audit.record("send_failed", {"error": str(exc)[:500]}, lead_id=lead_id)
            raise
        return {"sent": True, "length": len(text)}

    def _execute_tools(self, lead_id: str, response: AgentResponse) -> dict[str, Any]:
        lead = self.leads.get(lead_id)
        started = perf_counter()
        results = [result.to_dict() for result in self.executor.execute(response.tool_calls, lead)]
        self.audit.record(
            "tool_execution",
            {"results": results},
            lead_id=lead_id,
            latency_ms=int((perf_counter() - started) * 1000),
        )
        return {"results": results}

    def _update_status(self, lead_id: str, current: LeadStatus, proposed: LeadStatus) -> dict[str, Any]:
        if not self.state_machine.can_transition(current, proposed):
            self.audit.record(
                "status_transition_rejected",
                {"from": current.value, "to": proposed.value},
                lead_id=lead_id,
            )
            return {"applied": False, "status": current.value}
        self.leads.update_status(lead_id, proposed)
        self.audit.record("status_changed", {"from": current.value, "to": proposed.value}, lead_id=lead_id)
        return {"applied": True, "status": proposed.value}

    def _summarize(self, lead_id: str) -> dict[str, Any]:
        total = self.messages.count(lead_id)
        if self.summary_every <= 0 or total == 0 or total % self.summary_every:
            return {"summarized": False, "message_count": total}

        lead = self.leads.get(lead_id)
        history = history_lines(self.messages.recent(lead_id, self.summary_every))
        try:
            summary = self.summarizer.summarize(history, lead.conversation_summary)
        except LLMError as exc:
            logger.warning(
                "memory.summary_failed",
                extra={"event": "memory.summary_failed", "lead_id": lead_id, "error": str(exc)},
            )
            return {"summarized": False, "message_count": total, "error": str(exc)[:200]}

        self.leads.update_summary(lead_id, summary)
        self.audit.record("memory_summarization", {"message_count": total, "length": len(summary)}, lead_id=lead_id)
        return {"summarized": True, "message_count": total}
