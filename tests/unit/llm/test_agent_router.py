from __future__ import annotations

import json
from datetime import date

from cortex.core.exceptions import LLMError
from cortex.llm.prompt_templates.defaults import FALLBACK_MESSAGE
from cortex.llm.router import AgentMode, AgentRouter, LeadState, select_mode
from cortex.models.enums import LeadStatus
from cortex.schemas.agent import BookSlotCall

from conftest import ScriptedLLMClient, agent_json


def _router(client, **kwargs) -> AgentRouter:
    return AgentRouter(
        client,
        business_hours=lambda: "Lunes: 09:00 - 17:00",
        today=lambda: date(2026, 3, 2),
        **kwargs,
    )


def _state(status: LeadStatus = LeadStatus.NEW, sentiment=None) -> LeadState:
    return LeadState(lead_id="lead-1", status=status, profile={"name": "Ana"}, sentiment=sentiment)


def test_mode_follows_lead_status():
    assert select_mode(LeadStatus.NEW) == AgentMode.DIAGNOSTIC
    assert select_mode(LeadStatus.DIAGNOSING) == AgentMode.DIAGNOSTIC
    assert select_mode(LeadStatus.QUALIFIED) == AgentMode.SCHEDULING
    assert select_mode(LeadStatus.BOOKED) == AgentMode.SCHEDULING
    assert select_mode(LeadStatus.NURTURE) == AgentMode.DIAGNOSTIC


def test_structured_output_is_parsed_with_tool_calls():
    client = ScriptedLLMClient(
        [
            agent_json(
                "Perfecto, te agendo el martes a las 10.",
                tool_calls=[{"tool": "bookSlot", "args": {"date": "2026-03-03", "startTime": "10:00"}}],
                next_state="booked",
                confidence=0.8,
            )
        ]
    )

    decision = _router(client).respond(_state(LeadStatus.QUALIFIED), ["Usuario: hola"], "El martes a las 10")

    assert decision.degraded is False
    assert decision.mode == AgentMode.SCHEDULING
    assert isinstance(decision.response.tool_calls[0], BookSlotCall)
    assert decision.response.tool_calls[0].args == {"date": "2026-03-03", "startTime": "10:00"}
    assert decision.response.next_state == LeadStatus.BOOKED
    assert client.calls[0]["temperature"] == 0.5
    assert client.calls[0]["json_mode"] is True
    assert "2026-03-02" in client.calls[0]["system"]
    assert "Usuario: hola" in client.calls[0]["system"]


def test_model_failure_degrades_to_fallback():
    client = ScriptedLLMClient([LLMError("timeout")])

    decision = _router(client).respond(_state(), [], "Hola")

    assert decision.degraded is True
    assert decision.response.message == FALLBACK_MESSAGE
    assert decision.response.confidence == 0.0
    assert decision.response.tool_calls == []
    assert "timeout" in decision.failure_reason


def test_malformed_output_fails_closed():
    outputs = [
        "esto no es json",
        json.dumps({"message": "Hola", "confidence": 0.9, "mood": "feliz"}),
        json.dumps({"message": "Hola", "confidence": 0.9, "toolCalls": [{"tool": "dropTables", "args": {}}]}),
        json.dumps({"message": "", "confidence": 0.9}),
        json.dumps({"message": "Hola", "confidence": 1.7}),
    ]
    client = ScriptedLLMClient(outputs)
    router = _router(client)

    decisions = [router.respond(_state(), [], "Hola") for _ in outputs]

    assert all(decision.degraded for decision in decisions)
    assert all(decision.response.message == FALLBACK_MESSAGE for decision in decisions)


def test_null_tool_calls_are_accepted():
    client = ScriptedLLMClient([json.dumps({"message": "Hola", "toolCalls": None, "confidence": 0.6})])

    decision = _router(client).respond(_state(), [], "Hola")

    assert decision.degraded is False
    assert decision.response.tool_calls == []


def test_unexpected_tool_arguments_keep_the_reply():
    client = ScriptedLLMClient(
        [
            agent_json(
                "Reviso la agenda.",
                tool_calls=[{"tool": "checkAvailability", "args": {"date": "2026-03-03", "time": "10:00"}}],
            )
        ]
    )

    decision = _router(client).respond(_state(LeadStatus.QUALIFIED), [], "¿Martes a las 10?")

    assert decision.degraded is False
    assert decision.response.message == "Reviso la agenda."
    assert decision.response.tool_calls[0].args["time"] == "10:00"


def test_guardrails_rewrite_guarantees_and_cap_length():
    client = ScriptedLLMClient([agent_json("Garantizamos retorno del 300%. " + "x" * 200)])

    decision = _router(client, max_length=60).respond(_state(), [], "¿Cuánto gano?")

    assert "Garantizamos" not in decision.response.message
    assert decision.response.message.startswith("estimamos un potencial retorno")
    assert len(decision.response.message) <= 60
    assert "max_length" in decision.guardrails


def test_sentiment_hint_reaches_the_prompt():
    client = ScriptedLLMClient([agent_json("Entiendo, lamento la molestia.")])

    _router(client).respond(_state(sentiment="frustration"), [], "Pésimo servicio")

    assert "frustrado" in client.calls[0]["system"]


def test_history_is_capped_to_most_recent_lines():
    client = ScriptedLLMClient([agent_json("Hola de nuevo")])
    history = [f"Usuario: mensaje {index}" for index in range(30)]

    _router(client, max_history=5).respond(_state(), history, "Hola")

    system = client.calls[0]["system"]
    assert "mensaje 29" in system
    assert "mensaje 25" in system
    assert "mensaje 24" not in system
