"""Pydantic schema package for API and model-output contracts."""

from cortex.schemas.agent import AgentResponse, ToolCall
from cortex.schemas.appointments import AppointmentActionResponse, AppointmentResponse, TimeSlotResponse
from cortex.schemas.common import APIEnvelope, ErrorEnvelope
from cortex.schemas.events import EventAcceptedResponse, InboundMessageEvent
from cortex.schemas.leads import AIPauseRequest, HumanMessageRequest, LeadResponse
from cortex.schemas.settings import SettingResponse, SettingUpdateRequest

__all__ = [
    "AIPauseRequest",
    "APIEnvelope",
    "AgentResponse",
    "AppointmentActionResponse",
    "AppointmentResponse",
    "ErrorEnvelope",
    "EventAcceptedResponse",
    "HumanMessageRequest",
    "InboundMessageEvent",
    "LeadResponse",
    "SettingResponse",
    "SettingUpdateRequest",
    "TimeSlotResponse",
    "ToolCall",
]
