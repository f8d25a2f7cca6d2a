"""Structured model output: reply text, tool calls, proposed state, confidence.

Tool calls form a tagged union on ``tool``. Their ``args`` stay a plain
mapping here and are validated per call by the tool executor against
``TOOL_ARG_MODELS``, so one bad call never discards the reply or its siblings.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cortex.models.enums import LeadStatus


class StrictModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class UpdateLeadProfileArgs(StrictModel):
    name: str | None = None
    company: str | None = None
    role: str | None = None
    industry: str | None = None
    location: str | None = None
    contact_reason: str | None = Field(default=None, alias="contactReason")
    pain_points: list[str] | None = Field(default=None, alias="painPoints")
    lead_score: int | None = Field(default=None, alias="leadScore", ge=0, le=100)


class CheckAvailabilityArgs(StrictModel):
    date: str | None = None


class BookSlotArgs(StrictModel):
    date: str | None = None
    start_time: str | None = Field(default=None, alias="startTime")
    notes: str | None = Field(default=None, max_length=2000)


class HandoffToHumanArgs(StrictModel):
    reason: str = Field(min_length=1, max_length=500)
    urgency: Literal["low", "medium", "high"] = "medium"
    summary: str = Field(default="", max_length=2000)


class _ToolCallBase(StrictModel):
    args: dict[str, Any] = Field(default_factory=dict)

    @field_validator("args", mode="before")
    @classmethod
    def _null_args(cls, value):
        return {} if value is None else value


class UpdateLeadProfileCall(_ToolCallBase):
    tool: Literal["updateLeadProfile"]


class CheckAvailabilityCall(_ToolCallBase):
    tool: Literal["checkAvailability"]


class BookSlotCall(_ToolCallBase):
    tool: Literal["bookSlot"]


class HandoffToHumanCall(_ToolCallBase):
    tool: Literal["handoffToHuman"]


ToolCall = Annotated[
    Union[UpdateLeadProfileCall, CheckAvailabilityCall, BookSlotCall, HandoffToHumanCall],
    Field(discriminator="tool"),
]

TOOL_ARG_MODELS: dict[str, type[StrictModel]] = {
    "updateLeadProfile": UpdateLeadProfileArgs,
    "checkAvailability": CheckAvailabilityArgs,
    "bookSlot": BookSlotArgs,
    "handoffToHuman": HandoffToHumanArgs,
}


class AgentResponse(StrictModel):
    message: str = Field(min_length=1)
    tool_calls: list[ToolCall] = Field(default_factory=list, alias="toolCalls")
    next_state: LeadStatus | None = Field(default=None, alias="nextState")
    confidence: float = Field(ge=0.0, le=1.0)

    @field_validator("tool_calls", mode="before")
    @classmethod
    def _null_tool_calls(cls, value):
        return [] if value is None else value

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
