"""Lead operator-action schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from cortex.models.enums import LeadStatus


class AIPauseRequest(BaseModel):
    paused: bool


class HumanMessageRequest(BaseModel):
    content: str = Field(min_length=1, max_length=4096)
    agent: str | None = Field(default=None, max_length=120)


class LeadResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    sender_id: str
    profile: dict = Field(default_factory=dict)
    status: LeadStatus
    lead_score: int = 0
    ai_paused: bool = False
    last_active_at: datetime | None = None
    created_at: datetime | None = None
