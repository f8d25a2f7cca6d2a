"""Inbound message event accepted by the pipeline."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class InboundMessageEvent(BaseModel):
    """A validated, parsed inbound message (webhook framing happens upstream)."""

    model_config = ConfigDict(populate_by_name=True)

    sender_id: str = Field(alias="senderId", min_length=1, max_length=64)
    text: str = Field(default="", max_length=20000)
    display_name: str | None = Field(default=None, alias="displayName", max_length=255)
    external_message_id: str = Field(alias="externalMessageId", min_length=1, max_length=128)
    timestamp_epoch_seconds: float | None = Field(default=None, alias="timestampEpochSeconds", ge=0)

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class EventAcceptedResponse(BaseModel):
    status: str = "queued"
    external_message_id: str
    task_id: str | None = None
