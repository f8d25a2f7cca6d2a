"""Business settings request/response schemas."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class SettingUpdateRequest(BaseModel):
    value: dict[str, Any]
    updated_by: str | None = Field(default=None, max_length=120)


class SettingResponse(BaseModel):
    key: str
    value: dict[str, Any]
