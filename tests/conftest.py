from __future__ import annotations

import json
from dataclasses import replace
from datetime import datetime, timezone

import fakeredis
import pytest

from cortex.core.config import get_config
from cortex.core.dependencies import build_container
from cortex.core.exceptions import LLMError, MessagingError
from cortex.database.db import Database
from cortex.llm.client import LLMResponse

# Monday 07:00 in America/Bogota.
FIXED_NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakeMessenger:
    def __init__(self, fail_times: int = 0) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail_times = fail_times

    def send(self, to: str, text: str) -> dict:
        if self.fail_times > 0:
            self.fail_times -= 1
            raise MessagingError("WhatsApp API error: HTTP 503")
        self.sent.append((to, text))
        return {"messages": [{"id": f"wamid.{len(self.sent)}"}]}


class ScriptedLLMClient:
    """Hands out queued outputs in order; an Exception entry is raised instead."""

    model_name = "scripted-model"

    def __init__(self, outputs=None) -> None:
        self.outputs = list(outputs or [])
        self.calls: list[dict] = []

    def queue(self, *outputs) -> None:
        self.outputs.extend(outputs)

    def generate(self, system, user, json_mode=True, temperature=None):
        self.calls.append({"system": system, "user": user, "json_mode": json_mode, "temperature": temperature})
        if not self.outputs:
            raise LLMError("Model returned an empty response.")
        output = self.outputs.pop(0)
        if isinstance(output, Exception):
            raise output
        return LLMResponse(
            text=output,
            model_name=self.model_name,
            prompt_hash="hash",
            latency_ms=5,
            generated_at="2026-03-02T12:00:00Z",
        )


def agent_json(message: str, tool_calls=None, next_state=None, confidence: float = 0.9) -> str:
    payload = {"message": message, "toolCalls": tool_calls or [], "confidence": confidence}
    if next_state is not None:
        payload["nextState"] = next_state
    return json.dumps(payload, ensure_ascii=False)


def inbound(sender_id: str, text: str, message_id: str, name: str | None = None) -> dict:
    payload = {"senderId": sender_id, "text": text, "externalMessageId": message_id}
    if name:
        payload["displayName"] = name
    return payload


@pytest.fixture
def database():
    db = Database("sqlite:///:memory:")
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def file_database(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'cortex_test.db'}")
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def messenger():
    return FakeMessenger()


@pytest.fixture
def llm():
    return ScriptedLLMClient()


@pytest.fixture
def test_config():
    return replace(
        get_config(),
        DATABASE_URL="sqlite:///:memory:",
        PIPELINE_STEP_BACKOFF_SECONDS=0.0,
        SETTINGS_CACHE_TTL_SECONDS=30.0,
        SUMMARY_EVERY_N_MESSAGES=20,
        MAX_HISTORY_MESSAGES=20,
        BUSINESS_TIMEZONE="America/Bogota",
        RATE_LIMIT_MESSAGES=10,
        RATE_LIMIT_WINDOW_SECONDS=60,
    )


@pytest.fixture
def redis_client():
    return fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def container(test_config, database, messenger, llm, clock, redis_client):
    built = build_container(
        config=test_config,
        database=database,
        messenger=messenger,
        llm_client=llm,
        clock=clock,
        sleep=lambda seconds: None,
        redis_client=redis_client,
    )
    built.settings.seed_defaults()
    return built
