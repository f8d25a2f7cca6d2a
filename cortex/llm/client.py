"""Generative model client: raw chat-completions call and the response adapter."""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from time import perf_counter

import requests

from cortex.core.config import Config, get_config
from cortex.core.exceptions import LLMError

logger = logging.getLogger(__name__)
_RATE_LOCK = threading.Lock()
_LAST_REQUEST_TS = 0.0


def _apply_rate_limit(min_interval_seconds: float) -> None:
    global _LAST_REQUEST_TS
    if min_interval_seconds <= 0:
        return

    with _RATE_LOCK:
        now = time.monotonic()
        elapsed = now - _LAST_REQUEST_TS
        if elapsed < min_interval_seconds:
            time.sleep(min_interval_seconds - elapsed)
        _LAST_REQUEST_TS = time.monotonic()


def call_llm(
    system: str,
    user: str,
    json_mode: bool = True,
    temperature: float | None = None,
    config: Config | None = None,
) -> str:
    """POST to an OpenAI-compatible ``/chat/completions`` endpoint.

    Returns the assistant content, or an empty string once retries are exhausted.
    """
    config = config or get_config()
    payload = {
        "model": config.LLM_MODEL,
        "messages": [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ],
        "temperature": config.LLM_TEMPERATURE if temperature is None else temperature,
        "stream": False,
    }
    if json_mode:
        payload["response_format"] = {"type": "json_object"}

    headers = {"Content-Type": "application/json"}
    if config.LLM_API_KEY:
        headers["Authorization"] = f"Bearer {config.LLM_API_KEY}"
    url = f"{config.LLM_BASE_URL.rstrip('/')}/chat/completions"

    last_error: Exception | None = None
    total_attempts = config.LLM_MAX_RETRIES + 1

    for attempt in range(1, total_attempts + 1):
        try:
            _apply_rate_limit(config.LLM_MIN_INTERVAL_SECONDS)
            response = requests.post(
                url,
                json=payload,
                headers=headers,
                timeout=(2, config.LLM_TIMEOUT_SECONDS),
            )
            response.raise_for_status()
            body = response.json()
            return body["choices"][0]["message"]["content"] or ""
        except (requests.exceptions.RequestException, ValueError, KeyError, IndexError, TypeError) as exc:
            last_error = exc
            logger.warning(
                "llm.call.failed",
                extra={
                    "event": "llm.call.failed",
                    "attempt": attempt,
                    "attempts_total": total_attempts,
                    "error": str(exc),
                },
            )
            should_retry = attempt < total_attempts
            local_endpoint = ("localhost" in url) or ("127.0.0.1" in url)
            fast_fail_errors = (
                requests.exceptions.ConnectionError,
                requests.exceptions.Timeout,
            )
            if local_endpoint and isinstance(exc, fast_fail_errors):
                should_retry = False

            if should_retry:
                time.sleep(min(2 * attempt, 5))
            else:
                break

    logger.error(
        "llm.call.unavailable",
        extra={
            "event": "llm.call.unavailable",
            "base_url": config.LLM_BASE_URL,
            "model": config.LLM_MODEL,
            "error": str(last_error) if last_error else "unknown",
        },
    )
    return ""


@dataclass(frozen=True)
class LLMResponse:
    text: str
    model_name: str
    prompt_hash: str
    latency_ms: int
    generated_at: str


class LLMClient:
    """Default adapter around ``call_llm``."""

    def __init__(self, config: Config | None = None, transport=call_llm) -> None:
        self.config = config or get_config()
        self.transport = transport

    @property
    def model_name(self) -> str:
        return self.config.LLM_MODEL

    def generate(
        self,
        system: str,
        user: str,
        json_mode: bool = True,
        temperature: float | None = None,
    ) -> LLMResponse:
        started = perf_counter()
        text = self.transport(system, user, json_mode=json_mode, temperature=temperature, config=self.config)
        latency_ms = int((perf_counter() - started) * 1000)
        if not text or not text.strip():
            raise LLMError("Model returned an empty response.")
        prompt_hash = hashlib.sha256(f"{system}\n{user}".encode("utf-8")).hexdigest()
        return LLMResponse(
            text=text,
            model_name=self.config.LLM_MODEL,
            prompt_hash=prompt_hash,
            latency_ms=latency_ms,
            generated_at=datetime.now(timezone.utc).isoformat(),
        )
