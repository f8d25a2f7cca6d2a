"""Deterministic validators and sanitizers for inbound and outbound text."""

from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)

MAX_INBOUND_LENGTH = 10000

DANGEROUS_PATTERNS = (
    re.compile(r"<script", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"on\w+\s*=", re.IGNORECASE),
    re.compile(r"data:text/html", re.IGNORECASE),
)

PII_PATTERNS = (
    re.compile(r"\b\d{10,16}\b"),
    re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),
    re.compile(r"\b[A-Z]{2}\d{6,10}\b", re.IGNORECASE),
)

CARD_NUMBER_PATTERN = re.compile(r"\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}\b")


def sanitize_text(value: str | None, max_len: int = 20000) -> str:
    """Sanitize free-form content before persistence/display."""
    if value is None:
        return ""
    cleaned = str(value).replace("\x00", "").strip()
    cleaned = cleaned[:max_len]
    return cleaned


def sanitize_input(value: str | None) -> str:
    """Normalise an inbound chat message: strip nulls, collapse whitespace, cap length."""
    if not value:
        return ""
    cleaned = re.sub(r"\s+", " ", str(value).replace("\x00", ""))
    cleaned = cleaned[:MAX_INBOUND_LENGTH].strip()

    for pattern in DANGEROUS_PATTERNS:
        if pattern.search(cleaned):
            # Logged, never blocked.
            logger.warning(
                "input.dangerous_pattern",
                extra={"event": "input.dangerous_pattern", "pattern": pattern.pattern},
            )
    return cleaned


def contains_pii(text: str) -> bool:
    return any(pattern.search(text) for pattern in PII_PATTERNS)


def redact_pii(text: str) -> str:
    redacted = text
    for pattern in PII_PATTERNS:
        redacted = pattern.sub("[REDACTED]", redacted)
    return redacted


def redact_card_numbers(text: str) -> str:
    return CARD_NUMBER_PATTERN.sub("[REDACTED]", text)


def truncate_message(text: str, max_len: int) -> str:
    """Hard-cap a message, marking the cut with an ellipsis."""
    if len(text) <= max_len:
        return text
    return text[: max(0, max_len - 3)].rstrip() + "..."
