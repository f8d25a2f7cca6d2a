"""Stateless Spanish pattern classifier for frustration and abandonment."""

from __future__ import annotations

import re

NEGATIVE_PATTERNS = (
    re.compile(r"olvídalo", re.IGNORECASE),
    re.compile(r"pésimo", re.IGNORECASE),
    re.compile(r"horrible", re.IGNORECASE),
    re.compile(r"no me sirve", re.IGNORECASE),
    re.compile(r"adiós", re.IGNORECASE),
    re.compile(r"olvida(lo|te)", re.IGNORECASE),
    re.compile(r"no (me )?interesa", re.IGNORECASE),
    re.compile(r"demasiado caro", re.IGNORECASE),
    re.compile(r"muy caro", re.IGNORECASE),
    re.compile(r"mal servicio", re.IGNORECASE),
    re.compile(r"que mal", re.IGNORECASE),
    re.compile(r"así funcionas de mal", re.IGNORECASE),
)

ABANDONMENT_PATTERNS = (
    re.compile(r"gracias.*adiós", re.IGNORECASE),
    re.compile(r"no.*gracias", re.IGNORECASE),
    re.compile(r"olvídalo", re.IGNORECASE),
    re.compile(r"otro.*momento", re.IGNORECASE),
    re.compile(r"déjalo", re.IGNORECASE),
    re.compile(r"ya no", re.IGNORECASE),
)

ABANDONMENT = "abandonment"
FRUSTRATION = "frustration"


def detect_negative_sentiment(text: str) -> bool:
    return any(pattern.search(text) for pattern in NEGATIVE_PATTERNS)


def detect_abandonment_signal(text: str) -> bool:
    return any(pattern.search(text) for pattern in ABANDONMENT_PATTERNS)


def sentiment_signal(text: str | None) -> str | None:
    """``"abandonment"`` beats ``"frustration"``; ``None`` when neither matches."""
    if not text:
        return None
    if detect_abandonment_signal(text):
        return ABANDONMENT
    if detect_negative_sentiment(text):
        return FRUSTRATION
    return None
