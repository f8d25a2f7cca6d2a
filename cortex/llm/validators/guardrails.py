"""Deterministic post-generation guardrails."""

from __future__ import annotations

import re

from cortex.utils.validators import redact_card_numbers, truncate_message

PROMISE_REWRITES = (
    (re.compile(r"garantizamos?\s+(un\s+)?retorno", re.IGNORECASE), "estimamos un potencial retorno"),
    (re.compile(r"prometemos?\s+ganancias?", re.IGNORECASE), "nuestro objetivo es generar"),
    (re.compile(r"100\s*%\s*segur[oa]", re.IGNORECASE), "con alta probabilidad"),
    (re.compile(r"sin\s+riesgos?", re.IGNORECASE), "con riesgo minimizado"),
    (re.compile(r"resultados\s+garantizados", re.IGNORECASE), "resultados esperados"),
)


def validate_non_empty_output(text: str) -> tuple[bool, str | None]:
    if text and text.strip():
        return True, None
    return False, "Output is empty."


def rewrite_overconfident_claims(text: str) -> tuple[str, list[str]]:
    """Rewrite guarantee phrasing; returns the new text and the patterns that fired."""
    fired = []
    for pattern, replacement in PROMISE_REWRITES:
        text, count = pattern.subn(replacement, text)
        if count:
            fired.append(pattern.pattern)
    return text, fired


def apply_guardrails(text: str, max_length: int) -> tuple[str, list[str]]:
    cleaned, fired = rewrite_overconfident_claims(text)
    redacted = redact_card_numbers(cleaned)
    if redacted != cleaned:
        fired.append("card_number")
    capped = truncate_message(redacted.strip(), max_length)
    if len(capped) < len(redacted.strip()):
        fired.append("max_length")
    return capped, fired
