"""Identifier generation helpers."""

from __future__ import annotations

import uuid


def new_id() -> str:
    """Create a UUID4-based row identifier."""
    return str(uuid.uuid4())


def new_trace_id() -> str:
    return uuid.uuid4().hex
