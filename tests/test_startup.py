from __future__ import annotations

from dataclasses import replace

import pytest

import cortex.core.startup as startup_module
from cortex.core.config import get_config


class _Database:
    def __init__(self, reachable: bool, dialect: str = "sqlite") -> None:
        self.reachable = reachable
        self.dialect = dialect

    def verify_connection(self) -> bool:
        return self.reachable


def test_startup_passes_when_database_reachable(monkeypatch):
    monkeypatch.setattr(startup_module, "get_config", lambda: replace(get_config(), LLM_API_KEY="key"))
    monkeypatch.setattr(startup_module, "get_database", lambda: _Database(reachable=True))

    startup_module.validate_startup_config()


def test_startup_raises_when_database_unreachable(monkeypatch):
    monkeypatch.setattr(startup_module, "get_config", get_config)
    monkeypatch.setattr(startup_module, "get_database", lambda: _Database(reachable=False))

    with pytest.raises(RuntimeError, match="Database connectivity check failed"):
        startup_module.validate_startup_config()


def test_startup_warns_about_missing_integrations(monkeypatch, caplog):
    config = replace(get_config(), WHATSAPP_ACCESS_TOKEN=None, LLM_API_KEY=None)
    monkeypatch.setattr(startup_module, "get_config", lambda: config)
    monkeypatch.setattr(startup_module, "get_database", lambda: _Database(reachable=True))

    with caplog.at_level("WARNING"):
        startup_module.validate_startup_config()

    messages = [record.getMessage() for record in caplog.records]
    assert "startup.whatsapp.not_configured" in messages
    assert "startup.llm.no_api_key" in messages
