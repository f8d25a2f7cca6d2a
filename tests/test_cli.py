from __future__ import annotations

import json

import pytest

import cortex.cli as cli_module
from cortex.core.dependencies import set_container

from conftest import agent_json


def test_parser_requires_a_command():
    with pytest.raises(SystemExit):
        cli_module.build_parser().parse_args([])


def test_parser_reads_simulate_arguments():
    args = cli_module.build_parser().parse_args(["simulate", "573001112233", "Hola", "--name", "Ana"])

    assert args.command == "simulate"
    assert args.sender == "573001112233"
    assert args.name == "Ana"
    assert args.message_id is None


def test_simulate_runs_the_pipeline_synchronously(monkeypatch, container, llm, messenger, capsys):
    monkeypatch.setattr(cli_module, "configure_logging", lambda: None)
    llm.queue(agent_json("¡Hola Ana!"))
    set_container(container)
    try:
        exit_code = cli_module.main(["simulate", "573001112233", "Hola", "--name", "Ana", "--message-id", "cli-1"])
    finally:
        set_container(None)

    output = json.loads(capsys.readouterr().out)
    assert exit_code == 0
    assert output["status"] == "completed"
    assert output["reply"] == "¡Hola Ana!"
    assert messenger.sent == [("573001112233", "¡Hola Ana!")]


def test_seed_settings_command(monkeypatch, capsys):
    monkeypatch.setattr(cli_module, "configure_logging", lambda: None)
    monkeypatch.setattr(cli_module, "seed_default_settings", lambda overwrite: ["timezone"] if overwrite else [])

    assert cli_module.main(["seed-settings", "--overwrite"]) == 0
    assert json.loads(capsys.readouterr().out) == {"written": ["timezone"]}
