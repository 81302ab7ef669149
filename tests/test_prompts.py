from __future__ import annotations

import pytest
from rich.console import Console

from permit_cli.api.projects import Choice
from permit_cli.prompts import ask_choice
from permit_cli.util.errors import ConfigError


def test_ask_choice_reasks_until_a_listed_number(monkeypatch) -> None:
    answers = iter(["x", "3", "2"])
    monkeypatch.setattr("rich.prompt.Prompt.ask", lambda *a, **kw: next(answers))
    choices = [Choice(label="Dev", value="dev-id"), Choice(label="Prod", value="prod-id")]
    console = Console(record=True, width=120)

    picked = ask_choice("Select an environment", choices, console=console)

    assert picked == Choice(label="Prod", value="prod-id")
    out = console.export_text()
    assert "Invalid selection: x" in out
    assert "Invalid selection: 3" in out


def test_ask_choice_requires_choices() -> None:
    with pytest.raises(ConfigError):
        ask_choice("Select a project", [])
