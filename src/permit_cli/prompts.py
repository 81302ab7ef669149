from __future__ import annotations

from typing import Optional, Sequence

from rich.console import Console
from rich.prompt import Prompt

from .api.projects import Choice
from .util.errors import ConfigError


def ask_choice(
    prompt: str,
    choices: Sequence[Choice],
    *,
    console: Optional[Console] = None,
) -> Choice:
    """
    Numbered selection prompt; re-asks until a listed number is entered.
    """
    if not choices:
        raise ConfigError(f"Nothing to select for: {prompt}")
    console = console or Console()
    console.print(f"\n[bold]{prompt}[/bold]")
    for idx, choice in enumerate(choices, start=1):
        console.print(f"  [cyan]{idx}[/cyan]) {choice.label}")
        console.print(f"     [dim]{choice.value}[/dim]")

    while True:
        ans = Prompt.ask("Select", console=console)
        try:
            i = int(str(ans).strip())
        except ValueError:
            i = 0
        if 1 <= i <= len(choices):
            return choices[i - 1]
        console.print(f"[red]Invalid selection: {ans}[/red]")

