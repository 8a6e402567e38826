"""Operator prompts for dbsync.

Anything exposing ``prompt_choice(message, options)`` and
``prompt_confirm(message)`` can be handed to the orchestrator; the console
implementation asks interactively, ``StaticPrompter`` replays canned answers.
"""

from typing import List, Optional, Sequence

from rich.console import Console
from rich.prompt import Confirm, Prompt

from dbsync.errors import SyncError


class ConsolePrompter:
    """Interactive prompts rendered with rich."""

    def __init__(self, console: Console):
        self.console = console

    def prompt_choice(self, message: str, options: Sequence[str], default: Optional[str] = None) -> str:
        if not options:
            raise SyncError("Nothing to choose from.")
        return Prompt.ask(
            message,
            choices=list(options),
            default=default if default is not None else options[0],
            console=self.console,
        )

    def prompt_confirm(self, message: str) -> bool:
        return Confirm.ask(message, default=False, console=self.console)


class StaticPrompter:
    """Non-interactive prompter returning pre-set answers."""

    def __init__(self, choices: Optional[Sequence[str]] = None, confirm: bool = False):
        self.choices: List[str] = list(choices or [])
        self.confirm = confirm
        self.asked: List[str] = []

    def prompt_choice(self, message: str, options: Sequence[str], default: Optional[str] = None) -> str:
        self.asked.append(message)
        if self.choices:
            answer = self.choices.pop(0)
        elif default is not None:
            answer = default
        else:
            raise SyncError(f"No answer available for prompt: {message}")
        if answer not in options:
            raise SyncError(f"Invalid answer '{answer}' for prompt: {message}")
        return answer

    def prompt_confirm(self, message: str) -> bool:
        self.asked.append(message)
        return self.confirm
