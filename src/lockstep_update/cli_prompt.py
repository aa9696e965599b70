"""
CLI-specific implementations of the prompt and notification interfaces.
"""

from __future__ import annotations

import logging
from typing import List

import click
from rich.console import Console
from rich.panel import Panel

from .models import RebaseOverMergeDecision, RepoInfo
from .notifier import Notifier
from .prompt_interface import UserPrompt


logger = logging.getLogger(__name__)


class CliPrompt(UserPrompt):
    """CLI implementation of the prompt interface using click and rich."""

    def __init__(self, console: Console = None):
        self.console = console or Console()

    def choose_rebase_over_merge_decision(self, roots: List[RepoInfo]) -> RebaseOverMergeDecision:
        """Ask whether to merge instead, cancel, or rebase over local merge commits."""
        names = "\n".join(f"  • [cyan]{r.name}[/cyan] ({r.relative_path})" for r in roots)
        panel = Panel(
            "[bold]Local merge commits would be lost[/bold]\n\n"
            "The commits about to be rebased contain merges in:\n"
            f"{names}\n\n"
            "Rebasing will flatten these merges, and conflicts resolved in them\n"
            "may have to be resolved again.",
            title="Rebase over Merge",
            border_style="yellow",
        )
        self.console.print(panel)

        choices = [
            ("merge", "Merge instead of rebasing these roots"),
            ("cancel", "Cancel the update"),
            ("rebase", "Rebase anyway"),
        ]
        self.console.print("\nOptions:")
        for i, (_, desc) in enumerate(choices, 1):
            self.console.print(f"  {i}. {desc}")

        try:
            choice = click.prompt(
                "Choose an option",
                type=click.Choice(["1", "2", "3", "merge", "cancel", "rebase"]),
                default="1",
                show_choices=False,
            )
        except click.Abort:
            return RebaseOverMergeDecision.CANCEL_OPERATION

        if choice in ["1", "merge"]:
            return RebaseOverMergeDecision.MERGE_INSTEAD
        elif choice in ["3", "rebase"]:
            return RebaseOverMergeDecision.REBASE_ANYWAY
        return RebaseOverMergeDecision.CANCEL_OPERATION


class ConsoleNotifier(Notifier):
    """Shows notifications as rich panels and mirrors them to the log."""

    def __init__(self, console: Console = None):
        self.console = console or Console()

    def notify_error(self, title: str, body: str) -> None:
        logger.error(f"{title}: {body}")
        self.console.print(Panel(body, title=f"❌ {title}", title_align="left", border_style="red"))

    def notify_important_error(self, title: str, body: str) -> None:
        logger.error(f"{title}: {body}")
        self.console.print(
            Panel(body, title=f"⚠️  {title}", title_align="left", border_style="bold red")
        )

    def notify_info(self, title: str, body: str) -> None:
        logger.info(f"{title}: {body}")
        self.console.print(Panel(body, title=title, title_align="left", border_style="blue"))
