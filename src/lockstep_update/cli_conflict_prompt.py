"""
CLI-specific implementation of the conflict prompt interface.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List

import click
from rich.console import Console
from rich.panel import Panel

from .conflict_prompt_interface import ConflictPrompt
from .models import RepoInfo


class CliConflictPrompt(ConflictPrompt):
    """CLI implementation of the conflict prompt interface using click and rich."""

    def __init__(self, console: Console = None):
        self.console = console or Console()

    def prompt_for_conflict_resolution(
        self,
        conflicts: Dict[RepoInfo, List[Path]],
        description: str,
        reverse: bool,
    ) -> bool:
        """Prompt user to resolve conflicts and wait for confirmation."""
        self.console.print("\n🔥 **CONFLICTS DETECTED**", style="bold red")
        self.console.print(description)

        for repo_info, files in conflicts.items():
            self.console.print(
                f"\n📄 **{repo_info.name}** ({repo_info.relative_path}) - {len(files)} file(s):",
                style="bold yellow",
            )
            for conflict_file in files:
                self.console.print(f"  - {_display_path(repo_info, conflict_file)}")

        instructions = [
            "1. Resolve the conflicts in the files listed above",
            "2. Stage your changes: `git add <resolved-files>`",
            "3. Do NOT commit or continue - the update will do that",
            "4. Return here and type 'resolved' to continue",
        ]
        if reverse:
            # During a rebase "ours" is the upstream side and "theirs" your commits
            instructions.insert(
                1, "   Note: while rebasing, 'ours' is the remote branch and 'theirs' your local commits"
            )

        instructions_panel = Panel(
            "\n".join(instructions),
            title="Instructions",
            title_align="left",
            border_style="blue",
        )
        self.console.print(instructions_panel)

        while True:
            user_input = click.prompt(
                "\nType 'resolved' when conflicts are fixed, or 'abort' to stop",
                type=click.Choice(["resolved", "abort"], case_sensitive=False),
                show_choices=False,
            ).lower()

            if user_input == "abort":
                self.console.print("🚫 Conflict resolution aborted by user.", style="bold red")
                return False

            remaining = {r: r.git_manager.get_conflict_files() for r in conflicts}
            remaining = {r: files for r, files in remaining.items() if files}
            if not remaining:
                self.console.print("✅ Conflicts verified as resolved. Continuing update...", style="bold green")
                return True
            self.console.print(
                "❌ Conflicts still exist in "
                + ", ".join(r.name for r in remaining)
                + ". Please resolve all conflicts before continuing.",
                style="bold red",
            )


def _display_path(repo_info: RepoInfo, path: Path) -> str:
    try:
        return str(Path(path).relative_to(repo_info.path))
    except ValueError:
        return str(path)
