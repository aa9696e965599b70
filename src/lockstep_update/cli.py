"""
Command-line interface for the multi-repository update tool.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
import os
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence
from datetime import datetime

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .change_saver import list_shelves
from .cli_conflict_prompt import CliConflictPrompt
from .cli_prompt import CliPrompt, ConsoleNotifier
from .conflict_resolver import ConflictResolver
from .git_manager import GitManager
from .models import (
    CancellationToken,
    ChangesPolicy,
    GitRepositoryError,
    RebaseOverMergeDecision,
    RepoInfo,
    UpdateError,
    UpdateMethod,
    UpdateResult,
)
from .prompt_interface import FixedDecisionPrompt, UserPrompt
from .settings import UpdateSettings
from .update_process import UpdateProcess
from . import __version__ as PACKAGE_VERSION


console = Console()
logger = logging.getLogger(__name__)

EXIT_CANCELLED = 130

_RESULT_STYLES: Dict[UpdateResult, tuple] = {
    UpdateResult.NOTHING_TO_UPDATE: ("✅ All roots are up to date", "green"),
    UpdateResult.SUCCESS: ("🎉 Update completed successfully", "bold green"),
    UpdateResult.SUCCESS_WITH_RESOLVED_CONFLICTS: ("🎉 Update completed, conflicts were resolved", "bold green"),
    UpdateResult.INCOMPLETE: ("⚠️  Update incomplete: unresolved conflicts remain", "bold yellow"),
    UpdateResult.CANCEL: ("🚫 Update cancelled", "bold yellow"),
    UpdateResult.ERROR: ("❌ Update failed", "bold red"),
    UpdateResult.NOT_READY: ("❌ Update was not started", "bold red"),
}

_REBASE_OVER_MERGE_ANSWERS = {
    "merge": RebaseOverMergeDecision.MERGE_INSTEAD,
    "cancel": RebaseOverMergeDecision.CANCEL_OPERATION,
    "rebase": RebaseOverMergeDecision.REBASE_ANYWAY,
}


def _print_version(ctx, param, value):
    """Eager option callback to print version and exit."""
    if not value or ctx.resilient_parsing:
        return
    click.echo(f"lockstep-update {PACKAGE_VERSION}")
    ctx.exit()


def _default_log_path() -> Path:
    """Determine default log file path (~/.lockstep-update/lockstep-update.log)."""
    env_path = os.environ.get("LOCKSTEP_UPDATE_LOG")
    if env_path:
        p = Path(env_path).expanduser()
        p.parent.mkdir(parents=True, exist_ok=True)
        return p
    base = Path.home() / ".lockstep-update"
    base.mkdir(parents=True, exist_ok=True)
    return base / "lockstep-update.log"


class SafeConsoleFormatter(logging.Formatter):
    """Formatter that replaces characters not encodable by the target console encoding.

    Legacy Windows code pages (e.g. cp1252) cannot show the emoji used in
    messages; file handlers keep full UTF-8 output.
    """

    def __init__(self, fmt: Optional[str] = None, datefmt: Optional[str] = None, style: str = "%", encoding: Optional[str] = None):
        super().__init__(fmt=fmt, datefmt=datefmt, style=style)
        self.encoding = encoding or getattr(sys.stderr, "encoding", None) or "utf-8"

    def format(self, record: logging.LogRecord) -> str:
        msg = super().format(record)
        try:
            msg.encode(self.encoding, errors="strict")
            return msg
        except UnicodeError:
            return msg.encode(self.encoding, errors="replace").decode(self.encoding, errors="replace")


class SafeConsoleFilter(logging.Filter):
    """Sanitize record messages for console by replacing unencodable characters.

    RichHandler renders the message text itself, bypassing the formatter.
    """

    def __init__(self, encoding: Optional[str] = None):
        super().__init__()
        self.encoding = encoding or getattr(sys.stderr, "encoding", None) or "utf-8"

    def filter(self, record: logging.LogRecord) -> bool:  # always keep the record
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            return True
        try:
            message.encode(self.encoding, errors="strict")
        except UnicodeError:
            record.msg = message.encode(self.encoding, errors="replace").decode(self.encoding, errors="replace")
            record.args = ()
        return True


def setup_logging(verbose: bool = False, console_level: Optional[str] = None, log_file: Optional[Path] = None) -> Path:
    """Setup logging with a per-run file and a stable aggregate:
    - Per-run log file: <stem>-YYYYMMDD_HHMMSS.log
    - Aggregate log: <stem>.log (rotated)
    - Best-effort hardlink: <stem>-current.log -> per-run file
    - Console logging only with --verbose or --log-level
    Returns the path to show the user for this run.
    """
    provided = Path(log_file) if log_file else _default_log_path()
    if provided.exists() and provided.is_dir():
        base_dir = provided
        base_stem = "lockstep-update"
        aggregate_path = base_dir / f"{base_stem}.log"
    else:
        base_dir = provided.parent
        base_stem = provided.stem or "lockstep-update"
        aggregate_path = provided
    base_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    per_run_path = base_dir / f"{base_stem}-{timestamp}.log"
    current_link_path = base_dir / f"{base_stem}-current.log"

    root = logging.getLogger()
    # Repeated invocations (tests) must not stack handlers
    root.handlers.clear()
    root.setLevel(logging.DEBUG)

    file_fmt = logging.Formatter(
        fmt="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    run_file_handler = logging.FileHandler(str(per_run_path), encoding="utf-8")
    run_file_handler.setLevel(logging.DEBUG)
    run_file_handler.setFormatter(file_fmt)
    root.addHandler(run_file_handler)

    aggregate_handler = RotatingFileHandler(
        str(aggregate_path), maxBytes=1_000_000, backupCount=3, encoding="utf-8"
    )
    aggregate_handler.setLevel(logging.DEBUG)
    aggregate_handler.setFormatter(file_fmt)
    root.addHandler(aggregate_handler)

    created_hardlink = False
    try:
        if current_link_path.exists():
            current_link_path.unlink()
        os.link(per_run_path, current_link_path)
        created_hardlink = True
    except OSError:
        # Hardlinks may be unsupported across volumes or filesystems
        created_hardlink = False

    if verbose or console_level:
        level_map = {
            "debug": logging.DEBUG,
            "info": logging.INFO,
            "warning": logging.WARNING,
            "error": logging.ERROR,
        }
        ch_level = level_map.get((console_level or "info").lower(), logging.INFO)
        console_handler = RichHandler(console=console, rich_tracebacks=True)
        console_handler.setLevel(ch_level)
        stream = getattr(console, "file", sys.stderr)
        enc = getattr(stream, "encoding", None) or getattr(sys.stderr, "encoding", None) or "utf-8"
        console_handler.setFormatter(SafeConsoleFormatter("%(message)s", encoding=enc))
        console_handler.addFilter(SafeConsoleFilter(encoding=enc))
        root.addHandler(console_handler)

    return current_link_path if created_hardlink else aggregate_path


def _maybe_print_log_notice(verbose: bool, console_level: Optional[str], log_path: Path) -> None:
    """Inform user about logging destination and how to enable console logs."""
    if verbose or console_level:
        return
    console.print(f"[dim]Logs are written to {log_path}. Console logs are disabled by default. Use -v or --log-level to enable.[/dim]")


def _load_roots(paths: Sequence[Path]) -> List[RepoInfo]:
    """Open the repositories at the given paths, keeping order and dropping duplicates."""
    roots: List[RepoInfo] = []
    seen = set()
    for path in paths or [Path.cwd()]:
        repo_info = GitManager(Path(path)).get_repo_info()
        if repo_info.path in seen:
            logger.debug(f"Ignoring duplicate root {repo_info.path}")
            continue
        seen.add(repo_info.path)
        roots.append(repo_info)
    return roots


def _exit_code(result: UpdateResult) -> int:
    if result is UpdateResult.CANCEL:
        return EXIT_CANCELLED
    if result.is_success and result is not UpdateResult.INCOMPLETE:
        return 0
    return 1


@click.group()
@click.option(
    "--version",
    "-V",
    is_flag=True,
    callback=_print_version,
    expose_value=False,
    is_eager=True,
    help="Show version and exit.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose console logging (INFO)")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Console log level. By default, console logging is disabled.",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, log_level: Optional[str]) -> None:
    """Lockstep Update - Pull several Git repositories together via merge or rebase."""
    log_path = setup_logging(verbose, console_level=log_level)

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["console_level"] = log_level
    ctx.obj["log_path"] = log_path
    logger.debug(f"CLI init: cwd={Path.cwd()} args={sys.argv[1:]}")


@cli.command()
@click.argument("roots", nargs=-1, type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option(
    "--method",
    type=click.Choice([m.value for m in UpdateMethod]),
    default=None,
    help="Update method; branch-default follows branch.<name>.rebase and pull.rebase.",
)
@click.option(
    "--sync/--no-sync",
    "sync_control",
    default=None,
    help="Refuse the whole update if any root is not on a tracked branch.",
)
@click.option(
    "--changes-policy",
    type=click.Choice([p.value for p in ChangesPolicy]),
    default=None,
    help="How uncommitted changes are put aside during the update.",
)
@click.option(
    "--rebase-over-merge",
    "rebase_over_merge",
    type=click.Choice(["ask", "merge", "cancel", "rebase"]),
    default="ask",
    show_default=True,
    help="What to do when rebasing would flatten local merge commits.",
)
@click.option(
    "--no-rebase-over-merge-check",
    is_flag=True,
    help="Do not look for local merge commits before rebasing.",
)
@click.option(
    "--no-tracked-branch-check",
    is_flag=True,
    help="Do not refuse the update when no root has a tracked branch.",
)
@click.pass_context
def update(
    ctx: click.Context,
    roots: tuple[Path, ...],
    method: Optional[str],
    sync_control: Optional[bool],
    changes_policy: Optional[str],
    rebase_over_merge: str,
    no_rebase_over_merge_check: bool,
    no_tracked_branch_check: bool,
) -> None:
    """
    Update ROOTS (default: current repository) from their tracked branches.

    Roots are updated in the order given.

    Example: lockstep-update update lib app --method rebase
    """
    cancellation = CancellationToken()
    try:
        _maybe_print_log_notice(ctx.obj.get("verbose"), ctx.obj.get("console_level"), ctx.obj.get("log_path"))
        settings = UpdateSettings.from_env().with_overrides(
            update_method=UpdateMethod(method) if method else None,
            sync_control=sync_control,
            changes_policy=ChangesPolicy(changes_policy) if changes_policy else None,
            check_rebase_over_merge=False if no_rebase_over_merge_check else None,
            check_tracked_branch_existence=False if no_tracked_branch_check else None,
        )
        repos = _load_roots(roots)

        console.print("\n🔍 **Roots to Update**")
        for i, repo in enumerate(repos, 1):
            console.print(f"  {i}. [cyan]{repo.name}[/cyan] ({repo.relative_path})")

        notifier = ConsoleNotifier(console)
        prompt: UserPrompt
        if rebase_over_merge == "ask":
            prompt = CliPrompt(console)
        else:
            prompt = FixedDecisionPrompt(_REBASE_OVER_MERGE_ANSWERS[rebase_over_merge])

        process = UpdateProcess(
            repos,
            settings,
            notifier=notifier,
            conflict_resolver=ConflictResolver(CliConflictPrompt(console), notifier),
            prompt=prompt,
            cancellation=cancellation,
        )
        result = process.update()

        _display_skipped_roots(process.skipped_roots)
        text, style = _RESULT_STYLES[result]
        console.print(Panel(text, title="Update Result", border_style=style.split()[-1]), style=style)
        logger.info(f"Update result: {result.name}")

        code = _exit_code(result)
        if code:
            sys.exit(code)

    except UpdateError as e:
        console.print(f"\n❌ **Update Error:** {e}", style="bold red")
        logger.debug("Update aborted due to UpdateError", exc_info=True)
        sys.exit(1)
    except (click.Abort, KeyboardInterrupt):
        cancellation.cancel()
        console.print("\n\n🚫 **Operation cancelled by user**", style="bold yellow")
        logger.debug("Operation cancelled by user", exc_info=True)
        sys.exit(EXIT_CANCELLED)


@cli.command()
@click.argument("roots", nargs=-1, type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.pass_context
def status(ctx: click.Context, roots: tuple[Path, ...]) -> None:
    """Show branch, tracking and working tree state of ROOTS."""
    try:
        _maybe_print_log_notice(ctx.obj.get("verbose"), ctx.obj.get("console_level"), ctx.obj.get("log_path"))
        repos = _load_roots(roots)

        console.print("\n📊 **Repository Status**")
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Repository", style="cyan")
        table.add_column("Path", style="dim")
        table.add_column("Current Branch", style="green")
        table.add_column("Tracked Branch", style="blue")
        table.add_column("State", style="yellow")
        table.add_column("Local Changes")

        for repo in repos:
            try:
                table.add_row(repo.name, repo.relative_path, *_status_row(repo))
            except GitRepositoryError as e:
                table.add_row(repo.name, repo.relative_path, "Error", "", f"❌ {e}", "")

        console.print(table)

    except UpdateError as e:
        console.print(f"\n❌ **Error getting status:** {e}", style="bold red")
        logger.debug("Error in status command", exc_info=True)
        sys.exit(1)


def _status_row(repo: RepoInfo) -> List[str]:
    gm = repo.git_manager
    branch = gm.get_current_branch()
    tracking = gm.get_tracking_info(branch) if branch else None
    if gm.is_rebase_in_progress():
        state = "🔄 Rebasing"
    elif gm.is_merge_in_progress():
        state = "🔀 Merging"
    elif gm.has_unmerged_files():
        state = "⚠️ Unmerged files"
    else:
        state = "✅ Clean"
    return [
        branch or "(detached HEAD)",
        tracking[1] if tracking else "-",
        state,
        "yes" if gm.has_local_changes() else "no",
    ]


@cli.command()
@click.argument("roots", nargs=-1, type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.pass_context
def shelves(ctx: click.Context, roots: tuple[Path, ...]) -> None:
    """List local changes shelved by updates and not restored yet."""
    try:
        _maybe_print_log_notice(ctx.obj.get("verbose"), ctx.obj.get("console_level"), ctx.obj.get("log_path"))
        repos = _load_roots(roots)

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Repository", style="cyan")
        table.add_column("Original Branch", style="green")
        table.add_column("Session", style="yellow")
        table.add_column("Ref", style="dim")

        found = 0
        for repo in repos:
            for ref, branch, session in list_shelves(repo.git_manager):
                table.add_row(repo.name, branch, session, ref)
                found += 1

        if not found:
            console.print("No shelved changes found.")
            return
        console.print(table)
        console.print("[dim]Restore with: git stash apply <ref> && git update-ref -d <ref>[/dim]")

    except UpdateError as e:
        console.print(f"\n❌ **Error listing shelves:** {e}", style="bold red")
        logger.debug("Error in shelves command", exc_info=True)
        sys.exit(1)


@cli.command()
def version() -> None:
    """Print the current lockstep-update version."""
    console.print(f"lockstep-update {PACKAGE_VERSION}")


def _display_skipped_roots(skipped: Dict[RepoInfo, str]) -> None:
    """Show roots that were left out of the update."""
    if not skipped:
        return
    console.print("\n⏭️  **Skipped Roots**", style="bold yellow")
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Repository", style="cyan")
    table.add_column("Path", style="dim")
    table.add_column("Reason", style="yellow")
    for repo, reason in skipped.items():
        table.add_row(repo.name, repo.relative_path, reason)
    console.print(table)


def main() -> None:
    """Main entry point for the CLI."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n\n🚫 **Operation cancelled by user**", style="bold yellow")
        logger.debug("Top-level cancellation (KeyboardInterrupt)", exc_info=True)
        sys.exit(EXIT_CANCELLED)
    except Exception as e:
        console.print(f"\n💥 **Unexpected error:** {e}", style="bold red")
        logger.debug("Unexpected error in main()", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
