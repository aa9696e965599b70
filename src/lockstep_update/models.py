"""
Data models for the multi-repository update tool.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Set, TYPE_CHECKING

if TYPE_CHECKING:
    # For type checkers only; avoids runtime circular import
    from .git_manager import GitManager


@dataclass(eq=False)
class RepoInfo:
    """A version-controlled root taking part in an update.

    Instances compare by identity so they can key per-run mappings. No VCS state
    is cached here; branch and tracking information is always read through the
    attached GitManager.
    """

    path: Path
    name: str = ""
    git_manager: Optional["GitManager"] = None

    def __post_init__(self) -> None:
        """Ensure path is absolute."""
        self.path = Path(self.path).resolve()
        if not self.name:
            self.name = self.path.name

    @property
    def relative_path(self) -> str:
        """Get relative path from current working directory."""
        try:
            return str(self.path.relative_to(Path.cwd()))
        except ValueError:
            return str(self.path)

    def __repr__(self) -> str:
        return f"RepoInfo({self.name!r}, {str(self.path)!r})"


@dataclass(frozen=True)
class BranchPair:
    """Local branch and the remote branch it tracks (None when not configured)."""

    local_branch: str
    tracked_branch: Optional[str] = None
    remote_name: Optional[str] = None

    @property
    def has_tracking(self) -> bool:
        return self.tracked_branch is not None

    def __str__(self) -> str:
        return f"{self.local_branch} -> {self.tracked_branch or '<untracked>'}"


class UpdateMethod(Enum):
    """Strategy used to bring a root up to date with its tracked branch."""

    MERGE = "merge"
    REBASE = "rebase"
    BRANCH_DEFAULT = "branch-default"


class ChangesPolicy(Enum):
    """How uncommitted changes are preserved around an update."""

    STASH = "stash"
    SHELVE = "shelve"
    NEVER = "never"


class RebaseOverMergeDecision(Enum):
    """User decision when a rebase would flatten local merge commits."""

    MERGE_INSTEAD = "merge_instead"
    CANCEL_OPERATION = "cancel"
    REBASE_ANYWAY = "rebase_anyway"


class UpdateResult(Enum):
    """Outcome of updating one root, or of a whole run.

    Members are declared in ascending severity; ``join`` keeps the more
    severe of two results.
    """

    NOTHING_TO_UPDATE = 1
    SUCCESS = 2
    SUCCESS_WITH_RESOLVED_CONFLICTS = 3
    INCOMPLETE = 4
    CANCEL = 5
    ERROR = 6
    NOT_READY = 7

    @property
    def severity(self) -> int:
        return self.value

    @property
    def is_success(self) -> bool:
        """True when the update itself ran (possibly leaving conflicts behind)."""
        return self in (
            UpdateResult.NOTHING_TO_UPDATE,
            UpdateResult.SUCCESS,
            UpdateResult.SUCCESS_WITH_RESOLVED_CONFLICTS,
            UpdateResult.INCOMPLETE,
        )

    def join(self, other: UpdateResult) -> UpdateResult:
        return self if self.severity >= other.severity else other


def join_results(compound: Optional[UpdateResult], result: UpdateResult) -> UpdateResult:
    """Fold a per-root result into the compound result of a run."""
    if compound is None:
        return result
    return compound.join(result)


@dataclass
class RootStateReport:
    """Pre-conditions of a set of roots, as found before an update."""

    rebase_in_progress: Set[RepoInfo] = field(default_factory=set)
    merge_in_progress: Set[RepoInfo] = field(default_factory=set)
    unmerged_files: Set[RepoInfo] = field(default_factory=set)

    @property
    def is_ready(self) -> bool:
        return not (self.rebase_in_progress or self.merge_in_progress or self.unmerged_files)


# Repository -> reason ("detached HEAD", "no tracked branch")
SkippedRoots = Dict[RepoInfo, str]

SKIP_DETACHED_HEAD = "detached HEAD"
SKIP_NO_TRACKED_BRANCH = "no tracked branch"


class CancellationToken:
    """Cooperative cancellation signal shared between a caller and an update run."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def check_cancelled(self) -> None:
        if self._event.is_set():
            raise UpdateCancelledError("Update was cancelled")


class UpdateError(Exception):
    """Base exception for update operations."""

    pass


class GitRepositoryError(UpdateError):
    """Exception raised for Git repository related errors."""

    pass


class PreservationError(UpdateError):
    """Exception raised while saving or restoring local changes."""

    pass


class UpdateCancelledError(UpdateError):
    """Exception raised when an update is cancelled."""

    pass
