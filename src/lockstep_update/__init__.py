"""
Lockstep Update - pull several Git repositories together via merge or rebase.

This package updates an ordered set of repository roots from their tracked
branches, putting uncommitted changes aside while the update runs and
restoring them only when no conflicts were left unresolved.
"""

__version__ = "0.1.0"

from .update_process import UpdateProcess
from .models import (
    BranchPair,
    CancellationToken,
    ChangesPolicy,
    RepoInfo,
    UpdateError,
    UpdateMethod,
    UpdateResult,
)
from .settings import UpdateSettings
from .git_manager import GitManager
from .conflict_resolver import ConflictResolver
from .notifier import Notifier, LoggingNotifier

__all__ = [
    "UpdateProcess",
    "UpdateSettings",
    "UpdateResult",
    "UpdateMethod",
    "ChangesPolicy",
    "BranchPair",
    "RepoInfo",
    "CancellationToken",
    "UpdateError",
    "GitManager",
    "ConflictResolver",
    "Notifier",
    "LoggingNotifier",
]
