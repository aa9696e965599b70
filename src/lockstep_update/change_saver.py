"""
Saving and restoring uncommitted changes around an update.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from .git_manager import GitManager
from .models import ChangesPolicy, GitRepositoryError, PreservationError, RepoInfo
from .notifier import Notifier

logger = logging.getLogger(__name__)


SHELF_PREFIX = "refs/lockstep-update/shelf"


def new_session_id() -> str:
    """Timestamp plus a random suffix, so saves within the same second get distinct shelves."""
    return f"{datetime.now():%Y%m%d-%H%M%S}-{uuid.uuid4().hex[:6]}"


class LocalChangesSaver(ABC):
    """Puts local changes of several roots aside and brings them back."""

    def __init__(self, notifier: Notifier, operation_name: str = "Update", session_id: Optional[str] = None) -> None:
        self.notifier = notifier
        self.session_id = session_id or new_session_id()
        self.message = f"Uncommitted changes before {operation_name} at {datetime.now():%Y-%m-%d %H:%M:%S}"
        # Root -> snapshot (stash commit or shelf ref), in save order
        self.saved: Dict[RepoInfo, str] = {}

    def save_local_changes(self, roots: Sequence[RepoInfo]) -> None:
        """Save changes of every root, undoing partial saves if one root fails."""
        for root in roots:
            try:
                snapshot = self._save(root)
            except GitRepositoryError as e:
                logger.error(f"Failed to save local changes in {root.name}: {e}")
                self._rollback()
                raise PreservationError(f"Couldn't save uncommitted changes in {root.name}: {e}") from e
            if snapshot is None:
                logger.info(f"Nothing to save in {root.name}")
                continue
            self.saved[root] = snapshot
            logger.info(f"Saved local changes in {root.name} to {self.describe(snapshot)}")

    def load(self) -> None:
        """Restore every saved root; failures are collected and raised together."""
        failures: List[Tuple[RepoInfo, str]] = []
        for root, snapshot in list(self.saved.items()):
            try:
                self._restore(root, snapshot)
                del self.saved[root]
                logger.info(f"Restored local changes in {root.name}")
            except GitRepositoryError as e:
                logger.error(f"Failed to restore local changes in {root.name}: {e}")
                failures.append((root, str(e)))
        if failures:
            details = "\n".join(
                f"{root.name}: {error} (changes are kept in {self.describe(self.saved[root])})"
                for root, error in failures
            )
            raise PreservationError(f"Couldn't restore uncommitted changes:\n{details}")

    def notify_local_changes_are_not_restored(self) -> None:
        if not self.saved:
            return
        where = "\n".join(f"{root.name}: {self.describe(snapshot)}" for root, snapshot in self.saved.items())
        self.notifier.notify_important_error(
            "Local changes were not restored",
            "Before update your uncommitted changes were saved to\n"
            f"{where}\n"
            "Resolve the remaining conflicts and restore them manually.",
        )

    def _rollback(self) -> None:
        try:
            self.load()
        except PreservationError as e:
            logger.error(f"Rolling back saved changes failed: {e}")

    @abstractmethod
    def _save(self, root: RepoInfo) -> Optional[str]:
        pass

    @abstractmethod
    def _restore(self, root: RepoInfo, snapshot: str) -> None:
        pass

    @abstractmethod
    def describe(self, snapshot: str) -> str:
        pass


class StashChangesSaver(LocalChangesSaver):
    """Saves changes with ``git stash``."""

    def _save(self, root: RepoInfo) -> Optional[str]:
        return root.git_manager.stash_push(self.message)

    def _restore(self, root: RepoInfo, snapshot: str) -> None:
        root.git_manager.stash_pop(snapshot)

    def describe(self, snapshot: str) -> str:
        return f"stash {snapshot[:8]} ('{self.message}')"


class ShelveChangesSaver(LocalChangesSaver):
    """Saves changes to a dedicated shelf ref, leaving the stash list alone."""

    def make_shelf_ref(self, branch: Optional[str]) -> str:
        # Keep branch hierarchy to encode original branch name
        return f"{SHELF_PREFIX}/{branch or 'HEAD'}/{self.session_id}"

    def _save(self, root: RepoInfo) -> Optional[str]:
        gm = root.git_manager
        sha = gm.stash_create(self.message)
        if sha is None:
            return None
        ref = self.make_shelf_ref(gm.get_current_branch())
        gm.update_ref(ref, sha)
        gm.reset_hard("HEAD")
        return ref

    def _restore(self, root: RepoInfo, snapshot: str) -> None:
        root.git_manager.stash_apply(snapshot)
        root.git_manager.delete_ref(snapshot)

    def describe(self, snapshot: str) -> str:
        return f"shelf {snapshot}"


def create_saver(policy: ChangesPolicy, notifier: Notifier, operation_name: str = "Update") -> Optional[LocalChangesSaver]:
    """Saver for a preservation policy; None for ``ChangesPolicy.NEVER``."""
    if policy is ChangesPolicy.STASH:
        return StashChangesSaver(notifier, operation_name)
    if policy is ChangesPolicy.SHELVE:
        return ShelveChangesSaver(notifier, operation_name)
    return None


def parse_shelf_ref(ref: str) -> Optional[Tuple[str, str]]:
    """Parse a shelf ref into (original_branch, session) or None if invalid."""
    parts = ref.split("/")
    prefix_parts = SHELF_PREFIX.split("/")
    if len(parts) < len(prefix_parts) + 2:
        return None
    if parts[: len(prefix_parts)] != prefix_parts:
        return None
    original_branch = "/".join(parts[len(prefix_parts) : -1])
    session = parts[-1]
    if not original_branch or not session:
        return None
    return original_branch, session


def list_shelves(git_manager: GitManager) -> List[Tuple[str, str, str]]:
    """Return (ref, original_branch, session) for every shelf in a repository, newest first."""
    entries = []
    for ref in git_manager.list_refs(SHELF_PREFIX + "/"):
        parsed = parse_shelf_ref(ref)
        if parsed:
            entries.append((ref, parsed[0], parsed[1]))
    entries.sort(key=lambda e: e[2], reverse=True)
    return entries
