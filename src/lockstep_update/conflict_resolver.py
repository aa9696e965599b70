"""
Conflict resolution handling for update operations.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from .conflict_prompt_interface import ConflictPrompt, NoOpConflictPrompt
from .models import GitRepositoryError, RepoInfo
from .notifier import LoggingNotifier, Notifier


logger = logging.getLogger(__name__)


@dataclass
class ConflictResolverParams:
    """Texts and follow-up actions for one conflict resolution attempt.

    The proceed callbacks run after the conflicts are gone: the first when
    there was nothing to resolve at all, the second after the user resolved
    everything. Returning False marks the attempt as failed.
    """

    error_notification_title: str = "Conflicts were not resolved"
    merge_description: str = "Conflicts must be resolved before continuing."
    error_notification_additional_description: str = ""
    reverse: bool = False
    proceed_if_nothing_to_merge: Optional[Callable[[], bool]] = None
    proceed_after_all_merged: Optional[Callable[[], bool]] = None


class ConflictResolver:
    """Asks the user to resolve unmerged files in a set of roots."""

    def __init__(
        self,
        conflict_prompt: Optional[ConflictPrompt] = None,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self.conflict_prompt = conflict_prompt or NoOpConflictPrompt()
        self.notifier = notifier or LoggingNotifier()

    def merge(self, roots: Sequence[RepoInfo], params: ConflictResolverParams) -> bool:
        """
        Resolve conflicts in the given roots.

        Returns:
            True if there are no conflicts left and the follow-up action succeeded
        """
        conflicts = self.analyze_conflicts(roots)
        if not conflicts:
            logger.info("No unmerged files found; proceeding")
            return self._proceed(params.proceed_if_nothing_to_merge, params)

        logger.info(
            "Unmerged files in "
            + ", ".join(f"{r.name} ({len(files)})" for r, files in conflicts.items())
        )
        if not self.conflict_prompt.prompt_for_conflict_resolution(
            conflicts, params.merge_description, params.reverse
        ):
            logger.info("User did not resolve conflicts")
            self._notify_unresolved(params)
            return False

        remaining = self.analyze_conflicts(roots)
        if remaining:
            logger.warning(f"Conflicts remain in {', '.join(r.name for r in remaining)}")
            self._notify_unresolved(params)
            return False

        return self._proceed(params.proceed_after_all_merged, params)

    def analyze_conflicts(self, roots: Sequence[RepoInfo]) -> Dict[RepoInfo, List[Path]]:
        """Return unmerged files per root, leaving out roots without any."""
        conflicts: Dict[RepoInfo, List[Path]] = {}
        for root in roots:
            files = root.git_manager.get_conflict_files()
            if files:
                conflicts[root] = files
        return conflicts

    def _proceed(self, action: Optional[Callable[[], bool]], params: ConflictResolverParams) -> bool:
        if action is None:
            return True
        try:
            return bool(action())
        except GitRepositoryError as e:
            logger.error(f"Follow-up after conflict resolution failed: {e}")
            self.notifier.notify_error(params.error_notification_title, str(e))
            return False

    def _notify_unresolved(self, params: ConflictResolverParams) -> None:
        body = "Unresolved conflicts remain. " + params.merge_description
        if params.error_notification_additional_description:
            body += "\n" + params.error_notification_additional_description
        self.notifier.notify_error(params.error_notification_title, body)


def commit_merges(roots: Sequence[RepoInfo]) -> Callable[[], bool]:
    """Follow-up action committing pending merges in the given roots."""

    def _commit() -> bool:
        for root in roots:
            if root.git_manager.is_merge_in_progress():
                root.git_manager.commit_merge()
        return True

    return _commit


def continue_rebases(roots: Sequence[RepoInfo]) -> Callable[[], bool]:
    """Follow-up action continuing unfinished rebases in the given roots."""

    def _continue() -> bool:
        for root in roots:
            if not root.git_manager.is_rebase_in_progress():
                continue
            success, conflict_files = root.git_manager.continue_rebase()
            if not success:
                logger.warning(f"Continuing rebase in {root.name} stopped on {len(conflict_files)} conflicts")
                return False
        return True

    return _continue
