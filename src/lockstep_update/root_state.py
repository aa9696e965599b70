"""
Pre-flight checks for unfinished rebases, merges and unmerged files.
"""

from __future__ import annotations

import logging
from typing import Sequence

from .conflict_resolver import (
    ConflictResolver,
    ConflictResolverParams,
    commit_merges,
    continue_rebases,
)
from .models import RepoInfo, RootStateReport


logger = logging.getLogger(__name__)


class RootStateProber:
    """Finds roots that cannot be updated until a previous operation is finished."""

    def __init__(self, conflict_resolver: ConflictResolver) -> None:
        self.conflict_resolver = conflict_resolver

    def probe(self, roots: Sequence[RepoInfo]) -> RootStateReport:
        report = RootStateReport()
        for root in roots:
            gm = root.git_manager
            if gm.is_rebase_in_progress():
                report.rebase_in_progress.add(root)
            if gm.is_merge_in_progress():
                report.merge_in_progress.add(root)
            if gm.has_unmerged_files():
                report.unmerged_files.add(root)
        return report

    def check_ready(self, roots: Sequence[RepoInfo]) -> bool:
        """Return True if every root may be updated.

        Each problem is offered to the conflict resolver first; it only blocks
        the update if the user does not resolve it.
        """
        report = self.probe(roots)
        if report.is_ready:
            return True
        if self.check_rebase_in_progress([r for r in roots if r in report.rebase_in_progress]):
            return False
        if self.check_merge_in_progress([r for r in roots if r in report.merge_in_progress]):
            return False
        if self.check_unmerged_files([r for r in roots if r in report.unmerged_files]):
            return False
        return True

    def check_rebase_in_progress(self, rebasing: Sequence[RepoInfo]) -> bool:
        """Return True if an unfinished rebase in one of ``rebasing`` blocks the update."""
        if not rebasing:
            return False
        logger.info(f"Roots with unfinished rebase: {', '.join(r.name for r in rebasing)}")

        proceed = continue_rebases(rebasing)
        params = ConflictResolverParams(
            error_notification_title="Can't update",
            merge_description=(
                "You have unfinished rebase process. These conflicts must be resolved before update."
            ),
            error_notification_additional_description=(
                "Then you may continue rebase. "
                "You also may abort rebase to restore the original branch and stop rebasing."
            ),
            reverse=True,
            proceed_if_nothing_to_merge=proceed,
            proceed_after_all_merged=proceed,
        )
        return not self.conflict_resolver.merge(rebasing, params)

    def check_merge_in_progress(self, merging: Sequence[RepoInfo]) -> bool:
        """Return True if an unfinished merge in one of ``merging`` blocks the update."""
        if not merging:
            return False
        logger.info(f"Roots with unfinished merge: {', '.join(r.name for r in merging)}")

        proceed = commit_merges(merging)
        params = ConflictResolverParams(
            error_notification_title="Can't update",
            merge_description="You have unfinished merge. These conflicts must be resolved before update.",
            proceed_if_nothing_to_merge=proceed,
            proceed_after_all_merged=proceed,
        )
        return not self.conflict_resolver.merge(merging, params)

    def check_unmerged_files(self, unmerged: Sequence[RepoInfo]) -> bool:
        """Return True if unmerged files in one of ``unmerged`` block the update.

        Unmerged entries may remain even after a rebase or merge has finished.
        """
        if not unmerged:
            return False
        logger.info(f"Roots with unmerged files: {', '.join(r.name for r in unmerged)}")
        proceed = commit_merges(unmerged)
        params = ConflictResolverParams(
            error_notification_title="Update was not started",
            merge_description="Unmerged files detected. These conflicts must be resolved before update.",
            proceed_if_nothing_to_merge=proceed,
            proceed_after_all_merged=proceed,
        )
        return not self.conflict_resolver.merge(unmerged, params)
