"""
Current branch and upstream tracking resolution for update roots.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Sequence

from .models import (
    SKIP_DETACHED_HEAD,
    SKIP_NO_TRACKED_BRANCH,
    BranchPair,
    RepoInfo,
    SkippedRoots,
)
from .notifier import Notifier


logger = logging.getLogger(__name__)


class BranchTrackingResolver:
    """Pairs each root's current branch with the branch it tracks.

    Roots without a current branch or without tracking are either skipped or
    refuse the whole run, depending on sync control. Skipped roots accumulate
    in ``skipped_roots``.
    """

    def __init__(
        self,
        notifier: Notifier,
        sync_control: bool = False,
        check_tracked_branch_existence: bool = True,
    ) -> None:
        self.notifier = notifier
        self.sync_control = sync_control
        self.check_tracked_branch_existence = check_tracked_branch_existence
        self.skipped_roots: SkippedRoots = {}

    def resolve(self, roots: Sequence[RepoInfo]) -> Dict[RepoInfo, BranchPair]:
        """
        Resolve tracked branches for the given roots.

        Returns:
            Mapping of root to BranchPair for the roots that can be updated, in
            root order. An empty mapping means the update must not run.
        """
        logger.info("Checking tracked branch configuration...")
        if not roots:
            return {}

        current_branches: Dict[RepoInfo, str] = {}
        detached_heads: List[RepoInfo] = []
        for root in roots:
            branch = root.git_manager.get_current_branch()
            if branch is not None:
                current_branches[root] = branch
            else:
                detached_heads.append(root)
                logger.info(f"Current branch is not set in {root.name}")

        if not current_branches or (self.sync_control and len(current_branches) < len(roots)):
            self._notify_detached_head(detached_heads[0])
            return {}
        for root in detached_heads:
            self.skipped_roots[root] = SKIP_DETACHED_HEAD

        tracked_branches: Dict[RepoInfo, BranchPair] = {}
        no_tracked_branch: List[RepoInfo] = []
        for root, branch in current_branches.items():
            tracking = root.git_manager.get_tracking_info(branch)
            if tracking is not None:
                remote_name, tracked = tracking
                tracked_branches[root] = BranchPair(branch, tracked, remote_name)
            else:
                no_tracked_branch.append(root)
                logger.info(f"No tracking info for current branch {branch} in {root.name}")

        if self.check_tracked_branch_existence and (
            not tracked_branches or (self.sync_control and len(tracked_branches) < len(roots))
        ):
            # In sync mode a detached root has already stopped the run above
            root = no_tracked_branch[0]
            self._notify_no_tracked_branch(root, current_branches[root])
            return {}
        for root in no_tracked_branch:
            self.skipped_roots[root] = SKIP_NO_TRACKED_BRANCH

        return tracked_branches

    def _notify_detached_head(self, root: RepoInfo) -> None:
        self.notifier.notify_important_error(
            "Can't Update: No Current Branch", detached_head_error_message(root)
        )

    def _notify_no_tracked_branch(self, root: RepoInfo, branch: str) -> None:
        self.notifier.notify_important_error("Can't Update", no_tracked_branch_error_message(root, branch))


def detached_head_error_message(root: RepoInfo) -> str:
    return (
        f"You are in 'detached HEAD' state, which means that you're not on any branch in {root.name}.\n"
        "Checkout a branch to make update possible."
    )


def no_tracked_branch_error_message(root: RepoInfo, branch: str) -> str:
    return (
        f"No tracked branch configured for branch {branch} in {root.name} "
        "or the branch doesn't exist.\n"
        "To make your branch track a remote branch call, for example,\n"
        f"git branch --set-upstream-to=origin/{branch} {branch}"
    )
