"""
Detection of rebases that would flatten local merge commits.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

from .models import BranchPair, GitRepositoryError, RebaseOverMergeDecision, RepoInfo, UpdateMethod
from .prompt_interface import UserPrompt
from .updaters import RebaseUpdater, Updater, UpdaterFactory


logger = logging.getLogger(__name__)


def has_rebase_over_merge_problem(repo: RepoInfo, base_ref: str, current_ref: str) -> bool:
    """True if the commits that a rebase would replay include merge commits."""
    try:
        return repo.git_manager.has_merge_commits_between(base_ref, current_ref)
    except GitRepositoryError as e:
        logger.warning(f"Could not inspect {base_ref}..{current_ref} in {repo.name}: {e}")
        return False


class RebaseOverMergeGuard:
    """Lets the user avoid rebasing over merges by switching roots to merge."""

    def __init__(self, prompt: UserPrompt, updater_factory: UpdaterFactory) -> None:
        self.prompt = prompt
        self.updater_factory = updater_factory

    def find_problematic_roots(self, updaters: Dict[RepoInfo, Updater]) -> List[RepoInfo]:
        problematic = []
        for repo, updater in updaters.items():
            if not isinstance(updater, RebaseUpdater):
                continue
            pair = updater.source_and_target
            if has_rebase_over_merge_problem(repo, pair.tracked_branch, pair.local_branch):
                logger.info(f"Rebasing {repo.name} would flatten merge commits on {pair.local_branch}")
                problematic.append(repo)
        return problematic

    def apply(
        self,
        updaters: Dict[RepoInfo, Updater],
        tracked_branches: Dict[RepoInfo, BranchPair],
        roots: Optional[Sequence[RepoInfo]] = None,
    ) -> Optional[Dict[RepoInfo, Updater]]:
        """
        Check the rebase updaters and act on the user's decision.

        Returns:
            The updaters to run, or None if the user cancelled the update
        """
        problematic = self.find_problematic_roots(updaters)
        if roots is not None:
            problematic = [r for r in roots if r in problematic]
        if not problematic:
            return updaters

        decision = self.prompt.choose_rebase_over_merge_decision(problematic)
        logger.info(f"Rebase over merge decision: {decision.name}")
        if decision is RebaseOverMergeDecision.CANCEL_OPERATION:
            return None
        if decision is RebaseOverMergeDecision.MERGE_INSTEAD:
            result = dict(updaters)
            for repo in problematic:
                pair = tracked_branches.get(repo)
                if pair is None:
                    logger.error(f"No tracked branch information for root {repo.name}")
                    continue
                result[repo] = self.updater_factory.create(UpdateMethod.MERGE, repo, pair)
            return result
        return updaters
