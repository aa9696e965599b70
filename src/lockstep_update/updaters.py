"""
Per-root updaters bound to a merge or rebase strategy.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Sequence

from .conflict_resolver import ConflictResolver, ConflictResolverParams, commit_merges
from .models import BranchPair, GitRepositoryError, RepoInfo, UpdateMethod, UpdateResult
from .notifier import Notifier


logger = logging.getLogger(__name__)

# Returns the method configured for a root, or None to defer to the next provider
MethodProvider = Callable[[RepoInfo, BranchPair], Optional[UpdateMethod]]

_REBASE_VALUES = {"true", "merges", "preserve", "interactive", "i", "m", "p", "yes", "on", "1"}
_MERGE_VALUES = {"false", "no", "off", "0"}


class Updater(ABC):
    """Updates one root from its tracked branch with a fixed strategy."""

    method: UpdateMethod

    def __init__(
        self,
        repo: RepoInfo,
        branch_pair: BranchPair,
        conflict_resolver: ConflictResolver,
        notifier: Notifier,
    ) -> None:
        self.repo = repo
        self.branch_pair = branch_pair
        self.conflict_resolver = conflict_resolver
        self.notifier = notifier

    @property
    def git_manager(self):
        return self.repo.git_manager

    @property
    def source_and_target(self) -> BranchPair:
        return self.branch_pair

    @property
    def tracked_branch(self) -> str:
        return self.branch_pair.tracked_branch

    def is_update_needed(self) -> bool:
        """True if the tracked branch has commits the local branch lacks.

        Raises GitRepositoryError if the branches cannot be compared.
        """
        needed = self.git_manager.has_commits_between(self.branch_pair.local_branch, self.tracked_branch)
        if not needed:
            logger.info(f"No remote changes for {self.repo.name} ({self.branch_pair})")
        return needed

    @abstractmethod
    def is_save_needed(self) -> bool:
        """True if local changes must be put aside before ``update`` runs."""
        pass

    def update(self) -> UpdateResult:
        logger.info(f"Updating {self.repo.name} via {self.method.value} ({self.branch_pair})")
        result = self._do_update()
        logger.info(f"Update of {self.repo.name} finished: {result.name}")
        return result

    @abstractmethod
    def _do_update(self) -> UpdateResult:
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.repo.name}, {self.branch_pair})"


class MergeUpdater(Updater):
    """Merges the tracked branch into the current branch."""

    method = UpdateMethod.MERGE

    def is_save_needed(self) -> bool:
        # A merge only needs a clean tree where the incoming changes touch local edits
        try:
            dirty = set(self.git_manager.get_dirty_paths())
            if not dirty:
                return False
            incoming = set(
                self.git_manager.get_changed_paths_between(
                    self.branch_pair.local_branch, self.tracked_branch
                )
            )
        except GitRepositoryError as e:
            logger.warning(f"Could not compare local and incoming changes in {self.repo.name}: {e}")
            return True
        overlap = dirty & incoming
        if overlap:
            logger.info(f"Local changes in {self.repo.name} overlap incoming changes: {sorted(overlap)}")
        return bool(overlap)

    def _do_update(self) -> UpdateResult:
        try:
            success, _ = self.git_manager.merge(self.tracked_branch, "--no-edit", "--no-stat")
        except GitRepositoryError as e:
            self.notifier.notify_error(
                "Update failed",
                f"Merging {self.tracked_branch} into {self.branch_pair.local_branch} "
                f"in {self.repo.name} failed: {e}",
            )
            return UpdateResult.ERROR
        if success:
            return UpdateResult.SUCCESS

        params = ConflictResolverParams(
            error_notification_title="Merge was not completed",
            merge_description=f"Merging {self.tracked_branch} into {self.branch_pair.local_branch} caused conflicts.",
            error_notification_additional_description="Resolve the conflicts and commit the merge.",
            proceed_after_all_merged=commit_merges([self.repo]),
        )
        if self.conflict_resolver.merge([self.repo], params):
            return UpdateResult.SUCCESS_WITH_RESOLVED_CONFLICTS
        return UpdateResult.INCOMPLETE


class RebaseUpdater(Updater):
    """Rebases the current branch onto the tracked branch."""

    method = UpdateMethod.REBASE

    def is_save_needed(self) -> bool:
        try:
            return self.git_manager.has_local_changes()
        except GitRepositoryError as e:
            logger.warning(f"Could not check local changes in {self.repo.name}: {e}")
            return True

    def fast_forward_merge(self) -> bool:
        """Try to update by a fast-forward merge, which needs no rebase and no save."""
        logger.info(f"Trying fast-forward merge for {self.repo.name}")
        if self.git_manager.fast_forward(self.tracked_branch):
            logger.info(f"Fast-forward merge succeeded for {self.repo.name}")
            return True
        return False

    def _do_update(self) -> UpdateResult:
        try:
            success, _ = self.git_manager.start_rebase(self.tracked_branch)
        except GitRepositoryError as e:
            self._abort_if_started()
            self.notifier.notify_error(
                "Rebase failed",
                f"Rebasing {self.branch_pair.local_branch} onto {self.tracked_branch} "
                f"in {self.repo.name} failed: {e}",
            )
            return UpdateResult.ERROR
        if success:
            return UpdateResult.SUCCESS

        params = ConflictResolverParams(
            error_notification_title="Rebase was not completed",
            merge_description=(
                f"Rebasing {self.branch_pair.local_branch} onto {self.tracked_branch} caused conflicts."
            ),
            error_notification_additional_description=(
                "Resolve the conflicts and continue rebase, or abort rebase to restore the original branch."
            ),
            reverse=True,
        )
        # Each continued step may stop on the next conflicting commit
        while True:
            if not self.conflict_resolver.merge([self.repo], params):
                return UpdateResult.INCOMPLETE
            try:
                success, _ = self.git_manager.continue_rebase()
            except GitRepositoryError as e:
                self.notifier.notify_error("Rebase was not completed", f"{self.repo.name}: {e}")
                return UpdateResult.INCOMPLETE
            if success:
                return UpdateResult.SUCCESS_WITH_RESOLVED_CONFLICTS

    def _abort_if_started(self) -> None:
        if not self.git_manager.is_rebase_in_progress():
            return
        try:
            self.git_manager.abort_rebase()
        except GitRepositoryError as e:
            logger.error(f"Could not abort failed rebase in {self.repo.name}: {e}")


def method_from_rebase_setting(value: Optional[str]) -> Optional[UpdateMethod]:
    """Map a ``*.rebase`` git config value to an update method."""
    if value is None:
        return None
    normalized = value.strip().lower()
    if normalized in _REBASE_VALUES:
        return UpdateMethod.REBASE
    if normalized in _MERGE_VALUES:
        return UpdateMethod.MERGE
    logger.warning(f"Unknown rebase setting {value!r}; ignoring")
    return None


def branch_rebase_setting(repo: RepoInfo, branch_pair: BranchPair) -> Optional[UpdateMethod]:
    """``branch.<name>.rebase`` of the current branch."""
    return method_from_rebase_setting(
        repo.git_manager.get_config_value(f"branch.{branch_pair.local_branch}.rebase")
    )


def pull_rebase_setting(repo: RepoInfo, branch_pair: BranchPair) -> Optional[UpdateMethod]:
    """Repository-wide ``pull.rebase``."""
    return method_from_rebase_setting(repo.git_manager.get_config_value("pull.rebase"))


DEFAULT_METHOD_PROVIDERS: List[MethodProvider] = [branch_rebase_setting, pull_rebase_setting]


class UpdaterFactory:
    """Builds updaters for a root from a requested update method.

    ``BRANCH_DEFAULT`` is resolved by asking the method providers in order;
    the first non-None answer wins and MERGE is used when none answers.
    """

    def __init__(
        self,
        conflict_resolver: ConflictResolver,
        notifier: Notifier,
        method_providers: Optional[Sequence[MethodProvider]] = None,
    ) -> None:
        self.conflict_resolver = conflict_resolver
        self.notifier = notifier
        self.method_providers = list(
            DEFAULT_METHOD_PROVIDERS if method_providers is None else method_providers
        )

    def resolve_method(self, method: UpdateMethod, repo: RepoInfo, branch_pair: BranchPair) -> UpdateMethod:
        if method is not UpdateMethod.BRANCH_DEFAULT:
            return method
        for provider in self.method_providers:
            resolved = provider(repo, branch_pair)
            if resolved is not None:
                logger.debug(f"{repo.name}: {getattr(provider, '__name__', provider)} selected {resolved.value}")
                return resolved
        return UpdateMethod.MERGE

    def create(self, method: UpdateMethod, repo: RepoInfo, branch_pair: BranchPair) -> Updater:
        effective = self.resolve_method(method, repo, branch_pair)
        if effective is UpdateMethod.REBASE:
            return RebaseUpdater(repo, branch_pair, self.conflict_resolver, self.notifier)
        return MergeUpdater(repo, branch_pair, self.conflict_resolver, self.notifier)
