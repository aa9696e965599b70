"""
Main update orchestration logic for multi-repository pulls.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

from .branch_tracking import BranchTrackingResolver
from .change_saver import create_saver
from .conflict_resolver import ConflictResolver
from .fetcher import GitFetcher
from .models import (
    BranchPair,
    CancellationToken,
    GitRepositoryError,
    RepoInfo,
    SkippedRoots,
    UpdateCancelledError,
    UpdateError,
    UpdateMethod,
    UpdateResult,
    join_results,
)
from .notifier import LoggingNotifier, Notifier
from .preserving_process import PreservingProcess
from .prompt_interface import NoOpPrompt, UserPrompt
from .rebase_over_merge import RebaseOverMergeGuard
from .root_state import RootStateProber
from .settings import UpdateSettings
from .updaters import RebaseUpdater, Updater, UpdaterFactory


logger = logging.getLogger(__name__)


class UpdateProcess:
    """Updates several roots (pull via merge or rebase) in lockstep.

    The roots are processed in the order given, which must already respect
    dependencies between them. An instance holds the state of one run and may
    only be used once.
    """

    def __init__(
        self,
        roots: Sequence[RepoInfo],
        settings: Optional[UpdateSettings] = None,
        *,
        notifier: Optional[Notifier] = None,
        conflict_resolver: Optional[ConflictResolver] = None,
        prompt: Optional[UserPrompt] = None,
        fetcher: Optional[GitFetcher] = None,
        updater_factory: Optional[UpdaterFactory] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> None:
        self.roots: List[RepoInfo] = list(roots)
        self.settings = settings or UpdateSettings()
        self.notifier = notifier or LoggingNotifier()
        self.conflict_resolver = conflict_resolver or ConflictResolver(notifier=self.notifier)
        self.prompt = prompt or NoOpPrompt()
        self.cancellation = cancellation or CancellationToken()
        self.fetcher = fetcher or GitFetcher(self.notifier, self.cancellation)
        self.updater_factory = updater_factory or UpdaterFactory(self.conflict_resolver, self.notifier)

        self.prober = RootStateProber(self.conflict_resolver)
        self.branch_resolver = BranchTrackingResolver(
            self.notifier,
            sync_control=self.settings.sync_control,
            check_tracked_branch_existence=self.settings.check_tracked_branch_existence,
        )
        self.rebase_over_merge_guard = RebaseOverMergeGuard(self.prompt, self.updater_factory)

        # Run state
        self._used = False
        self._compound_result: Optional[UpdateResult] = None
        self._incomplete = False

    @property
    def skipped_roots(self) -> SkippedRoots:
        """Roots left out of the run, with the reason."""
        return self.branch_resolver.skipped_roots

    def update(self, update_method: Optional[UpdateMethod] = None) -> UpdateResult:
        """
        Check that the update is possible, save local changes and update all roots.

        1. Refuses to start if a rebase or merge is unfinished or files are unmerged,
           unless the user resolves it.
        2. Checks that roots are on branches that track remote branches.
        3. Fetches, then picks an updater (merge or rebase) for each root that is behind.
        4. Saves local changes where the updater needs a clean tree.
        5. Updates the roots one by one.
        6. Restores local changes, unless conflicts were left unresolved.

        Returns:
            The compound result of the run
        """
        if self._used:
            raise UpdateError("UpdateProcess can only be used once; create a new instance")
        self._used = True

        method = update_method or self.settings.update_method
        logger.info(f"update started|{method.value}")

        try:
            result = self._check_and_update(method)
        except UpdateCancelledError as e:
            logger.info(f"Update cancelled: {e}")
            result = UpdateResult.CANCEL
        except GitRepositoryError as e:
            logger.info(f"Querying repository state failed: {e}")
            self.notifier.notify_error("Git update failed", str(e))
            result = UpdateResult.ERROR

        logger.info(f"update finished|{result.name}")
        return result

    def _check_and_update(self, method: UpdateMethod) -> UpdateResult:
        self.cancellation.check_cancelled()

        if not self.prober.check_ready(self.roots):
            return UpdateResult.NOT_READY

        tracked_branches = self.branch_resolver.resolve(self.roots)
        if not tracked_branches:
            return UpdateResult.NOT_READY

        self.cancellation.check_cancelled()
        fetch_roots = [r for r in self.roots if r in tracked_branches]
        if not self.fetcher.fetch_roots_and_notify(fetch_roots, "Update failed", False):
            self.cancellation.check_cancelled()
            return UpdateResult.NOT_READY
        self.cancellation.check_cancelled()

        return self._update_impl(method)

    def _update_impl(self, method: UpdateMethod) -> UpdateResult:
        # Branch state may have changed while fetching
        tracked_branches = self.branch_resolver.resolve(self.roots)
        if not tracked_branches:
            return UpdateResult.NOT_READY

        updaters = self.define_updaters(method, tracked_branches)
        if not updaters:
            return UpdateResult.NOTHING_TO_UPDATE

        updaters = self.try_fast_forward_merge_for_rebase_updaters(updaters)
        if not updaters:
            # everything was updated via the fast-forward merge
            return UpdateResult.SUCCESS

        if self.settings.check_rebase_over_merge:
            guarded = self.rebase_over_merge_guard.apply(updaters, tracked_branches, self.roots)
            if guarded is None:
                return UpdateResult.CANCEL
            updaters = guarded

        # Update via merge may run without saving
        logger.info("Identifying if save is needed...")
        roots_to_save = []
        for repo in self.roots:
            updater = updaters.get(repo)
            if updater is not None and updater.is_save_needed():
                logger.info(f"Root {repo.name} needs save")
                roots_to_save.append(repo)

        saver = create_saver(self.settings.changes_policy, self.notifier)
        process = PreservingProcess(
            roots_to_save, saver, self.notifier, lambda: self._run_updaters(updaters)
        )
        process.execute(self._can_restore)

        # Saving may fail (e.g. index.lock present), leaving no result
        return self._compound_result or UpdateResult.ERROR

    def define_updaters(
        self, method: UpdateMethod, tracked_branches: Dict[RepoInfo, BranchPair]
    ) -> Dict[RepoInfo, Updater]:
        """Create updaters for roots that are behind their tracked branch."""
        logger.info("Defining updaters...")
        updaters: Dict[RepoInfo, Updater] = {}
        for repo in self.roots:
            pair = tracked_branches.get(repo)
            if pair is None:
                continue
            updater = self.updater_factory.create(method, repo, pair)
            if updater.is_update_needed():
                updaters[repo] = updater
            logger.info(f"Root {repo.name}: updater={updater}")
        return updaters

    def try_fast_forward_merge_for_rebase_updaters(
        self, updaters: Dict[RepoInfo, Updater]
    ) -> Dict[RepoInfo, Updater]:
        """Fast-forward rebase roots that have local changes, sparing them a save.

        Without local changes nothing would be saved anyway, so there is nothing
        to gain and the regular rebase is kept.
        """
        remaining: Dict[RepoInfo, Updater] = {}
        for repo in self.roots:
            updater = updaters.get(repo)
            if updater is None:
                continue
            if isinstance(updater, RebaseUpdater) and self._has_local_changes(repo):
                if updater.fast_forward_merge():
                    continue
            remaining[repo] = updater
        return remaining

    def _has_local_changes(self, repo: RepoInfo) -> bool:
        try:
            changed = repo.git_manager.has_local_changes()
        except GitRepositoryError as e:
            logger.warning(f"Could not check local changes in {repo.name}: {e}")
            return False
        logger.debug(f"Changes under root {repo.name}: {changed}")
        return changed

    def _run_updaters(self, updaters: Dict[RepoInfo, Updater]) -> None:
        logger.info("Updating...")
        current: Optional[RepoInfo] = None
        try:
            for repo in self.roots:
                updater = updaters.get(repo)
                if updater is None:
                    continue
                self.cancellation.check_cancelled()
                current = repo
                result = updater.update()
                logger.info(f"Updating root {repo.name} finished: {result.name}")
                if result is UpdateResult.INCOMPLETE:
                    self._incomplete = True
                self._compound_result = join_results(self._compound_result, result)
        except UpdateCancelledError:
            logger.info("Update cancelled before all roots were updated")
            self._compound_result = join_results(self._compound_result, UpdateResult.CANCEL)
        except KeyboardInterrupt:
            # The interrupted root may be left mid-merge or mid-rebase
            root_name = current.name if current is not None else ""
            logger.info(f"Update interrupted while updating {root_name}")
            self.cancellation.cancel()
            self._compound_result = join_results(self._compound_result, UpdateResult.CANCEL)
        except GitRepositoryError as e:
            root_name = current.name if current is not None else ""
            logger.info(f"Error updating changes for root {root_name}: {e}")
            self.notifier.notify_important_error(
                f"Error updating {root_name}", f"Updating {root_name} failed with an error: {e}"
            )
            self._compound_result = join_results(self._compound_result, UpdateResult.ERROR)

    def _can_restore(self) -> bool:
        # The first root may fail before any result exists; restoring is then skipped too
        return (
            not self._incomplete
            and self._compound_result is not None
            and self._compound_result.is_success
        )
