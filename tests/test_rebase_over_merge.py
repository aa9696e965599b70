"""
Tests for the rebase-over-merge guard.
"""

from lockstep_update.conflict_resolver import ConflictResolver
from lockstep_update.models import BranchPair, GitRepositoryError, RebaseOverMergeDecision
from lockstep_update.prompt_interface import FixedDecisionPrompt, NoOpPrompt
from lockstep_update.rebase_over_merge import RebaseOverMergeGuard, has_rebase_over_merge_problem
from lockstep_update.updaters import MergeUpdater, RebaseUpdater, UpdaterFactory


PAIR = BranchPair("main", "origin/main", "origin")


def setup_updaters(make_root, notifier):
    resolver = ConflictResolver(notifier=notifier)
    factory = UpdaterFactory(resolver, notifier)
    merged = make_root("merged")
    merged.git_manager.has_merge_commits_between.return_value = True
    linear = make_root("linear")
    updaters = {
        merged: RebaseUpdater(merged, PAIR, resolver, notifier),
        linear: RebaseUpdater(linear, PAIR, resolver, notifier),
    }
    tracked = {merged: PAIR, linear: PAIR}
    return factory, merged, linear, updaters, tracked


def test_problem_detection_looks_at_unpushed_commits(make_root):
    root = make_root("a")
    root.git_manager.has_merge_commits_between.return_value = True

    assert has_rebase_over_merge_problem(root, "origin/main", "main")
    root.git_manager.has_merge_commits_between.assert_called_once_with("origin/main", "main")


def test_problem_detection_errors_count_as_no_problem(make_root):
    root = make_root("a")
    root.git_manager.has_merge_commits_between.side_effect = GitRepositoryError("bad revision")

    assert not has_rebase_over_merge_problem(root, "origin/main", "main")


def test_merge_updaters_are_not_checked(make_root, notifier):
    root = make_root("a")
    root.git_manager.has_merge_commits_between.return_value = True
    resolver = ConflictResolver(notifier=notifier)
    guard = RebaseOverMergeGuard(NoOpPrompt(), UpdaterFactory(resolver, notifier))

    assert guard.find_problematic_roots({root: MergeUpdater(root, PAIR, resolver, notifier)}) == []


def test_merge_instead_replaces_only_affected_roots(make_root, notifier):
    factory, merged, linear, updaters, tracked = setup_updaters(make_root, notifier)
    guard = RebaseOverMergeGuard(FixedDecisionPrompt(RebaseOverMergeDecision.MERGE_INSTEAD), factory)

    result = guard.apply(updaters, tracked)

    assert isinstance(result[merged], MergeUpdater)
    assert result[merged].source_and_target == PAIR
    assert result[linear] is updaters[linear]
    assert isinstance(updaters[merged], RebaseUpdater)


def test_cancel_decision(make_root, notifier):
    factory, _, _, updaters, tracked = setup_updaters(make_root, notifier)
    guard = RebaseOverMergeGuard(FixedDecisionPrompt(RebaseOverMergeDecision.CANCEL_OPERATION), factory)

    assert guard.apply(updaters, tracked) is None


def test_rebase_anyway_keeps_updaters(make_root, notifier):
    factory, _, _, updaters, tracked = setup_updaters(make_root, notifier)
    guard = RebaseOverMergeGuard(FixedDecisionPrompt(RebaseOverMergeDecision.REBASE_ANYWAY), factory)

    assert guard.apply(updaters, tracked) == updaters


def test_no_problem_does_not_prompt(make_root, notifier):
    factory, merged, _, updaters, tracked = setup_updaters(make_root, notifier)
    merged.git_manager.has_merge_commits_between.return_value = False
    prompt = FixedDecisionPrompt(RebaseOverMergeDecision.CANCEL_OPERATION)

    assert RebaseOverMergeGuard(prompt, factory).apply(updaters, tracked) is updaters
