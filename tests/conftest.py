"""
Shared fixtures: roots backed by mocked GitManagers.
"""

from pathlib import Path
from typing import Optional, Tuple
from unittest.mock import MagicMock

import pytest

from lockstep_update.git_manager import GitManager
from lockstep_update.models import RepoInfo
from lockstep_update.notifier import RecordingNotifier


def make_git_manager(
    branch: Optional[str] = "main",
    tracking: Optional[Tuple[str, str]] = ("origin", "origin/main"),
    behind: bool = True,
    local_changes: bool = False,
) -> MagicMock:
    """A GitManager mock describing a clean root on a tracked branch."""
    gm = MagicMock(spec=GitManager)
    gm.get_current_branch.return_value = branch
    gm.get_tracking_info.return_value = tracking
    gm.list_remotes.return_value = ["origin"]
    gm.get_config_value.return_value = None
    gm.is_rebase_in_progress.return_value = False
    gm.is_merge_in_progress.return_value = False
    gm.has_unmerged_files.return_value = False
    gm.get_conflict_files.return_value = []
    gm.has_commits_between.return_value = behind
    gm.has_merge_commits_between.return_value = False
    gm.has_local_changes.return_value = local_changes
    gm.get_dirty_paths.return_value = ["dirty.txt"] if local_changes else []
    gm.get_changed_paths_between.return_value = []
    gm.merge.return_value = (True, [])
    gm.fast_forward.return_value = False
    gm.start_rebase.return_value = (True, [])
    gm.continue_rebase.return_value = (True, [])
    gm.stash_push.side_effect = lambda message: "f00dcafe" * 5 if gm.has_local_changes() else None
    gm.stash_create.side_effect = lambda message: "beefcafe" * 5 if gm.has_local_changes() else None
    gm.list_refs.return_value = []
    return gm


@pytest.fixture()
def make_root(tmp_path: Path):
    """Factory creating a RepoInfo whose git_manager is a configured mock."""

    def factory(name: str, **state) -> RepoInfo:
        return RepoInfo(path=tmp_path / name, name=name, git_manager=make_git_manager(**state))

    return factory


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch):
    """Keep CLI logs in tmp and ignore settings from the developer's environment."""
    monkeypatch.setenv("LOCKSTEP_UPDATE_LOG", str(tmp_path / "logs" / "lockstep-update.log"))
    for var in ("LOCKSTEP_UPDATE_METHOD", "LOCKSTEP_UPDATE_SYNC", "LOCKSTEP_UPDATE_CHANGES_POLICY"):
        monkeypatch.delenv(var, raising=False)
