"""
Integration tests running updates against real repositories.
"""

import shutil
from pathlib import Path

import pytest
from git import Repo

from lockstep_update.git_manager import GitManager
from lockstep_update.models import UpdateMethod, UpdateResult
from lockstep_update.notifier import RecordingNotifier
from lockstep_update.settings import UpdateSettings
from lockstep_update.update_process import UpdateProcess


pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git binary not available")


def write(repo: Repo, name: str, content: str) -> None:
    (Path(repo.working_dir) / name).write_text(content)


def commit_file(repo: Repo, name: str, content: str, message: str) -> None:
    write(repo, name, content)
    repo.git.add(name)
    repo.git.commit("-m", message)


@pytest.fixture()
def origin(tmp_path, monkeypatch):
    """A bare repository with one commit on main."""
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    for var in ("GIT_AUTHOR_NAME", "GIT_COMMITTER_NAME"):
        monkeypatch.setenv(var, "Test User")
    for var in ("GIT_AUTHOR_EMAIL", "GIT_COMMITTER_EMAIL"):
        monkeypatch.setenv(var, "test@example.com")

    seed = Repo.init(tmp_path / "seed")
    commit_file(seed, "a.txt", "one\n", "initial")
    seed.git.branch("-M", "main")
    Repo.clone_from(seed.working_dir, tmp_path / "origin.git", bare=True)
    return tmp_path / "origin.git"


@pytest.fixture()
def clone(origin, tmp_path):
    def factory(name: str) -> Repo:
        return Repo.clone_from(str(origin), tmp_path / name)

    return factory


def push_change(clone, name: str, content: str) -> None:
    other = clone("other-" + name.replace(".", "-"))
    commit_file(other, name, content, f"add {name}")
    other.git.push("origin", "main")


def run_update(paths, method, notifier=None):
    roots = [GitManager(Path(p.working_dir)).get_repo_info() for p in paths]
    process = UpdateProcess(roots, UpdateSettings(update_method=method), notifier=notifier or RecordingNotifier())
    return process, process.update()


def test_nothing_to_update(clone):
    work = clone("work")

    _, result = run_update([work], UpdateMethod.MERGE)

    assert result is UpdateResult.NOTHING_TO_UPDATE


def test_merge_keeps_unrelated_local_changes(clone):
    work = clone("work")
    push_change(clone, "b.txt", "remote\n")
    write(work, "a.txt", "local edit\n")

    _, result = run_update([work], UpdateMethod.MERGE)

    assert result is UpdateResult.SUCCESS
    assert (Path(work.working_dir) / "b.txt").read_text() == "remote\n"
    assert (Path(work.working_dir) / "a.txt").read_text() == "local edit\n"
    assert work.git.stash("list") == ""


def test_rebase_stashes_and_restores_local_changes(clone):
    work = clone("work")
    push_change(clone, "b.txt", "remote\n")
    commit_file(work, "c.txt", "local commit\n", "local work")
    write(work, "a.txt", "uncommitted\n")

    _, result = run_update([work], UpdateMethod.REBASE)

    assert result is UpdateResult.SUCCESS
    assert work.head.commit.parents[0] == work.commit("origin/main")
    assert work.head.commit.message.strip() == "local work"
    assert (Path(work.working_dir) / "a.txt").read_text() == "uncommitted\n"
    assert work.git.stash("list") == ""


def test_rebase_fast_forwards_with_local_changes(clone):
    work = clone("work")
    push_change(clone, "b.txt", "remote\n")
    write(work, "a.txt", "uncommitted\n")

    _, result = run_update([work], UpdateMethod.REBASE)

    assert result is UpdateResult.SUCCESS
    assert work.head.commit == work.commit("origin/main")
    assert (Path(work.working_dir) / "a.txt").read_text() == "uncommitted\n"


def test_detached_root_is_skipped(clone):
    detached, work = clone("detached"), clone("work")
    detached.git.checkout("--detach")
    push_change(clone, "b.txt", "remote\n")

    process, result = run_update([detached, work], UpdateMethod.MERGE)

    assert result is UpdateResult.SUCCESS
    assert [(r.name, reason) for r, reason in process.skipped_roots.items()] == [("detached", "detached HEAD")]
    assert (Path(work.working_dir) / "b.txt").exists()
    assert not (Path(detached.working_dir) / "b.txt").exists()


def test_unresolved_merge_conflict_keeps_changes_stashed(clone):
    work = clone("work")
    push_change(clone, "a.txt", "remote\n")
    commit_file(work, "a.txt", "local\n", "local change to a")
    write(work, "a.txt", "local, uncommitted\n")
    notifier = RecordingNotifier()

    _, result = run_update([work], UpdateMethod.MERGE, notifier)

    assert result is UpdateResult.INCOMPLETE
    assert GitManager(Path(work.working_dir)).is_merge_in_progress()
    assert len(work.git.stash("list").splitlines()) == 1
    assert "Local changes were not restored" in notifier.titles


def test_merge_saves_local_changes_in_file_with_space(clone):
    push_change(clone, "my notes.txt", "one\ntwo\nthree\nfour\nfive\n")
    work = clone("work")
    upstream = clone("upstream")
    commit_file(upstream, "my notes.txt", "ONE\ntwo\nthree\nfour\nfive\n", "edit first line")
    upstream.git.push("origin", "main")
    write(work, "my notes.txt", "one\ntwo\nthree\nfour\nFIVE\n")

    _, result = run_update([work], UpdateMethod.MERGE)

    assert result is UpdateResult.SUCCESS
    assert (Path(work.working_dir) / "my notes.txt").read_text() == "ONE\ntwo\nthree\nfour\nFIVE\n"
    assert work.git.stash("list") == ""
