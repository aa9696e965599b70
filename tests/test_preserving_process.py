"""
Tests for saving and restoring local changes around an operation.
"""

from unittest.mock import MagicMock

import pytest

from lockstep_update.change_saver import (
    SHELF_PREFIX, ShelveChangesSaver, StashChangesSaver, create_saver, list_shelves, parse_shelf_ref,
)
from lockstep_update.models import ChangesPolicy, GitRepositoryError, PreservationError
from lockstep_update.preserving_process import PreservingProcess


class TestStashChangesSaver:
    def test_save_and_load(self, make_root, notifier):
        dirty, clean = make_root("dirty", local_changes=True), make_root("clean")
        saver = StashChangesSaver(notifier)

        saver.save_local_changes([dirty, clean])

        assert list(saver.saved) == [dirty]
        dirty.git_manager.stash_push.assert_called_once_with(saver.message)
        assert saver.message.startswith("Uncommitted changes before Update at ")

        saver.load()
        dirty.git_manager.stash_pop.assert_called_once_with("f00dcafe" * 5)
        clean.git_manager.stash_pop.assert_not_called()
        assert saver.saved == {}

    def test_failed_save_rolls_back(self, make_root, notifier):
        first, second = make_root("first", local_changes=True), make_root("second", local_changes=True)
        second.git_manager.stash_push.side_effect = GitRepositoryError("index.lock exists")
        saver = StashChangesSaver(notifier)

        with pytest.raises(PreservationError, match="second"):
            saver.save_local_changes([first, second])

        first.git_manager.stash_pop.assert_called_once()
        assert saver.saved == {}

    def test_failed_load_keeps_snapshot_and_continues(self, make_root, notifier):
        a, b = make_root("a", local_changes=True), make_root("b", local_changes=True)
        a.git_manager.stash_pop.side_effect = GitRepositoryError("conflict")
        saver = StashChangesSaver(notifier)
        saver.save_local_changes([a, b])

        with pytest.raises(PreservationError, match="a: "):
            saver.load()

        b.git_manager.stash_pop.assert_called_once()
        assert list(saver.saved) == [a]

    def test_not_restored_notification_names_snapshots(self, make_root, notifier):
        root = make_root("lib", local_changes=True)
        saver = StashChangesSaver(notifier)
        saver.save_local_changes([root])

        saver.notify_local_changes_are_not_restored()

        assert notifier.titles == ["Local changes were not restored"]
        assert "lib: stash f00dcafe" in notifier.notifications[0].body


class TestShelveChangesSaver:
    def test_shelve_and_restore(self, make_root, notifier):
        root = make_root("lib", local_changes=True)
        gm = root.git_manager
        saver = ShelveChangesSaver(notifier, session_id="20240101-120000")

        saver.save_local_changes([root])

        ref = f"{SHELF_PREFIX}/main/20240101-120000"
        assert saver.saved == {root: ref}
        gm.update_ref.assert_called_once_with(ref, "beefcafe" * 5)
        gm.reset_hard.assert_called_once_with("HEAD")
        gm.stash_push.assert_not_called()

        saver.load()
        gm.stash_apply.assert_called_once_with(ref)
        gm.delete_ref.assert_called_once_with(ref)

    def test_back_to_back_shelves_do_not_collide(self, notifier):
        first, second = ShelveChangesSaver(notifier), ShelveChangesSaver(notifier)

        assert first.make_shelf_ref("main") != second.make_shelf_ref("main")
        assert parse_shelf_ref(first.make_shelf_ref("main"))[1] == first.session_id

    def test_nothing_to_shelve(self, make_root, notifier):
        root = make_root("lib")
        saver = ShelveChangesSaver(notifier)

        saver.save_local_changes([root])

        assert saver.saved == {}
        root.git_manager.reset_hard.assert_not_called()

    def test_parse_shelf_ref(self):
        assert parse_shelf_ref(f"{SHELF_PREFIX}/feature/x/20240101-120000") == ("feature/x", "20240101-120000")
        assert parse_shelf_ref(f"{SHELF_PREFIX}/20240101-120000") is None
        assert parse_shelf_ref("refs/heads/main") is None

    def test_list_shelves_newest_first(self, make_root):
        root = make_root("lib")
        root.git_manager.list_refs.return_value = [
            f"{SHELF_PREFIX}/main/20240101-120000",
            f"{SHELF_PREFIX}/dev/20240301-090000",
            "refs/lockstep-update/other",
        ]

        entries = list_shelves(root.git_manager)

        assert [e[1:] for e in entries] == [("dev", "20240301-090000"), ("main", "20240101-120000")]
        root.git_manager.list_refs.assert_called_once_with(SHELF_PREFIX + "/")


def test_create_saver(notifier):
    assert isinstance(create_saver(ChangesPolicy.STASH, notifier), StashChangesSaver)
    assert isinstance(create_saver(ChangesPolicy.SHELVE, notifier), ShelveChangesSaver)
    assert create_saver(ChangesPolicy.NEVER, notifier) is None


class TestPreservingProcess:
    def test_saves_runs_and_restores(self, make_root, notifier):
        root = make_root("lib", local_changes=True)
        order = []
        root.git_manager.stash_push.side_effect = lambda message: order.append("save") or "sha1"
        root.git_manager.stash_pop.side_effect = lambda sha: order.append("restore")

        process = PreservingProcess([root], StashChangesSaver(notifier), notifier, lambda: order.append("run"))

        assert process.execute(lambda: True)
        assert order == ["save", "run", "restore"]

    def test_restore_predicate_false_leaves_changes_saved(self, make_root, notifier):
        root = make_root("lib", local_changes=True)
        operation = MagicMock()

        process = PreservingProcess([root], StashChangesSaver(notifier), notifier, operation)

        assert process.execute(lambda: False)
        operation.assert_called_once()
        root.git_manager.stash_pop.assert_not_called()
        assert notifier.titles == ["Local changes were not restored"]

    def test_predicate_evaluated_after_operation(self, make_root, notifier):
        root = make_root("lib", local_changes=True)
        state = {"incomplete": False}

        def operation():
            state["incomplete"] = True

        process = PreservingProcess([root], StashChangesSaver(notifier), notifier, operation)
        process.execute(lambda: not state["incomplete"])

        root.git_manager.stash_pop.assert_not_called()

    def test_save_failure_skips_operation(self, make_root, notifier):
        root = make_root("lib", local_changes=True)
        root.git_manager.stash_push.side_effect = GitRepositoryError("index.lock exists")
        operation = MagicMock()

        process = PreservingProcess([root], StashChangesSaver(notifier), notifier, operation)

        assert not process.execute(lambda: True)
        operation.assert_not_called()
        assert notifier.titles == ["Couldn't save uncommitted changes"]

    def test_restores_when_operation_raises(self, make_root, notifier):
        root = make_root("lib", local_changes=True)
        operation = MagicMock(side_effect=RuntimeError("boom"))

        process = PreservingProcess([root], StashChangesSaver(notifier), notifier, operation)

        with pytest.raises(RuntimeError):
            process.execute(lambda: True)
        root.git_manager.stash_pop.assert_called_once()

    def test_restore_failure_is_notified(self, make_root, notifier):
        root = make_root("lib", local_changes=True)
        root.git_manager.stash_pop.side_effect = GitRepositoryError("conflict")

        process = PreservingProcess([root], StashChangesSaver(notifier), notifier, MagicMock())

        assert process.execute(lambda: True)
        assert notifier.titles == ["Couldn't restore uncommitted changes"]

    def test_no_saver_just_runs(self, make_root, notifier):
        root = make_root("lib", local_changes=True)
        operation = MagicMock()

        assert PreservingProcess([root], None, notifier, operation).execute(lambda: False)
        operation.assert_called_once()
        assert notifier.notifications == []
