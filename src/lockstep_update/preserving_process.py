"""
Runs an operation with local changes put aside and restored afterwards.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable, Iterator, Optional, Sequence

from .change_saver import LocalChangesSaver
from .models import PreservationError, RepoInfo
from .notifier import Notifier


logger = logging.getLogger(__name__)


class PreservingProcess:
    """Save local changes of some roots, run an operation, then restore them.

    Restoration is all or nothing: the restore decision is taken once after the
    operation finishes, on every exit path, and covers every saved root.
    """

    def __init__(
        self,
        roots_to_save: Sequence[RepoInfo],
        saver: Optional[LocalChangesSaver],
        notifier: Notifier,
        operation: Callable[[], None],
    ) -> None:
        self.roots_to_save = list(roots_to_save)
        self.saver = saver
        self.notifier = notifier
        self.operation = operation

    def execute(self, can_restore: Optional[Callable[[], bool]] = None) -> bool:
        """
        Run the operation under save/restore.

        Args:
            can_restore: Consulted after the operation; when it returns False the
                saved changes are left in place and the user is told where they are

        Returns:
            True if the operation ran, False if saving failed and it was skipped
        """
        try:
            with self.preserved(can_restore):
                self.operation()
        except PreservationError as e:
            logger.info(f"Operation skipped: {e}")
            return False
        return True

    @contextmanager
    def preserved(self, can_restore: Optional[Callable[[], bool]] = None) -> Iterator[None]:
        """Context manager form of ``execute``; raises PreservationError if saving fails."""
        self._save()
        try:
            yield
        finally:
            if can_restore is None or can_restore():
                self._load()
            elif self.saver is not None:
                logger.info("Local changes are not restored")
                self.saver.notify_local_changes_are_not_restored()

    def _save(self) -> None:
        if self.saver is None or not self.roots_to_save:
            return
        logger.info(f"Saving local changes in {', '.join(r.name for r in self.roots_to_save)}")
        try:
            self.saver.save_local_changes(self.roots_to_save)
        except PreservationError as e:
            self.notifier.notify_error("Couldn't save uncommitted changes", str(e))
            raise

    def _load(self) -> None:
        if self.saver is None or not self.saver.saved:
            return
        logger.info("Restoring local changes")
        try:
            self.saver.load()
        except PreservationError as e:
            self.notifier.notify_important_error("Couldn't restore uncommitted changes", str(e))
