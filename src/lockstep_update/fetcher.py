"""
Fetching of update roots before they are updated.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

from .models import CancellationToken, GitRepositoryError, RepoInfo
from .notifier import Notifier


logger = logging.getLogger(__name__)


class GitFetcher:
    """Fetches the remotes that update roots pull from."""

    def __init__(self, notifier: Notifier, cancellation: Optional[CancellationToken] = None) -> None:
        self.notifier = notifier
        self.cancellation = cancellation or CancellationToken()

    def fetch_roots_and_notify(
        self, roots: Sequence[RepoInfo], failure_title: str, notify_success: bool = False
    ) -> bool:
        """
        Fetch all given roots, reporting every failure in one notification.

        Returns:
            True if all roots were fetched
        """
        errors: Dict[str, str] = {}
        for root in roots:
            if self.cancellation.is_cancelled:
                logger.info("Fetch cancelled")
                return False
            try:
                remotes = self._remotes_to_fetch(root)
            except GitRepositoryError as e:
                logger.warning(f"Could not find remotes to fetch for {root.name}: {e}")
                errors[root.name] = str(e)
                continue
            for remote in remotes:
                try:
                    root.git_manager.fetch_remote(remote)
                except GitRepositoryError as e:
                    logger.warning(f"Failed to fetch {remote} for {root.name}: {e}")
                    errors[f"{root.name} ({remote})"] = str(e)

        if errors:
            body = "\n".join(f"{name}: {message}" for name, message in errors.items())
            self.notifier.notify_error(failure_title, body)
            return False

        if notify_success:
            self.notifier.notify_info("Fetched successfully", ", ".join(r.name for r in roots))
        return True

    def _remotes_to_fetch(self, root: RepoInfo) -> List[str]:
        """The tracked remote of the current branch, or every remote without tracking."""
        gm = root.git_manager
        branch = gm.get_current_branch()
        if branch is not None:
            tracking = gm.get_tracking_info(branch)
            # "." means the branch tracks another local branch
            if tracking is not None and tracking[0] != ".":
                return [tracking[0]]
        return gm.list_remotes()
