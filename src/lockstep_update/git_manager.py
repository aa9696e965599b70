"""
Git repository management and operations.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Tuple
from git import Repo, InvalidGitRepositoryError, NoSuchPathError
from git.exc import GitCommandError

from .models import GitRepositoryError, RepoInfo


logger = logging.getLogger(__name__)

# Fragments of git's stderr that mean the working tree blocked the operation
_OVERWRITTEN_MARKERS = (
    "would be overwritten by merge",
    "would be overwritten by checkout",
    "untracked working tree files would be",
    "Please commit your changes or stash them",
    "cannot rebase: You have unstaged changes",
    "cannot pull with rebase",
)


class GitManager:
    """Manages Git operations for a single update root."""

    def __init__(self, repo_path: Optional[Path] = None) -> None:
        """Initialize Git manager with optional repository path."""
        self.repo_path = (repo_path or Path.cwd()).resolve()
        self._repo: Optional[Repo] = None

    @property
    def repo(self) -> Repo:
        """Get the Git repository instance."""
        if self._repo is None:
            self._repo = self._discover_repository()
        return self._repo

    def _discover_repository(self) -> Repo:
        """Discover the Git repository from current or specified path."""
        search_path = self.repo_path

        logger.debug(f"Discovering repository in: {search_path}")
        # Walk up the directory tree to find a Git repository
        while search_path != search_path.parent:
            try:
                repo = Repo(search_path)
                logger.info(f"Found Git repository at: {search_path}")
                return repo
            except (InvalidGitRepositoryError, NoSuchPathError):
                search_path = search_path.parent

        raise GitRepositoryError(
            f"No Git repository found at {self.repo_path} or any parent directory"
        )

    def get_repo_info(self) -> RepoInfo:
        """Get repository information for this instance's repo."""
        repo_path = Path(self.repo.working_dir)
        return RepoInfo(path=repo_path, name=repo_path.name, git_manager=self)

    # --- Branch and tracking state ---
    def get_current_branch(self) -> Optional[str]:
        """Get the current branch name, or None when HEAD is detached."""
        try:
            if self.repo.head.is_detached:
                return None
            return self.repo.active_branch.name
        except TypeError:
            # GitPython raises TypeError for a detached HEAD on some versions
            return None
        except Exception as e:
            logger.error(f"Error getting current branch: {e}")
            raise GitRepositoryError(f"Could not determine current branch: {e}")

    def get_tracking_info(self, branch_name: str) -> Optional[Tuple[str, str]]:
        """Return (remote_name, remote_branch) tracked by a local branch, if configured.

        The remote branch is returned in short form, e.g. ``origin/main``.
        """
        try:
            head = self.repo.heads[branch_name]
        except IndexError:
            logger.debug(f"Branch {branch_name} not found in {self.repo_path}")
            return None
        try:
            tracking = head.tracking_branch()
        except Exception as e:
            logger.error(f"Error reading tracking info for {branch_name}: {e}")
            raise GitRepositoryError(f"Could not read tracking info for {branch_name}: {e}")
        if tracking is None:
            return None
        return tracking.remote_name, tracking.name

    def list_remotes(self) -> List[str]:
        """List configured remote names."""
        try:
            return [r.name for r in self.repo.remotes]
        except Exception as e:
            logger.error(f"Error listing remotes: {e}")
            return []

    def get_config_value(self, key: str) -> Optional[str]:
        """Return a git config value (e.g. ``pull.rebase``), or None when unset."""
        try:
            value = self.repo.git.config("--get", key).strip()
            return value or None
        except GitCommandError:
            # git config exits with 1 when the key is unset
            return None

    # --- Unfinished operations ---
    def is_rebase_in_progress(self) -> bool:
        """Check if a rebase is currently in progress."""
        try:
            git_dir = Path(self.repo.git_dir)

            # Check for rebase-related files
            rebase_files = [git_dir / "rebase-merge", git_dir / "rebase-apply"]

            return any(f.exists() for f in rebase_files)
        except Exception as e:
            logger.error(f"Error checking rebase status: {e}")
            return False

    def is_merge_in_progress(self) -> bool:
        """Check if a merge is waiting to be committed."""
        try:
            return (Path(self.repo.git_dir) / "MERGE_HEAD").exists()
        except Exception as e:
            logger.error(f"Error checking merge status: {e}")
            return False

    def get_conflict_files(self) -> List[Path]:
        """Get list of files with merge conflicts."""
        try:
            output = self.repo.git.diff("--name-only", "--diff-filter=U")
            return [Path(self.repo.working_dir) / Path(f.strip()) for f in output.split("\n") if f.strip()]
        except Exception as e:
            logger.error(f"Error getting conflict files: {e}")
            return []

    def has_unmerged_files(self) -> bool:
        """Return True if the index holds unmerged entries."""
        try:
            return bool(self.repo.git.ls_files("-u").strip())
        except Exception as e:
            logger.error(f"Error listing unmerged files: {e}")
            return False

    # --- Working tree / index cleanliness ---
    def has_local_changes(self) -> bool:
        """Return True if there are staged or unstaged changes (untracked ignored)."""
        try:
            return self.repo.is_dirty(index=True, working_tree=True, untracked_files=False)
        except Exception as e:
            logger.error(f"Error checking local changes: {e}")
            raise GitRepositoryError(f"Could not check local changes: {e}")

    def get_dirty_paths(self) -> List[str]:
        """Return list of paths that are staged or unstaged (untracked ignored)."""
        try:
            # NUL-separated entries keep paths unquoted
            entries = self.repo.git.status("--porcelain", "-z").split("\0")
        except Exception as e:
            logger.error(f"Error listing dirty paths: {e}")
            raise GitRepositoryError(f"Could not list local changes: {e}")

        dirty: List[str] = []
        i = 0
        while i < len(entries):
            entry = entries[i]
            i += 1
            if len(entry) < 4:
                continue
            code, path = entry[:2], entry[3:]
            if code == "??":
                continue
            # Renames and copies are followed by a field with the source path
            if "R" in code or "C" in code:
                if i < len(entries) and entries[i]:
                    dirty.append(entries[i])
                i += 1
            dirty.append(path)
        return dirty

    # --- History queries ---
    def has_commits_between(self, base: str, head: str) -> bool:
        """Return True if ``head`` has commits that are not reachable from ``base``."""
        try:
            output = self.repo.git.rev_list("-1", f"{base}..{head}")
            return bool(output.strip())
        except GitCommandError as e:
            logger.error(f"Error comparing {base}..{head}: {e}")
            raise GitRepositoryError(f"Failed to compare {base} and {head}: {e}")

    def has_merge_commits_between(self, base: str, head: str) -> bool:
        """Return True if any merge commit lies in ``base..head``."""
        try:
            output = self.repo.git.rev_list("--merges", "-1", f"{base}..{head}")
            return bool(output.strip())
        except GitCommandError as e:
            logger.error(f"Error looking for merges in {base}..{head}: {e}")
            raise GitRepositoryError(f"Failed to inspect merges between {base} and {head}: {e}")

    def get_changed_paths_between(self, base: str, head: str) -> List[str]:
        """Paths changed on ``head`` since it diverged from ``base``."""
        try:
            output = self.repo.git.diff("--name-only", "-z", f"{base}...{head}")
            return [f for f in output.split("\0") if f]
        except GitCommandError as e:
            logger.error(f"Error listing changes {base}...{head}: {e}")
            raise GitRepositoryError(f"Failed to list changes between {base} and {head}: {e}")

    # --- Remote synchronization helpers ---
    def fetch_remote(self, remote_name: str = "origin") -> None:
        """Fetch updates from a remote."""
        try:
            self.repo.remotes[remote_name].fetch(prune=True)
            logger.info(f"Fetched updates from {remote_name} in {self.repo.working_dir}")
        except Exception as e:
            logger.error(f"Failed to fetch from {remote_name}: {e}")
            raise GitRepositoryError(f"Failed to fetch from {remote_name}: {e}")

    # --- Merge ---
    def merge(self, ref: str, *options: str) -> Tuple[bool, List[Path]]:
        """
        Merge ``ref`` into the current branch.

        Returns:
            Tuple of (success, conflict_files)
        """
        try:
            self.repo.git.merge(*options, ref)
            logger.info(f"Merged {ref} in {self.repo.working_dir}")
            return True, []
        except GitCommandError as e:
            conflict_files = self.get_conflict_files()
            if conflict_files:
                logger.warning(f"Merge has conflicts in files: {conflict_files}")
                return False, conflict_files
            logger.error(f"Merge of {ref} failed: {e}")
            raise GitRepositoryError(_describe_failure("Merge", ref, e))

    def fast_forward(self, ref: str) -> bool:
        """Fast-forward the current branch to ``ref``; False when not possible."""
        try:
            self.repo.git.merge("--ff-only", ref)
            logger.info(f"Fast-forwarded to {ref} in {self.repo.working_dir}")
            return True
        except GitCommandError as e:
            logger.info(f"Fast-forward to {ref} not possible in {self.repo.working_dir}: {e}")
            return False

    def commit_merge(self) -> None:
        """Commit a merge whose conflicts have been resolved."""
        try:
            # Avoid interactive editor prompt
            with self.repo.git.custom_environment(GIT_EDITOR="true"):
                self.repo.git.commit("--no-edit")
            logger.info(f"Committed merge in {self.repo.working_dir}")
        except GitCommandError as e:
            logger.error(f"Failed to commit merge: {e}")
            raise GitRepositoryError(f"Failed to commit merge: {e}")

    # --- Rebase ---
    def start_rebase(self, target_branch: str) -> Tuple[bool, List[Path]]:
        """
        Start a rebase operation.

        Returns:
            Tuple of (success, conflict_files)
        """
        try:
            working_dir = Path(self.repo.working_dir)
            logger.debug(f"Called 'git rebase {target_branch}' in {working_dir}")
            # Execute rebase via GitPython; errors raise GitCommandError
            with self.repo.git.custom_environment(GIT_EDITOR="true"):
                self.repo.git.rebase(target_branch)
            logger.info("Rebase completed successfully")
            return True, []
        except GitCommandError as e:
            # Check for conflicts
            conflict_files = self.get_conflict_files()
            if conflict_files:
                logger.warning(f"Rebase has conflicts in files: {conflict_files}")
                return False, conflict_files
            logger.error(f"Rebase failed: {e}")
            raise GitRepositoryError(_describe_failure("Rebase", target_branch, e))

    def continue_rebase(self) -> Tuple[bool, List[Path]]:
        """Continue a rebase after conflicts are resolved."""
        try:
            # Avoid interactive editor prompt
            with self.repo.git.custom_environment(GIT_EDITOR="true"):
                self.repo.git.rebase("--continue")
            logger.info("Rebase continued successfully")
            return True, []
        except GitCommandError as e:
            # Check for more conflicts
            conflict_files = self.get_conflict_files()
            if conflict_files:
                logger.warning(f"Rebase still has conflicts: {conflict_files}")
                return False, conflict_files
            logger.error(f"Rebase continue failed: {e}")
            raise GitRepositoryError(f"Rebase continue failed: {e}")

    def abort_rebase(self) -> None:
        """Abort a rebase operation."""
        try:
            self.repo.git.rebase("--abort")
            logger.info("Rebase aborted successfully")
        except GitCommandError as e:
            logger.error(f"Failed to abort rebase: {e}")
            raise GitRepositoryError(f"Failed to abort rebase: {e}")

    # --- Local change snapshots ---
    def stash_push(self, message: str) -> Optional[str]:
        """Stash local changes; return the stash commit, or None if nothing was stashed."""
        if not self.has_local_changes():
            return None
        try:
            self.repo.git.stash("push", "-m", message)
            sha = self.repo.git.rev_parse("stash@{0}").strip()
            logger.info(f"Stashed local changes in {self.repo.working_dir} as {sha[:8]}")
            return sha
        except GitCommandError as e:
            logger.error(f"Failed to stash changes: {e}")
            raise GitRepositoryError(f"Failed to stash local changes: {e}")

    def stash_pop(self, stash_sha: str) -> None:
        """Pop the stash entry recorded by ``stash_push``."""
        try:
            output = self.repo.git.stash("list", "--format=%H")
            entries = [ln.strip() for ln in output.splitlines() if ln.strip()]
            if stash_sha not in entries:
                raise GitRepositoryError(f"Stash entry {stash_sha[:8]} not found")
            index = entries.index(stash_sha)
            self.repo.git.stash("pop", f"stash@{{{index}}}")
            logger.info(f"Restored stash {stash_sha[:8]} in {self.repo.working_dir}")
        except GitCommandError as e:
            logger.error(f"Failed to pop stash {stash_sha[:8]}: {e}")
            raise GitRepositoryError(f"Failed to restore stashed changes: {e}")

    def stash_create(self, message: str) -> Optional[str]:
        """Create a stash commit without touching the stash list or the working tree."""
        try:
            sha = self.repo.git.stash("create", message).strip()
            return sha or None
        except GitCommandError as e:
            logger.error(f"Failed to create stash commit: {e}")
            raise GitRepositoryError(f"Failed to snapshot local changes: {e}")

    def stash_apply(self, commitish: str) -> None:
        """Apply a stash commit onto the working tree."""
        try:
            self.repo.git.stash("apply", commitish)
            logger.info(f"Applied {commitish} in {self.repo.working_dir}")
        except GitCommandError as e:
            logger.error(f"Failed to apply {commitish}: {e}")
            raise GitRepositoryError(f"Failed to apply saved changes {commitish}: {e}")

    def reset_hard(self, ref: str = "HEAD") -> None:
        try:
            self.repo.git.reset("--hard", ref)
        except GitCommandError as e:
            logger.error(f"Failed to reset to {ref}: {e}")
            raise GitRepositoryError(f"Failed to reset to {ref}: {e}")

    def update_ref(self, ref: str, target: str) -> None:
        try:
            self.repo.git.update_ref(ref, target)
            logger.debug(f"Updated ref {ref} -> {target}")
        except GitCommandError as e:
            logger.error(f"Failed to update ref {ref}: {e}")
            raise GitRepositoryError(f"Failed to update ref {ref}: {e}")

    def delete_ref(self, ref: str) -> None:
        try:
            self.repo.git.update_ref("-d", ref)
            logger.debug(f"Deleted ref {ref}")
        except GitCommandError as e:
            logger.error(f"Failed to delete ref {ref}: {e}")
            raise GitRepositoryError(f"Failed to delete ref {ref}: {e}")

    def list_refs(self, prefix: str) -> List[str]:
        """List full ref names under ``prefix`` (e.g. ``refs/lockstep-update/``)."""
        try:
            output = self.repo.git.for_each_ref("--format=%(refname)", prefix)
            return [ln.strip() for ln in output.splitlines() if ln.strip()]
        except GitCommandError as e:
            logger.error(f"Error listing refs under {prefix}: {e}")
            return []


def _describe_failure(operation: str, ref: str, error: GitCommandError) -> str:
    stderr = (getattr(error, "stderr", "") or "").strip()
    if any(marker in stderr for marker in _OVERWRITTEN_MARKERS):
        return f"{operation} of {ref} would overwrite local changes: {stderr}"
    return f"{operation} of {ref} failed: {stderr or error}"
