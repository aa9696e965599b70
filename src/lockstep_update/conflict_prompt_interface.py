"""
UI-agnostic interface for conflict resolution prompting.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List

from .models import RepoInfo


class ConflictPrompt(ABC):
    """Abstract interface for prompting users during conflict resolution."""

    @abstractmethod
    def prompt_for_conflict_resolution(
        self,
        conflicts: Dict[RepoInfo, List[Path]],
        description: str,
        reverse: bool,
    ) -> bool:
        """
        Prompt user to resolve conflicts and wait for confirmation.

        Args:
            conflicts: Unmerged files per root
            description: Why the conflicts must be resolved now
            reverse: True when "ours"/"theirs" are swapped, as during a rebase

        Returns:
            True if user indicates conflicts are resolved, False to abort
        """
        pass


class NoOpConflictPrompt(ConflictPrompt):
    """No-operation conflict prompt that always aborts."""

    def prompt_for_conflict_resolution(
        self,
        conflicts: Dict[RepoInfo, List[Path]],
        description: str,
        reverse: bool,
    ) -> bool:
        return False
