"""
UI-agnostic prompt interface for user interactions.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

from .models import RebaseOverMergeDecision, RepoInfo


class UserPrompt(ABC):
    """Abstract interface for prompting users for decisions."""

    @abstractmethod
    def choose_rebase_over_merge_decision(self, roots: List[RepoInfo]) -> RebaseOverMergeDecision:
        """
        Ask what to do when rebasing would flatten local merge commits.

        Args:
            roots: Roots whose unpushed commits contain merges

        Returns:
            RebaseOverMergeDecision indicating what the user wants to do
        """
        pass


class NoOpPrompt(UserPrompt):
    """No-operation prompt that always returns safe defaults."""

    def choose_rebase_over_merge_decision(self, roots: List[RepoInfo]) -> RebaseOverMergeDecision:
        return RebaseOverMergeDecision.MERGE_INSTEAD


class FixedDecisionPrompt(UserPrompt):
    """Prompt answering every question with a preconfigured decision."""

    def __init__(self, decision: RebaseOverMergeDecision) -> None:
        self.decision = decision

    def choose_rebase_over_merge_decision(self, roots: List[RepoInfo]) -> RebaseOverMergeDecision:
        return self.decision
