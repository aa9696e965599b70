"""
Basic tests for the multi-repository update tool.
"""

import re

from lockstep_update import __version__
from lockstep_update import (
    UpdateProcess, UpdateSettings, UpdateResult, UpdateMethod, ChangesPolicy,
    BranchPair, RepoInfo, CancellationToken, UpdateError, GitManager,
    ConflictResolver, Notifier, LoggingNotifier,
)


def test_version_format():
    assert isinstance(__version__, str)
    assert __version__ != ""


def test_version_matches_semver():
    semver_pattern = r"^\d+\.\d+\.\d+$"
    assert re.match(semver_pattern, __version__)


def test_import():
    """Test that the package can be imported."""
    import lockstep_update
    assert lockstep_update is not None


def test_all_imports():
    """Test that all main classes can be imported."""
    for obj in (
        UpdateProcess, UpdateSettings, UpdateResult, UpdateMethod, ChangesPolicy,
        BranchPair, RepoInfo, CancellationToken, UpdateError, GitManager,
        ConflictResolver, Notifier, LoggingNotifier,
    ):
        assert obj is not None


def test_package_structure():
    """Test package structure and __all__ exports."""
    import lockstep_update

    for export in lockstep_update.__all__:
        assert hasattr(lockstep_update, export), f"Missing export: {export}"
