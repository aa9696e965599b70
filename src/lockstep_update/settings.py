"""
Run configuration for the update process.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from typing import Mapping, Optional

from .models import ChangesPolicy, UpdateError, UpdateMethod


logger = logging.getLogger(__name__)

ENV_METHOD = "LOCKSTEP_UPDATE_METHOD"
ENV_SYNC = "LOCKSTEP_UPDATE_SYNC"
ENV_CHANGES_POLICY = "LOCKSTEP_UPDATE_CHANGES_POLICY"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class UpdateSettings:
    """Settings passed explicitly into an UpdateProcess.

    sync_control: when enabled, every root must be on a tracked branch or the
    whole run is refused instead of skipping the offending roots.
    """

    update_method: UpdateMethod = UpdateMethod.BRANCH_DEFAULT
    sync_control: bool = False
    changes_policy: ChangesPolicy = ChangesPolicy.STASH
    check_rebase_over_merge: bool = True
    check_tracked_branch_existence: bool = True

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> UpdateSettings:
        """Build settings from LOCKSTEP_UPDATE_* environment variables."""
        env = os.environ if environ is None else environ
        settings = cls()

        method = env.get(ENV_METHOD)
        if method:
            settings = replace(settings, update_method=_parse_enum(UpdateMethod, method, ENV_METHOD))

        sync = env.get(ENV_SYNC)
        if sync is not None:
            settings = replace(settings, sync_control=_parse_bool(sync, ENV_SYNC))

        policy = env.get(ENV_CHANGES_POLICY)
        if policy:
            settings = replace(
                settings, changes_policy=_parse_enum(ChangesPolicy, policy, ENV_CHANGES_POLICY)
            )

        logger.debug(f"Settings from environment: {settings}")
        return settings

    def with_overrides(self, **overrides) -> UpdateSettings:
        """Return a copy with the given non-None fields replaced."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def _parse_enum(enum_cls, raw: str, source: str):
    value = raw.strip().lower().replace("_", "-")
    for member in enum_cls:
        if member.value == value:
            return member
    allowed = ", ".join(m.value for m in enum_cls)
    raise UpdateError(f"Invalid value {raw!r} for {source}; expected one of: {allowed}")


def _parse_bool(raw: str, source: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise UpdateError(f"Invalid boolean {raw!r} for {source}")
