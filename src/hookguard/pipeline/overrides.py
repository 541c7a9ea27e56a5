"""Per-hook override parsing.

Lets operators control hook selection without editing the manifest:
- +hook → Force run (skip matcher)
- -hook → Force skip
- No prefix → Normal (matcher decides)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)


class HookOverride(Enum):
    """Override mode for a hook."""

    NORMAL = "normal"  # Matcher decides
    FORCE_RUN = "force_run"  # Skip matcher, always run
    FORCE_SKIP = "force_skip"  # Skip this hook entirely


@dataclass(frozen=True)
class OverrideSet:
    """Parsed override configuration.

    Attributes:
        overrides: Mapping of hook id to override mode
        raw: Original override string for debugging
    """

    overrides: dict[str, HookOverride] = field(default_factory=dict)
    raw: str = ""

    def get_override(self, hook_id: str) -> HookOverride:
        """Get override mode for a hook (NORMAL if not specified)."""
        return self.overrides.get(hook_id, HookOverride.NORMAL)

    def should_run(self, hook_id: str, matcher_result: bool) -> bool:
        """Combine the override for a hook with its matcher result."""
        override = self.get_override(hook_id)
        if override is HookOverride.NORMAL:
            return matcher_result
        return override is HookOverride.FORCE_RUN

    def __bool__(self) -> bool:
        return bool(self.overrides)


NO_OVERRIDES = OverrideSet()

_PREFIXES = {"+": HookOverride.FORCE_RUN, "-": HookOverride.FORCE_SKIP}


def parse_overrides(value: str | None) -> OverrideSet:
    """Parse an override string such as ``"+secret-scan,-docs"``.

    Entries are comma separated. A ``+`` prefix forces the hook to run, a
    ``-`` prefix skips it, and a bare id keeps the matcher in charge.
    Entries with an empty id are ignored.

    Examples:
        >>> parse_overrides("+secret-scan,-docs").get_override("docs")
        <HookOverride.FORCE_SKIP: 'force_skip'>
        >>> parse_overrides(None) is NO_OVERRIDES
        True
    """
    if not value:
        return NO_OVERRIDES

    raw = value.strip()
    overrides: dict[str, HookOverride] = {}
    for entry in filter(None, (part.strip() for part in raw.split(","))):
        mode = _PREFIXES.get(entry[0], HookOverride.NORMAL)
        hook_id = entry[1:].strip() if mode is not HookOverride.NORMAL else entry
        if hook_id:
            overrides[hook_id] = mode

    if overrides:
        logger.debug("Parsed hook overrides: %s", overrides)
    return OverrideSet(overrides=overrides, raw=raw)
