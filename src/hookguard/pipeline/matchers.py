"""Matchers deciding whether a hook applies to an event.

A matcher is any callable ``(event, cache, hook_id) -> bool``. Pattern based
matchers compile their regexes through the shared PatternCache.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from hookguard.pipeline.cache import PatternCache
    from hookguard.pipeline.event import Event


MatchFn = Callable[["Event"], bool]

MATCH_ALL = ("", "*")


@dataclass(frozen=True)
class PatternMatcher:
    """Tool-name and file-path pattern matcher.

    Attributes:
        tool_pattern: Case-insensitive regex that must fully match the tool
            name. ``""`` or ``"*"`` match every tool.
        path_pattern: Optional case-insensitive regex searched in the file
            path. Events without a file path never match it.
    """

    tool_pattern: str = "*"
    path_pattern: str | None = None

    def validate(self) -> None:
        """Compile both patterns once to surface syntax errors.

        Raises:
            re.error: If a pattern is not a valid regex
        """
        if self.tool_pattern not in MATCH_ALL:
            re.compile(self.tool_pattern)
        if self.path_pattern:
            re.compile(self.path_pattern)

    def __call__(self, event: Event, cache: PatternCache, hook_id: str) -> bool:
        if self.tool_pattern not in MATCH_ALL:
            tool_re = cache.get_or_compile(
                hook_id, f"tool:{self.tool_pattern}", lambda: re.compile(self.tool_pattern, re.IGNORECASE)
            )
            if not tool_re.fullmatch(event.tool_name):
                return False

        if self.path_pattern:
            if not event.file_path:
                return False
            path_re = cache.get_or_compile(
                hook_id, f"path:{self.path_pattern}", lambda: re.compile(self.path_pattern, re.IGNORECASE)
            )
            if not path_re.search(event.file_path):
                return False

        return True

    def describe(self) -> str:
        tool = self.tool_pattern or "*"
        return f"{tool} @ {self.path_pattern}" if self.path_pattern else tool


@dataclass(frozen=True)
class PredicateMatcher:
    """Wraps a plain ``event -> bool`` predicate."""

    predicate: MatchFn

    def __call__(self, event: Event, cache: PatternCache, hook_id: str) -> bool:
        return bool(self.predicate(event))

    def describe(self) -> str:
        return getattr(self.predicate, "__name__", "predicate")


def always(event: Event) -> bool:
    """Default predicate that accepts every event."""
    return True


def tool_is(*tools: str) -> MatchFn:
    """Predicate accepting events for the given tool names (case-insensitive)."""
    wanted = {t.lower() for t in tools}

    def predicate(event: Event) -> bool:
        return event.tool_name.lower() in wanted

    predicate.__name__ = f"tool_is({', '.join(tools)})"
    return predicate


def has_file_path(event: Event) -> bool:
    """Check if the operation targets a file."""
    return bool(event.file_path)


def has_content(event: Event) -> bool:
    """Check if the operation carries new content."""
    return event.content is not None
