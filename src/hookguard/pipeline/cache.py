"""Process-wide cache of compiled hook matchers.

Compilation is lazy and happens at most once per ``(hook_id, pattern_id)``
until the hook is invalidated. Reads never take the lock.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

CacheKey = tuple[str, str]


@dataclass(frozen=True)
class PatternCacheEntry:
    """A compiled matcher owned by the cache."""

    hook_id: str
    pattern_id: str
    value: Any


class PatternCache:
    """Memoizes matcher construction per hook."""

    def __init__(self) -> None:
        self._entries: dict[CacheKey, PatternCacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get_or_compile(self, hook_id: str, pattern_id: str, builder: Callable[[], T]) -> T:
        """Return the cached matcher, building it on first use.

        Args:
            hook_id: Owning hook
            pattern_id: Pattern identifier, unique within the hook
            builder: Zero-argument factory for the matcher

        Returns:
            The compiled matcher

        Raises:
            Exception: Whatever ``builder`` raises; nothing is cached then
        """
        key = (hook_id, pattern_id)
        entry = self._entries.get(key)
        if entry is not None:
            self._hits += 1
            return entry.value

        with self._lock:
            # Double-check: another thread may have compiled it meanwhile
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                entry = PatternCacheEntry(hook_id, pattern_id, builder())
                self._entries = {**self._entries, key: entry}
                logger.debug("Compiled pattern '%s' for hook '%s'", pattern_id, hook_id)
            else:
                self._hits += 1
        return entry.value

    def invalidate(self, hook_id: str) -> int:
        """Drop every entry belonging to a hook.

        Returns:
            Number of entries removed
        """
        with self._lock:
            kept = {k: v for k, v in self._entries.items() if k[0] != hook_id}
            removed = len(self._entries) - len(kept)
            self._entries = kept
        if removed:
            logger.debug("Invalidated %d cached pattern(s) for hook '%s'", removed, hook_id)
        return removed

    def clear(self) -> None:
        """Drop all entries."""
        with self._lock:
            self._entries = {}

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> dict[str, int]:
        return {"size": len(self._entries), "hits": self._hits, "misses": self._misses}


class PatternScope:
    """Cache view bound to one hook, handed to handlers as ``params["patterns"]``."""

    def __init__(self, cache: PatternCache, hook_id: str) -> None:
        self._cache = cache
        self.hook_id = hook_id

    def get(self, pattern_id: str, builder: Callable[[], T]) -> T:
        return self._cache.get_or_compile(self.hook_id, pattern_id, builder)
