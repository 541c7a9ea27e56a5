"""Hook registry backed by immutable, versioned snapshots.

Writers build a complete new snapshot and publish it with a single reference
swap, so a pipeline run that grabbed a snapshot keeps a consistent rule set
for its whole lifetime.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from hookguard.pipeline.cache import PatternCache
from hookguard.pipeline.errors import DuplicateHookError
from hookguard.pipeline.overrides import NO_OVERRIDES, OverrideSet

if TYPE_CHECKING:
    from hookguard.pipeline.event import Event
    from hookguard.pipeline.hook import HookDescriptor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegistrySnapshot:
    """Read-only view of the registered hooks.

    Attributes:
        hooks: Descriptors in registration order
        version: Monotonic snapshot version
    """

    hooks: tuple[HookDescriptor, ...] = ()
    version: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "_by_id", {h.id: h for h in self.hooks})

    def get(self, hook_id: str) -> HookDescriptor | None:
        return self._by_id.get(hook_id)  # type: ignore[attr-defined]

    def __contains__(self, hook_id: object) -> bool:
        return hook_id in self._by_id  # type: ignore[attr-defined]

    def __len__(self) -> int:
        return len(self.hooks)

    def ordered(self) -> list[HookDescriptor]:
        """Descriptors sorted by tier, then registration order."""
        return sorted(self.hooks, key=lambda h: h.priority_tier.rank)

    def hooks_for(
        self,
        event: Event,
        cache: PatternCache,
        overrides: OverrideSet = NO_OVERRIDES,
    ) -> list[HookDescriptor]:
        """Enabled hooks applicable to the event, in scheduling order.

        Args:
            event: Event being processed
            cache: Pattern cache used by pattern matchers
            overrides: Force-run / force-skip overrides

        Returns:
            Descriptors ordered by tier, then registration order
        """
        selected: list[HookDescriptor] = []
        for descriptor in self.ordered():
            if not descriptor.enabled or not descriptor.accepts_phase(event.phase.value):
                continue
            if overrides and not overrides.should_run(descriptor.id, True):
                logger.debug("Hook '%s' skipped (override)", descriptor.id)
                continue
            if overrides.should_run(descriptor.id, False) or _safe_match(descriptor, event, cache):
                selected.append(descriptor)
        return selected


def _safe_match(descriptor: HookDescriptor, event: Event, cache: PatternCache) -> bool:
    """Evaluate a matcher; a failing matcher means the hook does not apply."""
    try:
        return descriptor.matcher(event, cache, descriptor.id)
    except Exception as e:
        logger.warning(
            "Matcher for hook '%s' failed, skipping hook: %s: %s",
            descriptor.id,
            type(e).__name__,
            str(e),
        )
        return False


def _check_unique(hooks: Iterable[HookDescriptor]) -> tuple[HookDescriptor, ...]:
    seen: set[str] = set()
    result = []
    for descriptor in hooks:
        if descriptor.id in seen:
            raise DuplicateHookError(descriptor.id)
        seen.add(descriptor.id)
        result.append(descriptor)
    return tuple(result)


class HookRegistry:
    """Process-wide registry of hook descriptors.

    Reads (``snapshot``, ``hooks_for``) never lock. Writes are serialized
    and publish a new snapshot atomically.
    """

    def __init__(
        self,
        hooks: Iterable[HookDescriptor] = (),
        *,
        cache: PatternCache | None = None,
        overrides: OverrideSet = NO_OVERRIDES,
    ) -> None:
        """Initialize registry.

        Args:
            hooks: Initial descriptors
            cache: Pattern cache (a private one is created if omitted)
            overrides: Force-run / force-skip overrides

        Raises:
            DuplicateHookError: If two descriptors share an id
        """
        self.cache = cache if cache is not None else PatternCache()
        self.overrides = overrides
        self._lock = threading.Lock()
        self._snapshot = RegistrySnapshot(_check_unique(hooks), version=1)

    @property
    def snapshot(self) -> RegistrySnapshot:
        return self._snapshot

    @property
    def version(self) -> int:
        return self._snapshot.version

    def __len__(self) -> int:
        return len(self._snapshot)

    def __contains__(self, hook_id: object) -> bool:
        return hook_id in self._snapshot

    def get(self, hook_id: str) -> HookDescriptor | None:
        return self._snapshot.get(hook_id)

    def hooks_for(self, event: Event) -> list[HookDescriptor]:
        """Enabled hooks applicable to the event, ordered by tier then registration."""
        return self._snapshot.hooks_for(event, self.cache, self.overrides)

    def register(self, descriptor: HookDescriptor) -> None:
        """Add a hook.

        Raises:
            DuplicateHookError: If the id is already registered; the
                registry is left unchanged
        """
        self.register_all([descriptor])

    def register_all(self, descriptors: Iterable[HookDescriptor]) -> None:
        """Add several hooks, all or nothing.

        Raises:
            DuplicateHookError: If any id collides; nothing is registered
        """
        with self._lock:
            current = self._snapshot
            hooks = _check_unique([*current.hooks, *descriptors])
            self._publish(hooks, current)

    def reload(self, descriptors: Iterable[HookDescriptor]) -> RegistrySnapshot:
        """Replace the full descriptor set atomically.

        Cached patterns of hooks that were removed, changed or disabled are
        invalidated.

        Raises:
            DuplicateHookError: If two descriptors share an id; the previous
                snapshot stays active
        """
        hooks = _check_unique(descriptors)
        with self._lock:
            current = self._snapshot
            snapshot = self._publish(hooks, current)
            for old in current.hooks:
                new = snapshot.get(old.id)
                if new is None or new != old or not new.enabled:
                    self.cache.invalidate(old.id)
        logger.info("Hook registry reloaded: %d hook(s), version %d", len(snapshot), snapshot.version)
        return snapshot

    def set_enabled(self, hook_id: str, enabled: bool) -> None:
        """Enable or disable a registered hook.

        Raises:
            KeyError: If the hook is not registered
        """
        with self._lock:
            current = self._snapshot
            descriptor = current.get(hook_id)
            if descriptor is None:
                raise KeyError(hook_id)
            if descriptor.enabled == enabled:
                return
            replaced = dataclasses.replace(descriptor, enabled=enabled)
            self._publish(tuple(replaced if h.id == hook_id else h for h in current.hooks), current)
            self.cache.invalidate(hook_id)
        logger.info("Hook '%s' %s", hook_id, "enabled" if enabled else "disabled")

    def enable(self, hook_id: str) -> None:
        self.set_enabled(hook_id, True)

    def disable(self, hook_id: str) -> None:
        self.set_enabled(hook_id, False)

    def _publish(self, hooks: tuple[HookDescriptor, ...], current: RegistrySnapshot) -> RegistrySnapshot:
        # Caller holds self._lock
        snapshot = RegistrySnapshot(hooks, version=current.version + 1)
        self._snapshot = snapshot
        return snapshot
