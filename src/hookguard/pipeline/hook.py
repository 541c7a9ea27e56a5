"""Hook descriptors and the @hook decorator.

Defines the HookDescriptor class and a catalog of decorated handlers that
manifests can refer to by id.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Union

from hookguard.pipeline.errors import InvalidDescriptorError
from hookguard.pipeline.matchers import PatternMatcher, PredicateMatcher, always

if TYPE_CHECKING:
    from hookguard.pipeline.cache import PatternCache
    from hookguard.pipeline.event import Event
    from hookguard.pipeline.verdict import HookResult

logger = logging.getLogger(__name__)


class HookPhase(str, Enum):
    """Phases a hook subscribes to."""

    PRE = "pre"
    POST = "post"
    BOTH = "both"


class PriorityTier(str, Enum):
    """Scheduling class of a hook."""

    CRITICAL = "critical"  # Sequential, may short-circuit the run
    HIGH = "high"  # Parallel, awaited
    BACKGROUND = "background"  # Detached, advisory only

    @property
    def rank(self) -> int:
        return _TIER_RANK[self]


_TIER_RANK = {PriorityTier.CRITICAL: 0, PriorityTier.HIGH: 1, PriorityTier.BACKGROUND: 2}

# Per-tier default timeouts (ms) when a descriptor does not set one
DEFAULT_TIER_TIMEOUTS_MS = {
    PriorityTier.CRITICAL: 2000,
    PriorityTier.HIGH: 4000,
    PriorityTier.BACKGROUND: 5000,
}


# Type aliases
HandlerResult = Union["HookResult", None]
HandlerFn = Callable[["Event", dict[str, Any]], Union[HandlerResult, Awaitable[HandlerResult]]]
Matcher = Union[PatternMatcher, PredicateMatcher]


def _coerce_matcher(matcher: Any) -> Matcher:
    if matcher is None:
        return PredicateMatcher(always)
    if isinstance(matcher, (PatternMatcher, PredicateMatcher)):
        return matcher
    if isinstance(matcher, str):
        return PatternMatcher(tool_pattern=matcher)
    if callable(matcher):
        return PredicateMatcher(matcher)
    raise TypeError(f"Unsupported matcher type: {type(matcher).__name__}")


@dataclass(frozen=True)
class HookDescriptor:
    """Static configuration for one hook.

    Attributes:
        id: Unique, stable hook identifier
        handler: Evaluation function ``(event, params) -> HookResult | None``,
            sync or async
        phase: pre, post or both
        matcher: Decides whether the hook applies to an event
        priority_tier: critical, high or background
        timeout_ms: Per-hook evaluation budget
        enabled: Disabled hooks are never scheduled
        params: Static parameters passed to the handler
        description: Human-readable summary
    """

    id: str
    handler: HandlerFn
    phase: HookPhase = HookPhase.PRE
    matcher: Matcher = field(default_factory=lambda: PredicateMatcher(always))
    priority_tier: PriorityTier = PriorityTier.HIGH
    timeout_ms: int = DEFAULT_TIER_TIMEOUTS_MS[PriorityTier.HIGH]
    enabled: bool = True
    params: dict[str, Any] = field(default_factory=dict)
    description: str = ""

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id.strip():
            raise InvalidDescriptorError(str(self.id), "id must be a non-empty string")
        if not callable(self.handler):
            raise InvalidDescriptorError(self.id, "handler is not callable")
        try:
            object.__setattr__(self, "phase", HookPhase(self.phase))
            object.__setattr__(self, "priority_tier", PriorityTier(self.priority_tier))
        except ValueError as e:
            raise InvalidDescriptorError(self.id, str(e)) from None
        try:
            object.__setattr__(self, "matcher", _coerce_matcher(self.matcher))
        except TypeError as e:
            raise InvalidDescriptorError(self.id, str(e)) from None
        if isinstance(self.timeout_ms, bool) or not isinstance(self.timeout_ms, int) or self.timeout_ms <= 0:
            raise InvalidDescriptorError(self.id, f"timeout_ms must be a positive integer, got {self.timeout_ms!r}")
        if not isinstance(self.enabled, bool):
            raise InvalidDescriptorError(self.id, "enabled must be a boolean")

    def __hash__(self) -> int:
        return hash(self.id)

    @property
    def is_async(self) -> bool:
        return inspect.iscoroutinefunction(self.handler)

    def accepts_phase(self, phase: str) -> bool:
        return self.phase is HookPhase.BOTH or self.phase.value == phase

    def matches(self, event: Event, cache: PatternCache) -> bool:
        """Check if this hook applies to the event.

        Args:
            event: Event being processed
            cache: Pattern cache for compiled matchers

        Returns:
            True if the hook's phase and matcher accept the event
        """
        return self.accepts_phase(event.phase.value) and self.matcher(event, cache, self.id)


class _HookCatalog:
    """Global catalog of handlers decorated with @hook."""

    def __init__(self) -> None:
        self._hooks: dict[str, HookDescriptor] = {}

    def register(self, descriptor: HookDescriptor) -> None:
        """Register a decorated hook descriptor."""
        if descriptor.id in self._hooks:
            logger.warning("Hook '%s' re-registered in catalog, replacing previous handler", descriptor.id)
        self._hooks[descriptor.id] = descriptor

    def get(self, hook_id: str) -> HookDescriptor | None:
        """Get a hook descriptor by id."""
        return self._hooks.get(hook_id)

    def get_all(self) -> list[HookDescriptor]:
        """Get all catalogued descriptors in registration order."""
        return list(self._hooks.values())

    def clear(self) -> None:
        """Clear all catalogued hooks (for testing)."""
        self._hooks.clear()


# Global catalog
_catalog = _HookCatalog()


def get_catalog() -> _HookCatalog:
    """Get the global hook catalog."""
    return _catalog


def hook(
    *,
    id: str | None = None,
    tier: PriorityTier | str = PriorityTier.HIGH,
    phase: HookPhase | str = HookPhase.PRE,
    matcher: Any = None,
    timeout_ms: int | None = None,
    params: dict[str, Any] | None = None,
    description: str | None = None,
) -> Callable[[HandlerFn], HandlerFn]:
    """Decorator to register a function as a hook handler.

    Args:
        id: Hook id (defaults to the function name with '_' replaced by '-')
        tier: Priority tier
        phase: pre, post or both
        matcher: PatternMatcher, tool regex string or ``event -> bool``
        timeout_ms: Evaluation budget (defaults to the tier default)
        params: Static parameters passed to the handler
        description: Summary (defaults to the first docstring line)

    Returns:
        Decorator function

    Example:
        def prevent_improved_files_matcher(event: Event) -> bool:
            return event.tool_name.lower() in {"write", "edit"}

        @hook(tier="critical")
        def prevent_improved_files(event: Event, params: dict) -> HookResult | None:
            ...
    """

    def decorator(fn: HandlerFn) -> HandlerFn:
        # Look for {fn_name}_matcher in the same module by convention
        resolved_matcher = matcher
        if resolved_matcher is None:
            import sys

            module = sys.modules.get(fn.__module__)
            if module:
                resolved_matcher = getattr(module, f"{fn.__name__}_matcher", None)

        resolved_tier = PriorityTier(tier)
        doc = inspect.getdoc(fn) or ""
        descriptor = HookDescriptor(
            id=id or fn.__name__.replace("_", "-"),
            handler=fn,
            phase=HookPhase(phase),
            matcher=resolved_matcher,
            priority_tier=resolved_tier,
            timeout_ms=timeout_ms or DEFAULT_TIER_TIMEOUTS_MS[resolved_tier],
            params=dict(params or {}),
            description=description if description is not None else doc.split("\n", 1)[0],
        )
        _catalog.register(descriptor)

        # Attach descriptor to function for introspection
        fn._hook_descriptor = descriptor  # type: ignore[attr-defined]
        return fn

    return decorator


def create_hook_descriptor(
    id: str,
    handler: HandlerFn,
    *,
    tier: PriorityTier | str = PriorityTier.HIGH,
    phase: HookPhase | str = HookPhase.PRE,
    matcher: Any = None,
    timeout_ms: int | None = None,
    enabled: bool = True,
    params: dict[str, Any] | None = None,
    description: str = "",
) -> HookDescriptor:
    """Create a HookDescriptor programmatically (without decorator).

    Raises:
        InvalidDescriptorError: If any field is invalid
    """
    try:
        resolved_tier = PriorityTier(tier)
    except ValueError as e:
        raise InvalidDescriptorError(id, str(e)) from None
    return HookDescriptor(
        id=id,
        handler=handler,
        phase=phase,  # type: ignore[arg-type]
        matcher=matcher,
        priority_tier=resolved_tier,
        timeout_ms=timeout_ms if timeout_ms is not None else DEFAULT_TIER_TIMEOUTS_MS[resolved_tier],
        enabled=enabled,
        params=dict(params or {}),
        description=description,
    )
