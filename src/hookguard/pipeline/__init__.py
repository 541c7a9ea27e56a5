"""Tiered hook pipeline for intercepted file operations.

This package implements the hook engine core with:
- Explicit matchers compiled lazily through a shared pattern cache
- Priority tiers (critical → high → background) with short-circuiting
- Fail-open execution: hook faults degrade to error verdicts, never blocks

Formal Model:
    Hook hᵢ = (mᵢ, fᵢ, tᵢ) where:
        mᵢ: Event → Bool      (matcher)
        fᵢ: Event → Verdict   (handler, bounded by timeout)
        tᵢ ∈ {critical, high, background}

    result = aggregate([fᵢ(e) for hᵢ in critical ∪ high if mᵢ(e)])
"""

from hookguard.pipeline.aggregator import aggregate
from hookguard.pipeline.cache import PatternCache, PatternScope
from hookguard.pipeline.errors import (
    ConfigurationError,
    DuplicateHookError,
    HookExecutionError,
    HookFault,
    HookGuardError,
    HookTimeoutError,
    InvalidDescriptorError,
    MalformedEventError,
)
from hookguard.pipeline.event import Event, Phase
from hookguard.pipeline.hook import HookDescriptor, HookPhase, PriorityTier, create_hook_descriptor, hook
from hookguard.pipeline.matchers import PatternMatcher
from hookguard.pipeline.overrides import HookOverride, parse_overrides
from hookguard.pipeline.registry import HookRegistry, RegistrySnapshot
from hookguard.pipeline.runner import HookRunner
from hookguard.pipeline.scheduler import PipelineScheduler
from hookguard.pipeline.sink import ExecutionRecord, InMemorySink, LoggingSink
from hookguard.pipeline.verdict import HookResult, PipelineResult, PipelineStatus, Verdict, VerdictKind

__all__ = [
    "aggregate",
    "ConfigurationError",
    "create_hook_descriptor",
    "DuplicateHookError",
    "Event",
    "ExecutionRecord",
    "hook",
    "HookDescriptor",
    "HookExecutionError",
    "HookFault",
    "HookGuardError",
    "HookOverride",
    "HookPhase",
    "HookRegistry",
    "HookResult",
    "HookRunner",
    "HookTimeoutError",
    "InMemorySink",
    "InvalidDescriptorError",
    "LoggingSink",
    "MalformedEventError",
    "parse_overrides",
    "PatternCache",
    "PatternMatcher",
    "PatternScope",
    "Phase",
    "PipelineResult",
    "PipelineScheduler",
    "PipelineStatus",
    "PriorityTier",
    "RegistrySnapshot",
    "Verdict",
    "VerdictKind",
]
