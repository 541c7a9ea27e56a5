"""Tiered scheduler for a pipeline run.

critical → high → background:
- critical hooks run sequentially in registry order and may short-circuit
- high hooks run concurrently and are awaited (bounded by the pipeline timeout)
- background hooks are detached; their verdicts only reach the sink
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from hookguard.pipeline.hook import PriorityTier
from hookguard.pipeline.runner import HookRunner
from hookguard.pipeline.sink import ExecutionRecord, ExecutionSink, LoggingSink
from hookguard.pipeline.verdict import Verdict, VerdictKind

if TYPE_CHECKING:
    from hookguard.pipeline.event import Event
    from hookguard.pipeline.hook import HookDescriptor
    from hookguard.pipeline.registry import HookRegistry

logger = logging.getLogger(__name__)

DEFAULT_PIPELINE_TIMEOUT_MS = 30000

# Verdict kinds a background hook cannot act on
_ADVISORY_DISCARDED = frozenset({VerdictKind.BLOCK, VerdictKind.MODIFY})


@dataclass
class ScheduledRun:
    """Outcome of scheduling one event.

    Attributes:
        verdicts: Critical then high tier verdicts in registry order
        background: Ids of dispatched background hooks
        short_circuited_by: Id of the critical hook that blocked, if any
    """

    verdicts: list[Verdict] = field(default_factory=list)
    background: list[str] = field(default_factory=list)
    short_circuited_by: str | None = None


class _Deadline:
    def __init__(self, timeout_ms: float) -> None:
        self._end = time.monotonic() + timeout_ms / 1000

    def remaining_ms(self) -> float:
        return max(0.0, (self._end - time.monotonic()) * 1000)


class PipelineScheduler:
    """Schedules hook runners by priority tier.

    Attributes:
        registry: Hook registry consulted per event
        runner: Hook runner
        sink: Observability sink receiving every verdict
        pipeline_timeout_ms: Global latency bound for critical + high tiers
        max_concurrency: Optional cap on concurrently running high-tier hooks
    """

    def __init__(
        self,
        registry: HookRegistry,
        *,
        runner: HookRunner | None = None,
        sink: ExecutionSink | None = None,
        pipeline_timeout_ms: float = DEFAULT_PIPELINE_TIMEOUT_MS,
        max_concurrency: int | None = None,
        extra_params: dict[str, Any] | None = None,
    ) -> None:
        """Initialize scheduler.

        Args:
            registry: Hook registry
            runner: Hook runner (one sharing the registry's cache is created if omitted)
            sink: Observability sink (defaults to LoggingSink)
            pipeline_timeout_ms: Global pipeline timeout
            max_concurrency: Cap on parallel high-tier hooks (None = unbounded)
            extra_params: Additional parameters passed to all hooks
        """
        if pipeline_timeout_ms <= 0:
            raise ValueError("pipeline_timeout_ms must be positive")
        if max_concurrency is not None and max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.registry = registry
        self.runner = runner or HookRunner(registry.cache, extra_params)
        self.sink = sink or LoggingSink()
        self.pipeline_timeout_ms = pipeline_timeout_ms
        self.max_concurrency = max_concurrency
        self._background: set[asyncio.Task[Verdict]] = set()

    async def schedule(self, event: Event) -> ScheduledRun:
        """Run all applicable hooks for an event.

        Args:
            event: Validated event

        Returns:
            ScheduledRun with critical and high tier verdicts
        """
        hooks = self.registry.hooks_for(event)
        run = ScheduledRun()
        if not hooks:
            logger.debug("No hooks apply to %s %s", event.phase.value, event.tool_name)
            return run

        tiers: dict[PriorityTier, list[HookDescriptor]] = {tier: [] for tier in PriorityTier}
        for descriptor in hooks:
            tiers[descriptor.priority_tier].append(descriptor)

        logger.debug(
            "Scheduling %s %s: critical=%d high=%d background=%d",
            event.phase.value,
            event.tool_name,
            len(tiers[PriorityTier.CRITICAL]),
            len(tiers[PriorityTier.HIGH]),
            len(tiers[PriorityTier.BACKGROUND]),
        )

        deadline = _Deadline(self.pipeline_timeout_ms)

        blocker = await self._run_critical(tiers[PriorityTier.CRITICAL], event, deadline, run)
        if blocker is not None:
            run.short_circuited_by = blocker
            skipped = len(tiers[PriorityTier.HIGH]) + len(tiers[PriorityTier.BACKGROUND])
            logger.info("Critical hook '%s' blocked %s; skipped %d lower-tier hook(s)", blocker, event.tool_name, skipped)
            return run

        await self._run_high(tiers[PriorityTier.HIGH], event, deadline, run)
        self._dispatch_background(tiers[PriorityTier.BACKGROUND], event, run)
        return run

    async def _run_critical(
        self,
        hooks: list[HookDescriptor],
        event: Event,
        deadline: _Deadline,
        run: ScheduledRun,
    ) -> str | None:
        """Run critical hooks in order; return the id of the first blocker."""
        for index, descriptor in enumerate(hooks):
            remaining = deadline.remaining_ms()
            if remaining <= 0:
                for late in hooks[index:]:
                    verdict = Verdict(late.id, VerdictKind.ERROR, f"hook {late.id} not run: pipeline timeout elapsed")
                    self._record(verdict, PriorityTier.CRITICAL, event)
                    run.verdicts.append(verdict)
                return None

            verdict = await self.runner.run(descriptor, event, timeout_ms=remaining)
            self._record(verdict, PriorityTier.CRITICAL, event)
            run.verdicts.append(verdict)
            if verdict.is_blocking:
                return descriptor.id
        return None

    async def _run_high(
        self,
        hooks: list[HookDescriptor],
        event: Event,
        deadline: _Deadline,
        run: ScheduledRun,
    ) -> None:
        """Run high-tier hooks concurrently, waiting for all or the deadline."""
        if not hooks:
            return

        semaphore = asyncio.Semaphore(self.max_concurrency) if self.max_concurrency else None

        async def guarded(descriptor: HookDescriptor) -> Verdict:
            if semaphore is None:
                return await self.runner.run(descriptor, event)
            async with semaphore:
                return await self.runner.run(descriptor, event, timeout_ms=deadline.remaining_ms())

        tasks = {descriptor.id: asyncio.ensure_future(guarded(descriptor)) for descriptor in hooks}
        remaining = deadline.remaining_ms()
        try:
            if remaining > 0:
                await asyncio.wait(tasks.values(), timeout=remaining / 1000)
        except asyncio.CancelledError:
            for task in tasks.values():
                task.cancel()
            raise

        for descriptor in hooks:
            task = tasks[descriptor.id]
            if task.done() and not task.cancelled() and task.exception() is None:
                verdict = task.result()
            else:
                task.cancel()
                verdict = Verdict(
                    descriptor.id,
                    VerdictKind.ERROR,
                    f"hook {descriptor.id} did not finish before the pipeline timeout",
                    duration_ms=self.pipeline_timeout_ms,
                )
            self._record(verdict, PriorityTier.HIGH, event)
            run.verdicts.append(verdict)

    def _dispatch_background(self, hooks: list[HookDescriptor], event: Event, run: ScheduledRun) -> None:
        """Start background hooks without awaiting them."""
        for descriptor in hooks:
            task = asyncio.ensure_future(self._run_background(descriptor, event))
            self._background.add(task)
            task.add_done_callback(self._background.discard)
            run.background.append(descriptor.id)

    async def _run_background(self, descriptor: HookDescriptor, event: Event) -> Verdict:
        verdict = await self.runner.run(descriptor, event)
        self._record(verdict, PriorityTier.BACKGROUND, event, discarded=verdict.kind in _ADVISORY_DISCARDED)
        return verdict

    def _record(self, verdict: Verdict, tier: PriorityTier, event: Event, *, discarded: bool = False) -> None:
        try:
            self.sink.record(
                ExecutionRecord(
                    verdict=verdict,
                    tier=tier,
                    tool_name=event.tool_name,
                    file_path=event.file_path,
                    discarded=discarded,
                )
            )
        except Exception as e:
            logger.error("Failed to record verdict for hook '%s': %s: %s", verdict.hook_id, type(e).__name__, str(e))

    @property
    def pending_background(self) -> int:
        """Number of background hooks still running."""
        return len(self._background)

    async def drain(self, timeout: float | None = None) -> list[Verdict]:
        """Wait for outstanding background hooks.

        Args:
            timeout: Seconds to wait; hooks still running afterwards are cancelled

        Returns:
            Verdicts of background hooks that finished
        """
        tasks = list(self._background)
        if not tasks:
            return []
        done, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning("Cancelled %d background hook(s) still running at drain", len(pending))
        return [t.result() for t in done if not t.cancelled() and t.exception() is None]
