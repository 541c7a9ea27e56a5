"""hookguard engine - intake, scheduling and aggregation behind one call."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from hookguard.config import HookGuardSettings, configure_logging, get_config
from hookguard.manifest import load_manifest
from hookguard.pipeline.aggregator import aggregate
from hookguard.pipeline.errors import MalformedEventError
from hookguard.pipeline.event import Event, payload_content
from hookguard.pipeline.overrides import parse_overrides
from hookguard.pipeline.registry import HookRegistry
from hookguard.pipeline.scheduler import PipelineScheduler
from hookguard.pipeline.sink import ExecutionSink, LoggingSink
from hookguard.pipeline.verdict import PipelineResult, Verdict

if TYPE_CHECKING:
    from hookguard.pipeline.hook import HookDescriptor
    from hookguard.pipeline.registry import RegistrySnapshot

logger = logging.getLogger(__name__)


class HookEngine:
    """Evaluates intercepted operations against the registered hooks.

    ``process`` never raises: malformed payloads and unexpected engine
    faults resolve to ``allow`` with ``error`` set.
    """

    def __init__(
        self,
        registry: HookRegistry | None = None,
        settings: HookGuardSettings | None = None,
        sink: ExecutionSink | None = None,
        extra_params: dict[str, Any] | None = None,
    ) -> None:
        self.settings = settings or get_config()
        self.registry = registry if registry is not None else HookRegistry(
            overrides=parse_overrides(self.settings.overrides)
        )
        self.sink = sink or LoggingSink()
        self.scheduler = PipelineScheduler(
            self.registry,
            sink=self.sink,
            pipeline_timeout_ms=self.settings.pipeline_timeout_ms,
            max_concurrency=self.settings.max_concurrency,
            extra_params=extra_params,
        )

    @classmethod
    def from_settings(cls, settings: HookGuardSettings | None = None, sink: ExecutionSink | None = None) -> HookEngine:
        """Build an engine from settings, loading the hook manifest.

        Raises:
            ConfigurationError: If the manifest cannot be loaded
        """
        settings = settings or get_config()
        configure_logging(settings)

        descriptors: list[HookDescriptor] = []
        manifest_path = settings.resolved_manifest_path
        if manifest_path is not None:
            descriptors = load_manifest(manifest_path, settings.default_timeout_ms)
        else:
            logger.warning("No hook manifest configured; every operation will be allowed")

        registry = HookRegistry(descriptors, overrides=parse_overrides(settings.overrides))
        engine = cls(registry, settings, sink)
        if descriptors:
            logger.debug(
                "Engine initialized with %d hooks: %s",
                len(descriptors),
                " → ".join(d.id for d in registry.snapshot.ordered()),
            )
        return engine

    async def process(self, payload: Any) -> PipelineResult:
        """Evaluate one inbound payload.

        Args:
            payload: Parsed event payload

        Returns:
            PipelineResult (never raises)
        """
        reason = self.settings.bypass_reason()
        if reason is not None:
            logger.info("Hook engine bypassed: %s", reason)
            return PipelineResult.allow(payload_content(payload), bypassed=reason)

        try:
            event = Event.from_payload(payload)
        except MalformedEventError as e:
            logger.warning("Malformed event, allowing: %s", e)
            return PipelineResult.allow(error=f"malformed event: {e}")

        try:
            run = await self.scheduler.schedule(event)
            result = aggregate(event, run.verdicts, run.background)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("Hook engine fault while processing %s", event.tool_name)
            return PipelineResult.allow(event.content, error=f"engine fault: {type(e).__name__}: {e}")

        if result.blocked:
            logger.info("Blocked %s %s: %s", event.tool_name, event.file_path or "", result.message)
        return result

    def process_sync(self, payload: Any) -> PipelineResult:
        """Evaluate one payload from synchronous code.

        Runs a private event loop and waits up to ``drain_timeout_s`` for
        background hooks before returning. Must not be called from a
        running event loop.
        """

        async def _run() -> PipelineResult:
            result = await self.process(payload)
            await self.drain(self.settings.drain_timeout_s)
            return result

        loop = asyncio.new_event_loop()
        try:
            return loop.run_until_complete(_run())
        finally:
            # Background hooks still running after the drain are abandoned
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()

    def reload(self, descriptors: Iterable[HookDescriptor]) -> RegistrySnapshot:
        """Swap in a new descriptor set.

        Raises:
            DuplicateHookError: If two descriptors share an id
        """
        return self.registry.reload(descriptors)

    async def drain(self, timeout: float | None = None) -> list[Verdict]:
        """Wait for background hooks dispatched by earlier runs."""
        return await self.scheduler.drain(timeout)
