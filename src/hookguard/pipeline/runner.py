"""Sandboxed execution of a single hook.

The runner is the fail-open boundary: every way a hook can go wrong
(timeout, exception, garbage return value) is turned into an ``error``
verdict here and never propagates.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from hookguard.pipeline.cache import PatternCache, PatternScope
from hookguard.pipeline.errors import HookExecutionError, HookFault, HookTimeoutError
from hookguard.pipeline.verdict import HookResult, Verdict, VerdictKind

if TYPE_CHECKING:
    from hookguard.pipeline.event import Event
    from hookguard.pipeline.hook import HookDescriptor

logger = logging.getLogger(__name__)


def _consume_outcome(task: asyncio.Future[Any]) -> None:
    """Mark the outcome of an abandoned task as retrieved."""
    if not task.cancelled():
        task.exception()


def _run_in_thread(hook_id: str, fn: Callable[..., Any], *args: Any) -> asyncio.Future[Any]:
    """Run a blocking handler on a daemon thread.

    Nothing joins the thread: a handler that outlives its timeout neither
    holds up the event loop shutdown nor the interpreter exit.
    """
    loop = asyncio.get_running_loop()
    future: asyncio.Future[Any] = loop.create_future()

    def _deliver(outcome: Any, error: Exception | None) -> None:
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(outcome)

    def _target() -> None:
        outcome, error = None, None
        try:
            outcome = fn(*args)
        except Exception as e:
            error = e
        if loop.is_closed():
            logger.debug("Hook '%s' finished after its event loop closed; result dropped", hook_id)
            return
        try:
            loop.call_soon_threadsafe(_deliver, outcome, error)
        except RuntimeError:
            # Loop closed between the check and the call
            logger.debug("Hook '%s' finished after its event loop closed; result dropped", hook_id)

    threading.Thread(target=_target, name=f"hookguard-{hook_id}", daemon=True).start()
    return future


class HookRunner:
    """Executes one hook against one event under a timeout.

    Attributes:
        cache: Pattern cache exposed to handlers via ``params["patterns"]``
        extra_params: Additional parameters passed to all handlers
    """

    def __init__(self, cache: PatternCache | None = None, extra_params: dict[str, Any] | None = None) -> None:
        self.cache = cache if cache is not None else PatternCache()
        self.extra_params = extra_params or {}

    async def run(self, descriptor: HookDescriptor, event: Event, timeout_ms: float | None = None) -> Verdict:
        """Run a hook and resolve every outcome to a Verdict.

        Args:
            descriptor: Hook to run
            event: Event to evaluate
            timeout_ms: Tighter budget imposed by the caller (the descriptor's
                own timeout still applies)

        Returns:
            Verdict; ``kind=error`` on timeout or failure
        """
        budget_ms = descriptor.timeout_ms if timeout_ms is None else min(descriptor.timeout_ms, timeout_ms)
        start = time.perf_counter()
        try:
            result = await self._evaluate(descriptor, event, budget_ms)
        except HookFault as fault:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.debug("Hook '%s' fault: %s", descriptor.id, fault)
            return Verdict.from_fault(fault, duration_ms)
        duration_ms = (time.perf_counter() - start) * 1000
        return Verdict.from_result(descriptor.id, result, duration_ms)

    async def _evaluate(self, descriptor: HookDescriptor, event: Event, budget_ms: float) -> HookResult:
        """Evaluate the handler, raising HookFault on any failure."""
        if budget_ms <= 0:
            raise HookTimeoutError(descriptor.id, int(budget_ms))

        params = self._params_for(descriptor, budget_ms)
        task = asyncio.ensure_future(self._invoke(descriptor, event, params))
        try:
            done, _ = await asyncio.wait({task}, timeout=budget_ms / 1000)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if not done:
            # Best-effort: sync handlers keep running in their thread, the
            # result is discarded either way
            task.cancel()
            task.add_done_callback(_consume_outcome)
            raise HookTimeoutError(descriptor.id, int(budget_ms))

        if task.cancelled():
            raise HookExecutionError(descriptor.id, f"hook {descriptor.id} was cancelled")
        error = task.exception()
        if error is not None:
            raise HookExecutionError(descriptor.id, str(error) or type(error).__name__) from error

        return self._coerce_result(descriptor.id, task.result())

    async def _invoke(self, descriptor: HookDescriptor, event: Event, params: dict[str, Any]) -> Any:
        if descriptor.is_async:
            return await descriptor.handler(event, params)

        # Blocking handlers run off the loop so the timeout can fire
        result = await _run_in_thread(descriptor.id, descriptor.handler, event, params)
        if inspect.isawaitable(result):
            result = await result
        return result

    def _params_for(self, descriptor: HookDescriptor, budget_ms: float) -> dict[str, Any]:
        params = dict(descriptor.params)
        params.update(self.extra_params)
        params["hook_id"] = descriptor.id
        params["timeout_ms"] = budget_ms
        params["patterns"] = PatternScope(self.cache, descriptor.id)
        return params

    @staticmethod
    def _coerce_result(hook_id: str, raw: Any) -> HookResult:
        """Map a handler return value to a HookResult.

        Accepts ``None`` (allow), a HookResult, or a mapping with either a
        ``kind`` key or the legacy ``block``/``allow`` flags.

        Raises:
            HookExecutionError: If the value cannot be interpreted
        """
        if raw is None:
            return HookResult.allow()
        if isinstance(raw, HookResult):
            return raw
        if isinstance(raw, dict):
            try:
                if "kind" in raw:
                    return HookResult(
                        kind=VerdictKind(raw["kind"]),
                        message=raw.get("message"),
                        content=raw.get("content", raw.get("modifiedContent")),
                    )
                if raw.get("block") or raw.get("allow") is False:
                    return HookResult.block(raw.get("message") or "")
                return HookResult.allow(raw.get("message"))
            except (TypeError, ValueError) as e:
                raise HookExecutionError(hook_id, f"hook {hook_id} returned an invalid result: {e}") from e
        raise HookExecutionError(hook_id, f"hook {hook_id} returned unsupported type {type(raw).__name__}")
