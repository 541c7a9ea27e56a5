"""Observability sinks for hook verdicts.

Every verdict of every tier is recorded here. Background-tier verdicts are
*only* recorded here; they never reach the blocking decision.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter, deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

from hookguard.pipeline.hook import PriorityTier
from hookguard.pipeline.verdict import Verdict, VerdictKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutionRecord:
    """One hook execution as seen by the sink.

    Attributes:
        verdict: Verdict produced (or synthesized) for the hook
        tier: Tier the hook ran in
        tool_name: Operation kind of the event
        file_path: Target of the event
        discarded: True when the verdict was ignored by the decision
            (advisory background block/modify)
        timestamp: When the record was produced
    """

    verdict: Verdict
    tier: PriorityTier
    tool_name: str
    file_path: str | None = None
    discarded: bool = False
    timestamp: datetime | None = None

    def __post_init__(self) -> None:
        if self.timestamp is None:
            object.__setattr__(self, "timestamp", datetime.now(timezone.utc))


class ExecutionSink(Protocol):
    """Receives execution records."""

    def record(self, record: ExecutionRecord) -> None: ...


class LoggingSink:
    """Writes execution records to the log."""

    def record(self, record: ExecutionRecord) -> None:
        verdict = record.verdict
        if verdict.kind is VerdictKind.ERROR:
            logger.warning(
                "Hook '%s' (%s) failed open after %.1fms: %s",
                verdict.hook_id,
                record.tier.value,
                verdict.duration_ms,
                verdict.message,
            )
        elif record.discarded:
            logger.info(
                "Advisory %s from background hook '%s' discarded: %s",
                verdict.kind.value,
                verdict.hook_id,
                verdict.message or "",
            )
        else:
            logger.debug(
                "Hook '%s' (%s) -> %s in %.1fms",
                verdict.hook_id,
                record.tier.value,
                verdict.kind.value,
                verdict.duration_ms,
            )


class InMemorySink:
    """Keeps a bounded history of records and reports per-tier statistics."""

    def __init__(self, maxlen: int = 1000) -> None:
        self._records: deque[ExecutionRecord] = deque(maxlen=maxlen)
        self._lock = threading.Lock()

    def record(self, record: ExecutionRecord) -> None:
        with self._lock:
            self._records.append(record)

    @property
    def records(self) -> list[ExecutionRecord]:
        with self._lock:
            return list(self._records)

    def verdicts_for(self, hook_id: str) -> list[Verdict]:
        return [r.verdict for r in self.records if r.verdict.hook_id == hook_id]

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def stats(self) -> dict[str, Any]:
        """Summarize recorded executions.

        Returns:
            Dict with total count, kind counts and per-tier count/avg duration
        """
        records = self.records
        by_tier: dict[str, dict[str, float]] = {}
        for tier in PriorityTier:
            tier_records = [r for r in records if r.tier is tier]
            total_ms = sum(r.verdict.duration_ms for r in tier_records)
            by_tier[tier.value] = {
                "count": len(tier_records),
                "avg_ms": round(total_ms / len(tier_records), 3) if tier_records else 0.0,
            }
        kinds = Counter(r.verdict.kind.value for r in records)
        return {
            "total": len(records),
            "kinds": dict(kinds),
            "discarded": sum(1 for r in records if r.discarded),
            "by_tier": by_tier,
        }


class FanoutSink:
    """Forwards records to several sinks; a failing sink never breaks the others."""

    def __init__(self, *sinks: ExecutionSink) -> None:
        self.sinks = list(sinks)

    def record(self, record: ExecutionRecord) -> None:
        for sink in self.sinks:
            try:
                sink.record(record)
            except Exception as e:
                logger.error("Sink %s failed: %s: %s", type(sink).__name__, type(e).__name__, str(e))
