"""Merges per-hook verdicts into one pipeline decision.

Precedence: block > modify > warn > allow. Error verdicts never set the
status; they are kept in ``per_hook`` for diagnostics only.
"""

from __future__ import annotations

import difflib
import logging
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

from hookguard.pipeline.verdict import PipelineResult, PipelineStatus, Verdict, VerdictKind

if TYPE_CHECKING:
    from hookguard.pipeline.event import Event

logger = logging.getLogger(__name__)


def default_block_message(hook_id: str) -> str:
    return f"Operation blocked by hook {hook_id}"


class ContentMerger:
    """Applies modify verdicts to a running buffer.

    Each hook computed its content from the original text, so its edit
    (original → modified) is rebased onto the buffer produced by the
    previous hooks. Insertions at the same point keep registry order.
    Edits touching text an earlier hook already replaced are skipped.
    """

    def __init__(self, original: str) -> None:
        self.original = original
        self.buffer = original
        n = len(original)
        # Buffer offset where insertions at boundary i begin / where
        # original char i begins (after those insertions)
        self._before = list(range(n + 1))
        self._start = list(range(n + 1))
        self._alive = [True] * n
        self._sealed = [False] * (n + 1)

    def apply(self, modified: str) -> int:
        """Rebase one modification onto the buffer.

        Args:
            modified: Content the hook produced from the original

        Returns:
            Number of conflicting edits that were skipped
        """
        skipped = 0
        matcher = difflib.SequenceMatcher(None, self.original, modified)
        for tag, i1, i2, j1, j2 in matcher.get_opcodes():
            if tag == "equal":
                continue
            text = modified[j1:j2]
            applied = self._insert(i1, text) if i1 == i2 else self._replace(i1, i2, text)
            if not applied:
                skipped += 1
        return skipped

    def _shift(self, first: int, delta: int) -> None:
        for j in range(first, len(self._start)):
            self._before[j] += delta
            self._start[j] += delta

    def _insert(self, i: int, text: str) -> bool:
        if self._sealed[i]:
            return False
        pos = self._start[i]
        self.buffer = self.buffer[:pos] + text + self.buffer[pos:]
        self._start[i] += len(text)
        self._shift(i + 1, len(text))
        return True

    def _replace(self, i1: int, i2: int, text: str) -> bool:
        if not all(self._alive[i1:i2]):
            return False
        if any(self._start[j] != self._before[j] for j in range(i1 + 1, i2)):
            return False
        lo, hi = self._start[i1], self._before[i2]
        self.buffer = self.buffer[:lo] + text + self.buffer[hi:]
        for j in range(i1, i2):
            self._alive[j] = False
        for j in range(i1 + 1, i2):
            self._sealed[j] = True
        self._shift(i2, len(text) - (hi - lo))
        return True


def aggregate(event: Event, verdicts: Sequence[Verdict], background: Iterable[str] = ()) -> PipelineResult:
    """Produce the PipelineResult for one run.

    Args:
        event: Event the verdicts were produced for
        verdicts: Critical then high tier verdicts, in tier and registry order
        background: Ids of background hooks dispatched by the run

    Returns:
        Aggregate PipelineResult
    """
    per_hook = tuple(verdicts)
    dispatched = tuple(background)
    original = event.content

    # First block wins (tier order, then registration order)
    for verdict in per_hook:
        if verdict.kind is VerdictKind.BLOCK:
            return PipelineResult(
                status=PipelineStatus.BLOCKED,
                message=verdict.message or default_block_message(verdict.hook_id),
                final_content=original,
                per_hook=per_hook,
                background=dispatched,
            )

    modifies = [v for v in per_hook if v.kind is VerdictKind.MODIFY]
    warnings = [v.message for v in per_hook if v.kind is VerdictKind.WARN and v.message]

    if modifies:
        merger = ContentMerger(original or "")
        for verdict in modifies:
            skipped = merger.apply(verdict.modified_content or "")
            if skipped:
                logger.warning(
                    "Skipped %d conflicting edit(s) from hook '%s' (text already modified by an earlier hook)",
                    skipped,
                    verdict.hook_id,
                )
        buffer = merger.buffer
        notes = [
            v.message
            for v in per_hook
            if v.kind in (VerdictKind.WARN, VerdictKind.MODIFY) and v.message
        ]
        return PipelineResult(
            status=PipelineStatus.MODIFIED,
            message="\n".join(notes) or None,
            final_content=buffer,
            per_hook=per_hook,
            background=dispatched,
        )

    if any(v.kind is VerdictKind.WARN for v in per_hook):
        return PipelineResult(
            status=PipelineStatus.WARNING,
            message="\n".join(warnings) or None,
            final_content=original,
            per_hook=per_hook,
            background=dispatched,
        )

    return PipelineResult(
        status=PipelineStatus.ALLOW,
        final_content=original,
        per_hook=per_hook,
        background=dispatched,
    )
