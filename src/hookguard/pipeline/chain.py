"""Text renderings of the tiered hook chain.

Used by ``hookguard chain`` to show which hooks would run for an operation
and in what order.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from typing import TYPE_CHECKING

from hookguard.pipeline.hook import PriorityTier

if TYPE_CHECKING:
    from hookguard.pipeline.hook import HookDescriptor

_TIER_LABELS = {
    PriorityTier.CRITICAL: "CRITICAL (sequential, short-circuits on block)",
    PriorityTier.HIGH: "HIGH (parallel, awaited)",
    PriorityTier.BACKGROUND: "BACKGROUND (detached, advisory)",
}


def group_by_tier(hooks: Sequence[HookDescriptor]) -> dict[PriorityTier, list[HookDescriptor]]:
    """Group descriptors by tier, keeping their relative order."""
    groups: dict[PriorityTier, list[HookDescriptor]] = {tier: [] for tier in PriorityTier}
    for descriptor in hooks:
        groups[descriptor.priority_tier].append(descriptor)
    return groups


def render_chain(hooks: Sequence[HookDescriptor], width: int = 60) -> str:
    """Generate an ASCII chart of the chain.

    Args:
        hooks: Descriptors in scheduling order
        width: Inner width of each box

    Returns:
        ASCII art string, one box per non-empty tier
    """
    if not hooks:
        return "(no hooks)"

    lines: list[str] = []
    inner = width - 2
    for tier, members in group_by_tier(hooks).items():
        if not members:
            continue
        if lines:
            lines.append(f"{'':>{width // 2}}│")
            lines.append(f"{'':>{width // 2}}▼")
        lines.append(f"┌{'─' * width}┐")
        lines.append(f"│ {_TIER_LABELS[tier]:<{inner}} │")
        lines.append(f"├{'─' * width}┤")
        for descriptor in members:
            state = "" if descriptor.enabled else " [disabled]"
            entry = f"{descriptor.id} ({descriptor.timeout_ms}ms){state}"
            lines.append(f"│   {entry[: inner - 2]:<{inner - 2}} │")
            match = f"match: {descriptor.phase.value} {descriptor.matcher.describe()}"
            lines.append(f"│     {match[: inner - 4]:<{inner - 4}} │")
        lines.append(f"└{'─' * width}┘")

    return "\n".join(lines)


_NON_WORD = re.compile(r"\W")


def _node_ids(hooks: Sequence[HookDescriptor]) -> dict[str, str]:
    """Mermaid-safe node id per hook id, unique even when sanitized names collide."""
    return {d.id: f"n{i}_{_NON_WORD.sub('_', d.id)}" for i, d in enumerate(hooks)}


def to_mermaid(hooks: Sequence[HookDescriptor]) -> str:
    """Generate a Mermaid diagram of the chain.

    Critical hooks are chained in order; high and background hooks fan out
    from the last critical hook (or the start node).

    Returns:
        Mermaid graph definition string
    """
    lines = ["graph TD", "    start([event])"]
    groups = group_by_tier(hooks)
    ids = _node_ids([d for tier in PriorityTier for d in groups[tier]])

    def node(descriptor: HookDescriptor) -> str:
        label = descriptor.id.replace('"', "#quot;")
        return f'{ids[descriptor.id]}["{label}"]'

    previous = "start"
    for descriptor in groups[PriorityTier.CRITICAL]:
        lines.append(f"    {previous} --> {node(descriptor)}")
        previous = ids[descriptor.id]

    lines.append(f"    {previous} --> decide{{aggregate}}")
    for descriptor in groups[PriorityTier.HIGH]:
        lines.append(f"    {previous} --> {node(descriptor)}")
        lines.append(f"    {ids[descriptor.id]} --> decide")
    for descriptor in groups[PriorityTier.BACKGROUND]:
        lines.append(f"    decide -.-> {node(descriptor)}")

    return "\n".join(lines)
