"""Verdicts, hook results and the aggregate pipeline result."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from hookguard.pipeline.errors import HookFault


class VerdictKind(str, Enum):
    """Outcome of one hook against one event."""

    ALLOW = "allow"
    BLOCK = "block"
    WARN = "warn"
    MODIFY = "modify"
    ERROR = "error"  # Fail-open: counts as allow for the blocking decision


class PipelineStatus(str, Enum):
    """Aggregate decision returned to the host."""

    ALLOW = "allow"
    BLOCKED = "blocked"
    WARNING = "warning"
    MODIFIED = "modified"


# Kinds a handler may return; ERROR is reserved for the runner
HANDLER_KINDS = frozenset({VerdictKind.ALLOW, VerdictKind.BLOCK, VerdictKind.WARN, VerdictKind.MODIFY})


@dataclass(frozen=True)
class HookResult:
    """Value returned by a hook handler.

    Attributes:
        kind: allow, block, warn or modify
        message: Human-readable explanation
        content: Replacement content (modify only)
    """

    kind: VerdictKind = VerdictKind.ALLOW
    message: str | None = None
    content: str | None = None

    def __post_init__(self) -> None:
        kind = VerdictKind(self.kind)
        if kind not in HANDLER_KINDS:
            raise ValueError(f"Hooks cannot return kind '{kind.value}'")
        for name in ("message", "content"):
            value = getattr(self, name)
            if value is not None and not isinstance(value, str):
                raise ValueError(f"{name} must be a string, got {type(value).__name__}")
        if kind is VerdictKind.MODIFY and self.content is None:
            raise ValueError("modify results require content")
        object.__setattr__(self, "kind", kind)

    @classmethod
    def allow(cls, message: str | None = None) -> HookResult:
        return cls(VerdictKind.ALLOW, message)

    @classmethod
    def block(cls, message: str) -> HookResult:
        return cls(VerdictKind.BLOCK, message)

    @classmethod
    def warn(cls, message: str) -> HookResult:
        return cls(VerdictKind.WARN, message)

    @classmethod
    def modify(cls, content: str, message: str | None = None) -> HookResult:
        return cls(VerdictKind.MODIFY, message, content)


@dataclass(frozen=True)
class Verdict:
    """Outcome of one hook for one event.

    Attributes:
        hook_id: Id of the hook that produced the verdict
        kind: Verdict kind
        message: Optional human-readable message
        modified_content: Replacement content, present only for modify
        duration_ms: Wall time spent on the hook
    """

    hook_id: str
    kind: VerdictKind
    message: str | None = None
    modified_content: str | None = None
    duration_ms: float = field(default=0.0, compare=False)

    @classmethod
    def from_result(cls, hook_id: str, result: HookResult, duration_ms: float = 0.0) -> Verdict:
        return cls(
            hook_id=hook_id,
            kind=result.kind,
            message=result.message,
            modified_content=result.content if result.kind is VerdictKind.MODIFY else None,
            duration_ms=duration_ms,
        )

    @classmethod
    def from_fault(cls, fault: HookFault, duration_ms: float = 0.0) -> Verdict:
        return cls(hook_id=fault.hook_id, kind=VerdictKind.ERROR, message=str(fault), duration_ms=duration_ms)

    @property
    def is_blocking(self) -> bool:
        return self.kind is VerdictKind.BLOCK

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"hookId": self.hook_id, "kind": self.kind.value}
        if self.message is not None:
            data["message"] = self.message
        if self.modified_content is not None:
            data["modifiedContent"] = self.modified_content
        data["durationMs"] = round(self.duration_ms, 3)
        return data


@dataclass(frozen=True)
class PipelineResult:
    """Aggregate decision for one pipeline run.

    Attributes:
        status: allow, blocked, warning or modified
        message: Block reason or joined warnings
        final_content: Content after all modify verdicts were applied
        per_hook: Critical then high tier verdicts, in evaluation order
        background: Ids of background hooks dispatched by this run
        error: Diagnostic annotation when the engine degraded to allow
        bypassed: Reason when the engine was bypassed by settings
    """

    status: PipelineStatus
    message: str | None = None
    final_content: str | None = None
    per_hook: tuple[Verdict, ...] = ()
    background: tuple[str, ...] = ()
    error: str | None = None
    bypassed: str | None = None

    @classmethod
    def allow(cls, content: str | None = None, *, error: str | None = None, bypassed: str | None = None) -> PipelineResult:
        return cls(status=PipelineStatus.ALLOW, final_content=content, error=error, bypassed=bypassed)

    @property
    def blocked(self) -> bool:
        return self.status is PipelineStatus.BLOCKED

    @property
    def errors(self) -> list[Verdict]:
        """Verdicts of hooks that failed open."""
        return [v for v in self.per_hook if v.kind is VerdictKind.ERROR]

    def to_dict(self, *, include_verdicts: bool = False) -> dict[str, Any]:
        """Serialize to the outbound host shape."""
        data: dict[str, Any] = {"status": self.status.value}
        if self.message is not None:
            data["message"] = self.message
        if self.final_content is not None:
            data["finalContent"] = self.final_content
        if self.error is not None:
            data["error"] = self.error
        if self.bypassed is not None:
            data["bypassed"] = self.bypassed
        if include_verdicts:
            data["perHook"] = [v.to_dict() for v in self.per_hook]
            data["background"] = list(self.background)
        return data
