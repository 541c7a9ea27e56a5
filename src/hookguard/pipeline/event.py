"""Event dataclass and intake normalization.

Provides a typed, validated view of the host's hook payload.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePath
from typing import Any

from hookguard.pipeline.errors import MalformedEventError

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    """When the event was intercepted relative to the operation."""

    PRE = "pre"
    POST = "post"


# Host-native hook event names
_HOST_PHASES = {
    "pretooluse": Phase.PRE,
    "posttooluse": Phase.POST,
}


def _first(data: dict[str, Any], *keys: str) -> Any:
    """Return the value of the first key present in data."""
    for key in keys:
        if key in data:
            return data[key]
    return None


def _flatten(payload: dict[str, Any], tool_input: dict[str, Any]) -> dict[str, Any]:
    """Merge host-native ``tool_input`` fields into the root level; root keys win."""
    return {**tool_input, **{k: v for k, v in payload.items() if k != "tool_input"}}


def payload_content(payload: Any) -> str | None:
    """Content carried by a payload, without validating the rest of it."""
    if not isinstance(payload, dict):
        return None
    tool_input = payload.get("tool_input")
    data = _flatten(payload, tool_input if isinstance(tool_input, dict) else {})
    content = _first(data, "content", "new_string")
    return content if isinstance(content, str) else None


@dataclass(frozen=True)
class Event:
    """One intercepted operation.

    Attributes:
        phase: pre or post
        tool_name: Operation kind (write, edit, ...)
        file_path: Target path, if the operation has one
        content: New text
        previous_content: Text before the operation (post phase only)
        session_id: Host session identifier
        _raw_data: Original payload (for fields not explicitly modeled)
    """

    phase: Phase
    tool_name: str
    file_path: str | None = None
    content: str | None = None
    previous_content: str | None = None
    session_id: str = ""
    _raw_data: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_payload(cls, payload: Any) -> Event:
        """Create an Event from a parsed JSON payload.

        Accepts the camelCase shape, snake_case keys, and the host-native
        shape where operation fields are nested under ``tool_input``:

            {"hook_event_name": "PreToolUse", "tool_name": "Write",
             "tool_input": {"file_path": "...", "content": "..."}}

        Args:
            payload: Parsed payload (normally a dict)

        Returns:
            Validated Event

        Raises:
            MalformedEventError: If the payload is not a valid event
        """
        if not isinstance(payload, dict):
            raise MalformedEventError(f"Event payload must be an object, got {type(payload).__name__}")

        tool_input = payload.get("tool_input", {})
        if not isinstance(tool_input, dict):
            raise MalformedEventError("tool_input must be an object")
        data = _flatten(payload, tool_input)

        phase = cls._parse_phase(data)

        tool_name = _first(data, "toolName", "tool_name")
        if not isinstance(tool_name, str) or not tool_name.strip():
            raise MalformedEventError("toolName must be a non-empty string")

        file_path = _first(data, "filePath", "file_path")
        if file_path is not None and not isinstance(file_path, str):
            raise MalformedEventError("filePath must be a string")

        content = _first(data, "content", "new_string")
        if content is not None and not isinstance(content, str):
            raise MalformedEventError("content must be a string")

        previous_content = _first(data, "previousContent", "previous_content", "old_string")
        if previous_content is not None and not isinstance(previous_content, str):
            raise MalformedEventError("previousContent must be a string")
        if previous_content is not None and phase is Phase.PRE:
            logger.debug("Dropping previousContent from pre-phase event for %s", tool_name)
            previous_content = None

        session_id = _first(data, "sessionId", "session_id")

        return cls(
            phase=phase,
            tool_name=tool_name.strip(),
            file_path=file_path,
            content=content,
            previous_content=previous_content,
            session_id=session_id if isinstance(session_id, str) else "",
            _raw_data=payload,
        )

    @staticmethod
    def _parse_phase(data: dict[str, Any]) -> Phase:
        raw = data.get("phase")
        if raw is None:
            host_event = data.get("hook_event_name")
            if isinstance(host_event, str) and host_event.lower() in _HOST_PHASES:
                return _HOST_PHASES[host_event.lower()]
            raise MalformedEventError("phase is required")
        if isinstance(raw, Phase):
            return raw
        if not isinstance(raw, str):
            raise MalformedEventError("phase must be 'pre' or 'post'")
        try:
            return Phase(raw.lower())
        except ValueError:
            raise MalformedEventError(f"phase must be 'pre' or 'post', got '{raw}'") from None

    def get(self, key: str, default: Any = None) -> Any:
        """Get a raw payload field (checks tool_input as well)."""
        if key in self._raw_data:
            return self._raw_data[key]
        tool_input = self._raw_data.get("tool_input", {})
        if isinstance(tool_input, dict):
            return tool_input.get(key, default)
        return default

    @property
    def file_name(self) -> str:
        """Base name of the target file, or empty string."""
        return PurePath(self.file_path).name if self.file_path else ""

    @property
    def file_extension(self) -> str:
        """Extension of the target file including the dot, or empty string."""
        return PurePath(self.file_path).suffix if self.file_path else ""
