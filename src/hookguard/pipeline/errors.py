"""Error taxonomy for the hook engine.

Configuration errors are fatal and surface to whoever loads the registry.
Everything else is absorbed into verdicts and never leaves the pipeline.
"""

from __future__ import annotations


class HookGuardError(Exception):
    """Base class for all hookguard errors."""


class MalformedEventError(HookGuardError):
    """Inbound payload does not describe a valid event."""


class ConfigurationError(HookGuardError):
    """Hook configuration could not be loaded."""


class DuplicateHookError(ConfigurationError):
    """Two hook descriptors share the same id."""

    def __init__(self, hook_id: str) -> None:
        super().__init__(f"Duplicate hook id '{hook_id}'")
        self.hook_id = hook_id


class InvalidDescriptorError(ConfigurationError):
    """A hook descriptor has an invalid field."""

    def __init__(self, hook_id: str, reason: str) -> None:
        super().__init__(f"Invalid hook descriptor '{hook_id}': {reason}")
        self.hook_id = hook_id
        self.reason = reason


class HookFault(HookGuardError):
    """A single hook failed. Always collapsed to an error verdict."""

    def __init__(self, hook_id: str, message: str) -> None:
        super().__init__(message)
        self.hook_id = hook_id


class HookTimeoutError(HookFault):
    """Hook did not produce a result within its budget."""

    def __init__(self, hook_id: str, timeout_ms: int) -> None:
        super().__init__(hook_id, f"hook {hook_id} timed out")
        self.timeout_ms = timeout_ms


class HookExecutionError(HookFault):
    """Hook raised, or returned something that is not a result."""
