"""hookguard - tiered policy hooks for agent file operations."""

from hookguard.engine import HookEngine
from hookguard.pipeline import Event, HookResult, PipelineResult, create_hook_descriptor, hook

__version__ = "0.1.0"

__all__ = [
    "create_hook_descriptor",
    "Event",
    "hook",
    "HookEngine",
    "HookResult",
    "PipelineResult",
]
