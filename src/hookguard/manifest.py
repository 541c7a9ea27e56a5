"""Hook manifest loading.

A manifest is a YAML (or JSON) document with a top-level ``hooks`` list:

    hooks:
      - id: prevent-improved-files
        handler: myhooks.naming:prevent_improved_files
        phase: pre
        matcherPattern: "Write|Edit|MultiEdit"
        pathPattern: "_(improved|enhanced|v2)\\."
        priorityTier: critical
        timeoutMs: 2000

Entries without ``handler`` refer to a hook registered with ``@hook``
under the same id. Any invalid entry fails the whole load.
"""

from __future__ import annotations

import importlib
import logging
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, StrictBool, ValidationError, field_validator

from hookguard.pipeline.errors import ConfigurationError, DuplicateHookError, InvalidDescriptorError
from hookguard.pipeline.hook import (
    DEFAULT_TIER_TIMEOUTS_MS,
    HandlerFn,
    HookDescriptor,
    HookPhase,
    PriorityTier,
    get_catalog,
)
from hookguard.pipeline.matchers import MATCH_ALL, PatternMatcher

logger = logging.getLogger(__name__)


class HookManifestEntry(BaseModel):
    """One hook entry of the manifest (camelCase or snake_case keys)."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)

    id: str = Field(min_length=1)
    handler: str | None = None
    phase: HookPhase
    matcher_pattern: str = Field(alias="matcherPattern")
    path_pattern: str | None = Field(default=None, alias="pathPattern")
    priority_tier: PriorityTier = Field(alias="priorityTier")
    timeout_ms: int | None = Field(default=None, gt=0, alias="timeoutMs")
    enabled: StrictBool = True
    params: dict[str, Any] = Field(default_factory=dict)
    description: str = ""

    @field_validator("matcher_pattern", "path_pattern")
    @classmethod
    def _check_regex(cls, value: str | None) -> str | None:
        if value is None or value in MATCH_ALL:
            return value
        try:
            re.compile(value)
        except re.error as e:
            raise ValueError(f"invalid regex {value!r}: {e}") from None
        return value


def resolve_handler(path: str) -> HandlerFn:
    """Import a handler from ``module:function`` or ``module.function``.

    Raises:
        ImportError: If the module cannot be imported
        AttributeError: If the function does not exist
        Exception: Whatever the module raises while being imported
    """
    if ":" in path:
        module_path, func_name = path.split(":", 1)
    else:
        module_path, func_name = path.rsplit(".", 1)
    module = importlib.import_module(module_path)
    return getattr(module, func_name)


def build_descriptor(entry: HookManifestEntry, default_timeout_ms: int | None = None) -> HookDescriptor:
    """Turn a validated manifest entry into a HookDescriptor.

    Raises:
        InvalidDescriptorError: If the handler cannot be resolved
    """
    params = dict(entry.params)
    catalogued = None
    if entry.handler:
        try:
            handler = resolve_handler(entry.handler)
        except Exception as e:
            # Import-time failures of the handler module included
            raise InvalidDescriptorError(entry.id, f"cannot load handler '{entry.handler}': {e}") from e
        if not callable(handler):
            raise InvalidDescriptorError(entry.id, f"handler '{entry.handler}' is not callable")
    else:
        catalogued = get_catalog().get(entry.id)
        if catalogued is None:
            raise InvalidDescriptorError(entry.id, "no handler given and no @hook registered with this id")
        handler = catalogued.handler
        params = {**catalogued.params, **params}

    if entry.timeout_ms is not None:
        timeout_ms = entry.timeout_ms
    elif catalogued is not None:
        timeout_ms = catalogued.timeout_ms
    else:
        timeout_ms = default_timeout_ms or DEFAULT_TIER_TIMEOUTS_MS[entry.priority_tier]

    return HookDescriptor(
        id=entry.id,
        handler=handler,
        phase=entry.phase,
        matcher=PatternMatcher(tool_pattern=entry.matcher_pattern, path_pattern=entry.path_pattern),
        priority_tier=entry.priority_tier,
        timeout_ms=timeout_ms,
        enabled=entry.enabled,
        params=params,
        description=entry.description or (catalogued.description if catalogued else ""),
    )


def parse_manifest(data: Any, default_timeout_ms: int | None = None) -> list[HookDescriptor]:
    """Build descriptors from a parsed manifest document.

    Args:
        data: Parsed document (mapping with a ``hooks`` list, or the list itself)
        default_timeout_ms: Timeout for entries without one (None = tier default)

    Returns:
        Descriptors in manifest order

    Raises:
        ConfigurationError: If the document shape is wrong
        InvalidDescriptorError: If an entry is invalid
        DuplicateHookError: If two entries share an id
    """
    if data is None:
        return []
    if isinstance(data, dict):
        entries = data.get("hooks") or []
    else:
        entries = data
    if not isinstance(entries, list):
        raise ConfigurationError(f"'hooks' must be a list, got {type(entries).__name__}")

    descriptors: list[HookDescriptor] = []
    seen: set[str] = set()
    for index, raw in enumerate(entries):
        if not isinstance(raw, dict):
            raise InvalidDescriptorError(f"#{index}", f"entry must be a mapping, got {type(raw).__name__}")
        hook_id = str(raw.get("id", f"#{index}"))
        try:
            entry = HookManifestEntry.model_validate(raw)
        except ValidationError as e:
            reasons = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'entry'}: {err['msg']}" for err in e.errors()
            )
            raise InvalidDescriptorError(hook_id, reasons) from None
        if entry.id in seen:
            raise DuplicateHookError(entry.id)
        seen.add(entry.id)
        descriptors.append(build_descriptor(entry, default_timeout_ms))

    logger.debug("Parsed manifest with %d hook(s)", len(descriptors))
    return descriptors


def load_manifest(path: Path, default_timeout_ms: int | None = None) -> list[HookDescriptor]:
    """Load descriptors from a YAML/JSON manifest file.

    Raises:
        ConfigurationError: If the file is missing or unparsable
        InvalidDescriptorError: If an entry is invalid
        DuplicateHookError: If two entries share an id
    """
    if not path.exists():
        raise ConfigurationError(f"Hook manifest not found: {path}")
    try:
        with path.open() as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse hook manifest {path}: {e}") from e

    descriptors = parse_manifest(data, default_timeout_ms)
    logger.info("Loaded %d hook(s) from %s", len(descriptors), path)
    return descriptors
