"""Configuration management for hookguard.

Settings come from the first ``hookguard.yaml`` found in this order:

1. ``$HOOKGUARD_CONFIG_DIR/hookguard.yaml``
2. ``./.hookguard/hookguard.yaml`` (per-repository hook sets)
3. ``~/.hookguard/hookguard.yaml``

Without a file, default settings apply and no hooks are registered.

Engine settings live under the ``hookguard:`` key; the hook manifest is the
top-level ``hooks:`` list of the same file unless ``manifest_path`` points
elsewhere. Environment variables (``HOOKGUARD_*``, plus the legacy
``HOOK_BYPASS``, ``HOOK_VERBOSE`` and ``HOOK_CI_BYPASS``) fill anything the
file does not set.
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Any

import yaml
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "hookguard.yaml"


class HookGuardSettings(BaseSettings):
    """Engine settings, read from the environment and hookguard.yaml."""

    model_config = SettingsConfigDict(
        env_prefix="HOOKGUARD_",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Global latency bound for critical + high tiers
    pipeline_timeout_ms: int = Field(default=30000, gt=0)

    # Fallback per-hook timeout for manifest entries without timeoutMs
    # (None = per-tier defaults)
    default_timeout_ms: int | None = Field(default=None, gt=0)

    # Cap on concurrently running high-tier hooks (None = unbounded)
    max_concurrency: int | None = Field(default=None, ge=1)

    # Seconds a single-shot process waits for background hooks before exiting
    drain_timeout_s: float = Field(default=5.0, ge=0)

    verbose: bool = Field(
        default=False,
        validation_alias=AliasChoices("HOOKGUARD_VERBOSE", "HOOK_VERBOSE"),
    )

    # Emergency escape: every event is allowed without running hooks
    bypass: bool = Field(
        default=False,
        validation_alias=AliasChoices("HOOKGUARD_BYPASS", "HOOK_BYPASS"),
    )

    # Bypass only when running under CI
    ci_bypass: bool = Field(
        default=False,
        validation_alias=AliasChoices("HOOKGUARD_CI_BYPASS", "HOOK_CI_BYPASS"),
    )
    ci: str | None = Field(default=None, validation_alias=AliasChoices("CI"))

    # Per-hook overrides: "+hook-id,-other-hook"
    overrides: str = Field(default="", validation_alias=AliasChoices("HOOKGUARD_HOOKS"))

    # Hook manifest (defaults to the config file itself)
    manifest_path: Path | None = None

    # Path the settings were loaded from
    config_path: Path | None = None

    @property
    def is_ci(self) -> bool:
        return (self.ci or "").strip().lower() in ("1", "true", "yes")

    def bypass_reason(self) -> str | None:
        """Reason the engine should be bypassed, or None."""
        if self.bypass:
            return "HOOKGUARD_BYPASS is set"
        if self.ci_bypass and self.is_ci:
            return "CI bypass is enabled"
        return None

    @property
    def resolved_manifest_path(self) -> Path | None:
        return self.manifest_path or self.config_path

    @classmethod
    def from_yaml(cls, yaml_path: Path, **kwargs: Any) -> HookGuardSettings:
        """Load settings from the `hookguard:` section of a YAML file.

        Args:
            yaml_path: Path to hookguard.yaml
            **kwargs: Values that take precedence over the file

        Returns:
            HookGuardSettings instance
        """
        section: dict[str, Any] = {}
        if yaml_path.exists():
            with yaml_path.open() as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                logger.warning("Ignoring %s: top level is %s, not a mapping", yaml_path, type(data).__name__)
                data = {}
            section = data.get("hookguard") or {}
            if not isinstance(section, dict):
                logger.warning("Invalid hookguard section format in %s: %s", yaml_path, type(section).__name__)
                section = {}

        manifest = section.get("manifest_path")
        if manifest and not Path(manifest).is_absolute():
            section["manifest_path"] = yaml_path.parent / manifest

        return cls(**{**section, "config_path": yaml_path, **kwargs})


def discover_config_path() -> Path | None:
    """Find hookguard.yaml following the discovery precedence."""
    env_config_dir = os.environ.get("HOOKGUARD_CONFIG_DIR")
    if env_config_dir:
        path = Path(env_config_dir) / CONFIG_FILENAME
        logger.info("Using config directory from environment: %s", env_config_dir)
        return path if path.exists() else None

    for candidate in (Path.cwd() / ".hookguard" / CONFIG_FILENAME, Path.home() / ".hookguard" / CONFIG_FILENAME):
        if candidate.exists():
            return candidate
    return None


def configure_logging(settings: HookGuardSettings) -> None:
    """Raise hookguard loggers to DEBUG when verbose is set."""
    if not settings.verbose:
        return
    hookguard_logger = logging.getLogger("hookguard")
    hookguard_logger.setLevel(logging.DEBUG)
    # Ensure messages appear even when the host did not configure logging
    if not hookguard_logger.handlers and not logging.getLogger().handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(name)s:%(levelname)s: %(message)s"))
        hookguard_logger.addHandler(handler)


# Global configuration instance
_config_instance: HookGuardSettings | None = None
_config_lock = threading.Lock()


def get_config() -> HookGuardSettings:
    """Get the configuration instance."""
    global _config_instance

    if _config_instance is None:
        with _config_lock:
            # Double-check locking pattern
            if _config_instance is None:
                config_path = discover_config_path()
                if config_path is not None:
                    logger.info("Loading hookguard config from: %s", config_path)
                    _config_instance = HookGuardSettings.from_yaml(config_path)
                else:
                    logger.info("No hookguard.yaml found in any location, using defaults")
                    _config_instance = HookGuardSettings()

    return _config_instance


def set_config_instance(config: HookGuardSettings) -> None:
    """Set the global configuration instance (for testing)."""
    global _config_instance
    _config_instance = config


def clear_config_instance() -> None:
    """Clear the global configuration instance (for testing)."""
    global _config_instance
    _config_instance = None
