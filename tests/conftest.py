"""Shared fixtures for hookguard tests."""

import pytest

from hookguard.config import clear_config_instance
from hookguard.pipeline.hook import get_catalog

_ENV_VARS = (
    "HOOKGUARD_CONFIG_DIR",
    "HOOKGUARD_BYPASS",
    "HOOKGUARD_CI_BYPASS",
    "HOOKGUARD_VERBOSE",
    "HOOKGUARD_HOOKS",
    "HOOKGUARD_PIPELINE_TIMEOUT_MS",
    "HOOK_BYPASS",
    "HOOK_CI_BYPASS",
    "HOOK_VERBOSE",
    "CI",
)


@pytest.fixture(autouse=True)
def cleanup(monkeypatch):
    """Isolate tests from the caller's environment and global state."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield
    clear_config_instance()
    get_catalog().clear()


@pytest.fixture
def write_payload():
    """Pre-phase write payload in the camelCase shape."""
    return {
        "phase": "pre",
        "toolName": "write",
        "filePath": "src/utils.py",
        "content": "def helper():\n    return 1\n",
    }
