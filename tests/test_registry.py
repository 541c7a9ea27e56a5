"""Tests for hook descriptors, the @hook catalog and the registry."""

import threading

import pytest

from hookguard.pipeline.errors import DuplicateHookError, InvalidDescriptorError
from hookguard.pipeline.event import Event, Phase
from hookguard.pipeline.hook import (
    HookDescriptor,
    HookPhase,
    PriorityTier,
    create_hook_descriptor,
    get_catalog,
    hook,
)
from hookguard.pipeline.matchers import PatternMatcher, PredicateMatcher
from hookguard.pipeline.overrides import parse_overrides
from hookguard.pipeline.registry import HookRegistry


def noop(event, params):
    return None


def make(hook_id, tier="high", **kwargs):
    return create_hook_descriptor(hook_id, noop, tier=tier, **kwargs)


def write_event(path="src/app.py", phase=Phase.PRE):
    return Event(phase=phase, tool_name="write", file_path=path, content="x")


class TestHookDescriptor:
    """Test descriptor validation."""

    def test_defaults(self):
        descriptor = make("naming", tier="critical")

        assert descriptor.phase is HookPhase.PRE
        assert descriptor.priority_tier is PriorityTier.CRITICAL
        assert descriptor.timeout_ms == 2000
        assert descriptor.enabled
        assert isinstance(descriptor.matcher, PredicateMatcher)

    def test_string_matcher_becomes_pattern_matcher(self):
        descriptor = make("naming", matcher="write|edit")
        assert descriptor.matcher == PatternMatcher(tool_pattern="write|edit")

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"id": ""},
            {"id": "   "},
            {"handler": "not callable"},
            {"phase": "sometimes"},
            {"priority_tier": "urgent"},
            {"timeout_ms": 0},
            {"timeout_ms": -5},
            {"timeout_ms": 1.5},
            {"timeout_ms": True},
            {"enabled": "yes"},
            {"matcher": 42},
        ],
    )
    def test_invalid_fields(self, kwargs):
        fields = {"id": "h", "handler": noop, **kwargs}
        with pytest.raises(InvalidDescriptorError):
            HookDescriptor(**fields)

    def test_create_with_invalid_tier(self):
        with pytest.raises(InvalidDescriptorError):
            create_hook_descriptor("h", noop, tier="urgent")

    def test_accepts_phase(self):
        both = make("h", phase="both")
        post = make("p", phase="post")

        assert both.accepts_phase("pre") and both.accepts_phase("post")
        assert post.accepts_phase("post") and not post.accepts_phase("pre")

    def test_is_async(self):
        async def handler(event, params):
            return None

        assert create_hook_descriptor("a", handler).is_async
        assert not make("s").is_async


class TestHookDecorator:
    """Test the @hook decorator and catalog."""

    def test_registers_in_catalog(self):
        @hook(tier="critical", matcher="write")
        def prevent_improved_files(event, params):
            """Block improved copies.

            Long description.
            """
            return None

        descriptor = get_catalog().get("prevent-improved-files")
        assert descriptor is not None
        assert descriptor.priority_tier is PriorityTier.CRITICAL
        assert descriptor.timeout_ms == 2000
        assert descriptor.description == "Block improved copies."
        assert prevent_improved_files._hook_descriptor is descriptor

    def test_explicit_id_and_timeout(self):
        @hook(id="docs", tier="background", timeout_ms=750, params={"root": "docs"})
        def enforce_docs(event, params):
            return None

        descriptor = get_catalog().get("docs")
        assert descriptor.timeout_ms == 750
        assert descriptor.params == {"root": "docs"}
        assert [d.id for d in get_catalog().get_all()] == ["docs"]


class TestRegistrySnapshot:
    """Test ordering and selection."""

    def test_ordered_by_tier_then_registration(self):
        registry = HookRegistry([make("bg", "background"), make("h1"), make("c1", "critical"), make("h2")])
        assert [d.id for d in registry.snapshot.ordered()] == ["c1", "h1", "h2", "bg"]

    def test_hooks_for_filters_phase_matcher_and_enabled(self):
        registry = HookRegistry(
            [
                make("any"),
                make("post-only", phase="post"),
                make("edit-only", matcher="edit"),
                make("off", enabled=False),
                make("py", matcher=PatternMatcher("*", r"\.py$")),
            ]
        )

        assert [d.id for d in registry.hooks_for(write_event())] == ["any", "py"]
        assert [d.id for d in registry.hooks_for(write_event("README.md"))] == ["any"]

    def test_failing_matcher_skips_hook(self, caplog):
        def broken(event):
            raise ValueError("bad matcher")

        registry = HookRegistry([make("broken", matcher=broken), make("ok")])

        assert [d.id for d in registry.hooks_for(write_event())] == ["ok"]
        assert "Matcher for hook 'broken' failed" in caplog.text

    def test_overrides(self):
        registry = HookRegistry(
            [make("edit-only", matcher="edit"), make("any"), make("off", enabled=False)],
            overrides=parse_overrides("+edit-only,-any,+off"),
        )

        # Force-run bypasses the matcher, never the enabled flag
        assert [d.id for d in registry.hooks_for(write_event())] == ["edit-only"]


class TestHookRegistry:
    """Test registration, reload and enable/disable."""

    def test_duplicate_ids_rejected_at_construction(self):
        with pytest.raises(DuplicateHookError, match="Duplicate hook id 'a'"):
            HookRegistry([make("a"), make("a")])

    def test_register_duplicate_leaves_registry_unchanged(self):
        registry = HookRegistry([make("a")])
        version = registry.version

        with pytest.raises(DuplicateHookError):
            registry.register_all([make("b"), make("a")])

        assert registry.version == version
        assert "b" not in registry

    def test_register_bumps_version(self):
        registry = HookRegistry()
        registry.register(make("a"))

        assert registry.version == 2
        assert len(registry) == 1
        assert registry.get("a").id == "a"

    def test_snapshot_is_stable_across_reload(self):
        registry = HookRegistry([make("a"), make("b")])
        before = registry.snapshot

        registry.reload([make("c")])

        assert [d.id for d in before.hooks] == ["a", "b"]
        assert [d.id for d in registry.snapshot.hooks] == ["c"]
        assert registry.snapshot.version == before.version + 1

    def test_reload_with_duplicates_keeps_previous_snapshot(self):
        registry = HookRegistry([make("a")])
        before = registry.snapshot

        with pytest.raises(DuplicateHookError):
            registry.reload([make("x"), make("x")])

        assert registry.snapshot is before

    def test_reload_invalidates_changed_and_removed_hooks(self):
        registry = HookRegistry(
            [make("kept", matcher="write"), make("changed", matcher="write"), make("gone", matcher="write")]
        )
        registry.hooks_for(write_event())
        assert len(registry.cache) == 3

        registry.reload([make("kept", matcher="write"), make("changed", matcher="edit")])

        assert ("kept", "tool:write") in registry.cache
        assert ("changed", "tool:write") not in registry.cache
        assert ("gone", "tool:write") not in registry.cache

    def test_run_on_old_snapshot_does_not_leak_into_reloaded_hook(self):
        registry = HookRegistry([make("naming", matcher="write")])
        old = registry.snapshot

        registry.reload([make("naming", matcher="edit")])
        # An in-flight run still evaluating the previous snapshot
        assert [d.id for d in old.hooks_for(write_event(), registry.cache)] == ["naming"]

        edit_event = Event(phase=Phase.PRE, tool_name="edit", file_path="src/app.py", content="x")
        assert [d.id for d in registry.hooks_for(edit_event)] == ["naming"]
        assert registry.hooks_for(write_event()) == []

    def test_disable_and_enable(self):
        registry = HookRegistry([make("a", matcher="write")])
        registry.hooks_for(write_event())

        registry.disable("a")
        assert registry.hooks_for(write_event()) == []
        assert ("a", "tool:write") not in registry.cache

        registry.enable("a")
        assert [d.id for d in registry.hooks_for(write_event())] == ["a"]

    def test_enable_unknown_hook(self):
        with pytest.raises(KeyError):
            HookRegistry().enable("missing")

    def test_concurrent_registration(self):
        registry = HookRegistry()

        def worker(n):
            for i in range(20):
                registry.register(make(f"h{n}-{i}"))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(registry) == 80
        assert registry.version == 81
