"""End-to-end tests for the hook engine."""

import asyncio
import time
from unittest.mock import patch

import pytest
import yaml

from hookguard.config import HookGuardSettings
from hookguard.engine import HookEngine
from hookguard.pipeline.errors import DuplicateHookError
from hookguard.pipeline.hook import create_hook_descriptor
from hookguard.pipeline.matchers import PatternMatcher
from hookguard.pipeline.overrides import parse_overrides
from hookguard.pipeline.registry import HookRegistry
from hookguard.pipeline.sink import InMemorySink
from hookguard.pipeline.verdict import HookResult, PipelineStatus, VerdictKind

import hook_fixtures


def make_engine(hooks, sink=None, **settings):
    return HookEngine(HookRegistry(hooks), HookGuardSettings(**settings), sink or InMemorySink())


def naming_hook():
    return create_hook_descriptor(
        "prevent-improved-files",
        hook_fixtures.prevent_improved_files,
        tier="critical",
        matcher=PatternMatcher("write|edit|multiedit", r"_(improved|enhanced|better|v2)\."),
    )


def payload(path="src/utils.py", content="x = 1\n", tool="write", phase="pre"):
    return {"phase": phase, "toolName": tool, "filePath": path, "content": content}


class TestScenarios:
    """Behavior of complete pipeline runs."""

    @pytest.mark.asyncio
    async def test_critical_block_on_improved_file(self):
        log = []

        async def high(evt, params):
            log.append("high")

        engine = make_engine([naming_hook(), create_hook_descriptor("secret-scan", high)])

        result = await engine.process(payload("src/utils_improved.py"))

        assert result.status is PipelineStatus.BLOCKED
        assert "utils_improved.py" in result.message
        assert [v.hook_id for v in result.per_hook] == ["prevent-improved-files"]
        assert log == []

    @pytest.mark.asyncio
    async def test_improved_js_without_content(self):
        engine = make_engine([naming_hook()])

        result = await engine.process({"phase": "pre", "toolName": "write", "filePath": "/x_improved.js"})

        assert result.status is PipelineStatus.BLOCKED
        assert result.message

    @pytest.mark.asyncio
    async def test_critical_block_discards_modifies(self):
        engine = make_engine(
            [
                create_hook_descriptor("marker", hook_fixtures.append_marker),
                naming_hook(),
            ]
        )

        result = await engine.process(payload("a_improved.py"))

        assert result.blocked
        assert result.final_content == "x = 1\n"

    @pytest.mark.asyncio
    async def test_no_hooks_is_allow(self):
        engine = make_engine([])

        result = await engine.process(payload())

        assert result.status is PipelineStatus.ALLOW
        assert result.per_hook == ()
        assert result.final_content == "x = 1\n"

    @pytest.mark.asyncio
    async def test_high_timeout_and_warn(self):
        engine = make_engine(
            [
                create_hook_descriptor("slow", hook_fixtures.slow_hook, timeout_ms=50, params={"sleep_s": 5}),
                create_hook_descriptor("todo", hook_fixtures.warn_todo),
            ]
        )

        result = await engine.process(payload(content="# TODO: fix\n"))

        assert result.status is PipelineStatus.WARNING
        assert result.message == "content contains TODO"
        kinds = {v.hook_id: v.kind for v in result.per_hook}
        assert kinds == {"slow": VerdictKind.ERROR, "todo": VerdictKind.WARN}

    @pytest.mark.asyncio
    async def test_two_modifies_append_in_order(self):
        engine = make_engine(
            [
                create_hook_descriptor("a", hook_fixtures.append_marker, params={"marker": "# A\n"}),
                create_hook_descriptor("b", hook_fixtures.append_marker, params={"marker": "# B\n"}),
            ]
        )

        result = await engine.process(payload(content="body\n"))

        assert result.status is PipelineStatus.MODIFIED
        assert result.final_content == "body\n# A\n# B\n"

    @pytest.mark.asyncio
    async def test_background_block_is_advisory(self):
        sink = InMemorySink()

        async def audit(evt, params):
            return HookResult.block("audit disagrees")

        engine = make_engine([create_hook_descriptor("audit", audit, tier="background")], sink=sink)

        result = await engine.process(payload())
        await engine.drain(1)

        assert result.status is PipelineStatus.ALLOW
        assert result.background == ("audit",)
        assert [r.verdict.kind for r in sink.records] == [VerdictKind.BLOCK]
        assert sink.records[0].discarded

    @pytest.mark.asyncio
    async def test_faulty_hooks_fail_open(self):
        engine = make_engine(
            [
                create_hook_descriptor("boom", hook_fixtures.explode, tier="critical"),
                create_hook_descriptor("bad", lambda evt, params: "garbage"),
            ]
        )

        result = await engine.process(payload())

        assert result.status is PipelineStatus.ALLOW
        assert [v.hook_id for v in result.errors] == ["boom", "bad"]

    @pytest.mark.asyncio
    async def test_invalid_result_does_not_hide_other_verdicts(self):
        engine = make_engine(
            [
                create_hook_descriptor("todo", hook_fixtures.warn_todo),
                create_hook_descriptor("bad-modify", lambda evt, params: {"kind": "modify", "content": 5}),
            ]
        )

        result = await engine.process(payload(content="# TODO\n"))

        assert result.status is PipelineStatus.WARNING
        assert result.error is None
        kinds = {v.hook_id: v.kind for v in result.per_hook}
        assert kinds == {"todo": VerdictKind.WARN, "bad-modify": VerdictKind.ERROR}

    @pytest.mark.asyncio
    async def test_legacy_block_dict(self):
        engine = make_engine([create_hook_descriptor("legacy", hook_fixtures.legacy_block, tier="critical")])

        result = await engine.process(payload())

        assert result.blocked
        assert result.message == "legacy says no"

    @pytest.mark.asyncio
    async def test_phase_filtering(self):
        engine = make_engine([create_hook_descriptor("post-check", hook_fixtures.legacy_block, phase="post")])

        assert (await engine.process(payload(phase="pre"))).status is PipelineStatus.ALLOW
        assert (await engine.process(payload(phase="post"))).blocked

    @pytest.mark.asyncio
    async def test_host_native_payload(self):
        engine = make_engine([naming_hook()])

        result = await engine.process(
            {
                "hook_event_name": "PreToolUse",
                "tool_name": "Write",
                "tool_input": {"file_path": "/repo/api_v2.py", "content": "pass\n"},
            }
        )

        assert result.blocked

    @pytest.mark.asyncio
    async def test_parallel_high_tier_latency(self):
        async def sleeper(evt, params):
            await asyncio.sleep(0.1)

        engine = make_engine([create_hook_descriptor(f"h{i}", sleeper) for i in range(4)])

        start = time.perf_counter()
        await engine.process(payload())

        assert time.perf_counter() - start < 0.35


class TestFailOpen:
    """Intake and engine faults resolve to allow."""

    @pytest.mark.asyncio
    async def test_malformed_event(self):
        engine = make_engine([naming_hook()])

        result = await engine.process({"toolName": "write"})

        assert result.status is PipelineStatus.ALLOW
        assert result.error.startswith("malformed event:")

    @pytest.mark.asyncio
    async def test_non_object_payload(self):
        result = await make_engine([]).process(None)

        assert result.status is PipelineStatus.ALLOW
        assert result.error is not None

    @pytest.mark.asyncio
    async def test_unexpected_engine_fault(self, caplog):
        engine = make_engine([naming_hook()])

        with patch.object(engine.scheduler, "schedule", side_effect=RuntimeError("scheduler broke")):
            result = await engine.process(payload("a_improved.py"))

        assert result.status is PipelineStatus.ALLOW
        assert result.error == "engine fault: RuntimeError: scheduler broke"
        assert result.final_content == "x = 1\n"
        assert "Hook engine fault" in caplog.text


class TestBypassAndOverrides:
    """Settings that change hook selection."""

    @pytest.mark.asyncio
    async def test_bypass(self):
        engine = make_engine([naming_hook()], bypass=True)

        result = await engine.process(payload("a_improved.py"))

        assert result.status is PipelineStatus.ALLOW
        assert result.bypassed == "HOOKGUARD_BYPASS is set"
        assert result.final_content == "x = 1\n"

    @pytest.mark.asyncio
    async def test_ci_bypass(self):
        engine = make_engine([naming_hook()], ci_bypass=True, ci="true")

        result = await engine.process(payload("a_improved.py"))

        assert result.bypassed == "CI bypass is enabled"

    @pytest.mark.asyncio
    async def test_bypass_keeps_host_native_content(self):
        engine = make_engine([naming_hook()], bypass=True)

        result = await engine.process(
            {
                "hook_event_name": "PreToolUse",
                "tool_name": "Write",
                "tool_input": {"file_path": "/repo/api_v2.py", "content": "pass\n"},
            }
        )

        assert result.bypassed
        assert result.final_content == "pass\n"

    @pytest.mark.asyncio
    async def test_force_skip_override(self):
        registry = HookRegistry([naming_hook()], overrides=parse_overrides("-prevent-improved-files"))
        engine = HookEngine(registry, HookGuardSettings(), InMemorySink())

        result = await engine.process(payload("a_improved.py"))

        assert result.status is PipelineStatus.ALLOW
        assert result.per_hook == ()

    @pytest.mark.asyncio
    async def test_default_registry_uses_settings_overrides(self):
        engine = HookEngine(settings=HookGuardSettings(overrides="+todo"), sink=InMemorySink())
        engine.registry.register(create_hook_descriptor("todo", hook_fixtures.warn_todo, matcher="edit"))

        result = await engine.process(payload(content="TODO"))

        assert result.status is PipelineStatus.WARNING


class TestLifecycle:
    """Construction, reload and single-shot processing."""

    def test_from_settings_loads_manifest(self, tmp_path):
        path = tmp_path / "hookguard.yaml"
        path.write_text(
            yaml.dump(
                {
                    "hookguard": {"pipeline_timeout_ms": 2500},
                    "hooks": [
                        {
                            "id": "prevent-improved-files",
                            "handler": "hook_fixtures:prevent_improved_files",
                            "phase": "pre",
                            "matcherPattern": "write|edit",
                            "priorityTier": "critical",
                        }
                    ],
                }
            )
        )

        engine = HookEngine.from_settings(HookGuardSettings.from_yaml(path), sink=InMemorySink())

        assert engine.scheduler.pipeline_timeout_ms == 2500
        assert "prevent-improved-files" in engine.registry
        assert engine.process_sync(payload("x_v2.py")).blocked

    def test_from_settings_without_manifest(self):
        engine = HookEngine.from_settings(HookGuardSettings())
        assert len(engine.registry) == 0

    def test_process_sync_drains_background(self):
        sink = InMemorySink()

        async def audit(evt, params):
            await asyncio.sleep(0.02)
            return HookResult.warn("audited")

        engine = make_engine([create_hook_descriptor("audit", audit, tier="background")], sink=sink)

        result = engine.process_sync(payload())

        assert result.status is PipelineStatus.ALLOW
        assert [r.verdict.message for r in sink.records] == ["audited"]

    def test_process_sync_does_not_wait_for_hung_sync_hook(self):
        engine = make_engine(
            [
                create_hook_descriptor(
                    "hung", hook_fixtures.blocking_sleep, tier="critical", timeout_ms=200, params={"sleep_s": 3}
                )
            ]
        )

        start = time.perf_counter()
        result = engine.process_sync(payload())
        elapsed = time.perf_counter() - start

        assert result.status is PipelineStatus.ALLOW
        assert [(v.hook_id, v.kind) for v in result.per_hook] == [("hung", VerdictKind.ERROR)]
        assert elapsed < 1.5

    @pytest.mark.asyncio
    async def test_reload_swaps_hooks(self):
        engine = make_engine([naming_hook()])
        assert (await engine.process(payload("a_improved.py"))).blocked

        engine.reload([create_hook_descriptor("todo", hook_fixtures.warn_todo)])

        assert (await engine.process(payload("a_improved.py"))).status is PipelineStatus.ALLOW

    def test_reload_duplicate_keeps_previous(self):
        engine = make_engine([naming_hook()])

        with pytest.raises(DuplicateHookError):
            engine.reload([naming_hook(), naming_hook()])

        assert "prevent-improved-files" in engine.registry
