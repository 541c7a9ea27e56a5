"""Tests for per-hook overrides."""

from hookguard.pipeline.overrides import NO_OVERRIDES, HookOverride, parse_overrides


class TestParseOverrides:
    """Test override string parsing."""

    def test_empty(self):
        assert parse_overrides(None) is NO_OVERRIDES
        assert parse_overrides("") is NO_OVERRIDES
        assert not parse_overrides(" , ")

    def test_prefixes(self):
        overrides = parse_overrides("+secret-scan, -docs ,naming")

        assert overrides.get_override("secret-scan") is HookOverride.FORCE_RUN
        assert overrides.get_override("docs") is HookOverride.FORCE_SKIP
        assert overrides.get_override("naming") is HookOverride.NORMAL
        assert overrides.get_override("other") is HookOverride.NORMAL
        assert overrides.raw == "+secret-scan, -docs ,naming"

    def test_bare_prefix_ignored(self):
        assert parse_overrides("+,-").overrides == {}


class TestShouldRun:
    """Test the run decision."""

    def test_force_run_ignores_matcher(self):
        assert parse_overrides("+a").should_run("a", False)

    def test_force_skip_ignores_matcher(self):
        assert not parse_overrides("-a").should_run("a", True)

    def test_normal_follows_matcher(self):
        overrides = parse_overrides("-a")
        assert overrides.should_run("b", True)
        assert not overrides.should_run("b", False)
