"""Tests for chain rendering."""

from hookguard.pipeline.chain import group_by_tier, render_chain, to_mermaid
from hookguard.pipeline.hook import PriorityTier, create_hook_descriptor
from hookguard.pipeline.matchers import PatternMatcher


def noop(event, params):
    return None


def hooks():
    return [
        create_hook_descriptor("naming", noop, tier="critical", matcher=PatternMatcher("write|edit", r"_v2\.")),
        create_hook_descriptor("secret-scan", noop, tier="high"),
        create_hook_descriptor("lint", noop, tier="high", enabled=False),
        create_hook_descriptor("audit", noop, tier="background", phase="post"),
    ]


class TestGroupByTier:
    def test_groups_keep_order(self):
        groups = group_by_tier(hooks())

        assert [d.id for d in groups[PriorityTier.CRITICAL]] == ["naming"]
        assert [d.id for d in groups[PriorityTier.HIGH]] == ["secret-scan", "lint"]
        assert [d.id for d in groups[PriorityTier.BACKGROUND]] == ["audit"]


class TestRenderChain:
    def test_empty(self):
        assert render_chain([]) == "(no hooks)"

    def test_ascii_chart(self):
        chart = render_chain(hooks())

        assert "CRITICAL (sequential, short-circuits on block)" in chart
        assert "HIGH (parallel, awaited)" in chart
        assert "BACKGROUND (detached, advisory)" in chart
        assert "naming (2000ms)" in chart
        assert r"match: pre write|edit @ _v2\." in chart
        assert "lint (4000ms) [disabled]" in chart
        assert chart.index("naming") < chart.index("secret-scan") < chart.index("audit")

    def test_skips_empty_tiers(self):
        chart = render_chain([create_hook_descriptor("only", noop, tier="high")])

        assert "CRITICAL" not in chart
        assert "▼" not in chart


class TestMermaid:
    def test_graph(self):
        graph = to_mermaid(hooks())

        assert graph.startswith("graph TD")
        assert 'start --> n0_naming["naming"]' in graph
        assert 'n0_naming --> n1_secret_scan["secret-scan"]' in graph
        assert "n1_secret_scan --> decide" in graph
        assert 'decide -.-> n3_audit["audit"]' in graph

    def test_node_ids_are_sanitized_and_unique(self):
        graph = to_mermaid(
            [
                create_hook_descriptor("a-b", noop, tier="high"),
                create_hook_descriptor("a_b", noop, tier="high"),
                create_hook_descriptor("team.lint check", noop, tier="high"),
            ]
        )

        assert 'start --> n0_a_b["a-b"]' in graph
        assert 'start --> n1_a_b["a_b"]' in graph
        assert 'start --> n2_team_lint_check["team.lint check"]' in graph
        assert "n2_team_lint_check --> decide" in graph
