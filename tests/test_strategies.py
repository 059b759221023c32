"""Tests for strategy parsing, selection policies, and usage tracking."""
from __future__ import annotations

import pytest
from trajmem_core.errors import StrategyNotFoundError, StrategyParseError
from trajmem_optimizer.formatting import format_selection, format_strategy_report
from trajmem_optimizer.strategies import load_strategies, parse_strategies
from trajmem_optimizer.types import SelectionMode, Strategy, StrategySelection

STRATEGIES = [Strategy(name="alpha"), Strategy(name="beta"), Strategy(name="gamma")]


async def _use(ctx, strategy: str, score: float | None, label: str = "briefing"):
    trajectory_id = f"{strategy}-{await _count(ctx)}"
    await ctx.selector.record_usage(label, strategy, trajectory_id)
    if score is not None:
        await ctx.selector.update_usage_score(trajectory_id, score)
    return trajectory_id


async def _count(ctx) -> int:
    return len(await ctx.usages.list())


# ── Parsing ────────────────────────────────────────────────────


class TestParseStrategies:
    def test_mapping_form(self):
        strategies = parse_strategies(
            "strategies:\n"
            "  - name: inbox-first\n"
            "    description: Mail first\n"
            "    approach_prompt: |\n"
            "      Read every unread thread.\n"
            "  - name: calendar-first\n"
        )
        assert [s.name for s in strategies] == ["inbox-first", "calendar-first"]
        assert strategies[0].description == "Mail first"
        assert strategies[0].approach_prompt == "Read every unread thread.\n"
        assert strategies[1].approach_prompt == ""

    def test_bare_list_form(self):
        strategies = parse_strategies("- name: a\n- name: b\n")
        assert [s.name for s in strategies] == ["a", "b"]

    def test_empty_body(self):
        assert parse_strategies("") == []

    @pytest.mark.parametrize(
        "body",
        [
            "strategies: [unclosed\n",
            "strategies: just a string\n",
            "- not a mapping\n",
            "- description: no name\n",
            "- name: dup\n- name: dup\n",
        ],
    )
    def test_malformed(self, body):
        with pytest.raises(StrategyParseError):
            parse_strategies(body)

    def test_load_from_document(self, instructions_doc):
        strategies = load_strategies(instructions_doc, "briefing")
        assert [s.name for s in strategies] == ["inbox-first", "calendar-first"]
        assert strategies[0].approach_prompt == "Read all unread threads."

    def test_load_missing_region(self, instructions_doc):
        with pytest.raises(StrategyNotFoundError):
            load_strategies(instructions_doc, "research")


# ── Selection ──────────────────────────────────────────────────


class TestSelect:
    async def test_default_without_data(self, context):
        selection = await context.selector.select("briefing", STRATEGIES)
        assert selection.strategy.name == "alpha"
        assert selection.mode is SelectionMode.RECOMMEND
        assert selection.reason == "Default (no performance data yet)"

    async def test_recommend_needs_two_usages(self, context):
        for _ in range(3):
            await _use(context, "alpha", 0.9)
        await _use(context, "beta", 1.0)

        selection = await context.selector.select("briefing", STRATEGIES)
        assert selection.strategy.name == "alpha"
        assert selection.strategy.usage_count == 3
        assert selection.reason == "Best performer (0.90 avg over 3 sessions)"

    async def test_recommend_ties_go_to_declaration_order(self, context):
        for name in ("gamma", "gamma", "beta", "beta"):
            await _use(context, name, 0.8)
        selection = await context.selector.select("briefing", STRATEGIES)
        assert selection.strategy.name == "beta"

    async def test_rotate_picks_least_used(self, context):
        for _ in range(3):
            await _use(context, "alpha", 0.9)
        await _use(context, "beta", 1.0)
        await _use(context, "gamma", None)

        selection = await context.selector.select(
            "briefing", STRATEGIES[:2], SelectionMode.ROTATE
        )
        assert selection.strategy.name == "beta"
        assert selection.reason == "Rotation for exploration (1 previous uses)"

    async def test_rotate_ties_go_to_declaration_order(self, context):
        selection = await context.selector.select(
            "briefing", STRATEGIES, SelectionMode.ROTATE
        )
        assert selection.strategy.name == "alpha"

    async def test_explicit(self, context):
        selection = await context.selector.select(
            "briefing", STRATEGIES, SelectionMode.EXPLICIT, "gamma"
        )
        assert selection.strategy.name == "gamma"
        assert selection.reason == "Explicitly selected"

    async def test_explicit_unknown_name(self, context):
        with pytest.raises(StrategyNotFoundError):
            await context.selector.select(
                "briefing", STRATEGIES, SelectionMode.EXPLICIT, "delta"
            )
        with pytest.raises(StrategyNotFoundError):
            await context.selector.select(
                "briefing", STRATEGIES, SelectionMode.EXPLICIT
            )

    async def test_no_strategies_declared(self, context):
        with pytest.raises(StrategyNotFoundError):
            await context.selector.select("briefing", [])

    async def test_usages_of_other_labels_ignored(self, context):
        for _ in range(2):
            await _use(context, "beta", 1.0, label="standup")
        selection = await context.selector.select("briefing", STRATEGIES)
        assert selection.strategy.name == "alpha"

    def test_format_selection(self):
        text = format_selection(
            StrategySelection(
                strategy=Strategy(name="alpha", approach_prompt="Do it.\n"),
                mode=SelectionMode.EXPLICIT,
                reason="Explicitly selected",
            )
        )
        assert text.startswith("## Strategy: alpha")
        assert text.endswith("### Approach\n\nDo it.")


# ── Usage Tracking ─────────────────────────────────────────────


class TestUsage:
    async def test_record_is_idempotent_per_trajectory(self, context):
        await context.selector.record_usage("briefing", "alpha", "t1")
        await context.selector.record_usage("briefing", "beta", "t1")
        usages = await context.usages.list("briefing")
        assert [(u.strategy_name, u.trajectory_id) for u in usages] == [
            ("beta", "t1")
        ]

    async def test_scoring_trajectory_back_fills_usage(
        self, context, make_trajectory
    ):
        trajectory = make_trajectory()
        await context.trajectories.save(trajectory)
        await context.selector.record_usage("briefing", "alpha", trajectory.id)

        await context.trajectories.score(trajectory.id, 0.7)
        (usage,) = await context.usages.list("briefing")
        assert usage.score == 0.7

    async def test_update_score_counts_matches(self, context):
        await context.selector.record_usage("briefing", "alpha", "t1")
        await context.selector.record_usage("standup", "beta", "t1")
        assert await context.selector.update_usage_score("t1", 0.5) == 2
        assert await context.selector.update_usage_score("t2", 0.5) == 0


class TestAnalyze:
    async def test_report(self, context):
        for _ in range(3):
            await _use(context, "alpha", 0.9)
        await _use(context, "beta", 0.4)
        await _use(context, "beta", 0.6)

        report = await context.selector.analyze("briefing", STRATEGIES)
        assert report.total_usages == 5
        assert [(s.name, s.usage_count) for s in report.strategies] == [
            ("alpha", 3), ("beta", 2), ("gamma", 0),
        ]
        assert report.strategies[1].avg_score == pytest.approx(0.5)
        assert report.strategies[2].avg_score is None
        assert report.best.name == "alpha"
        assert report.least_used.name == "gamma"
        assert report.exploration_suggested

        text = format_strategy_report(report)
        assert "| gamma | 0 | - |" in text
        assert "Best performer: **alpha** (0.90 avg)" in text
        assert "Exploration suggested: try **gamma** (0 uses)" in text

    async def test_report_from_usages_only(self, context):
        for _ in range(3):
            await _use(context, "beta", 0.8)
        for _ in range(3):
            await _use(context, "alpha", None)

        report = await context.selector.analyze("briefing")
        assert [s.name for s in report.strategies] == ["beta", "alpha"]
        assert report.best.name == "beta"
        assert not report.exploration_suggested

    async def test_empty_report(self, context):
        report = await context.selector.analyze("briefing")
        assert report.total_usages == 0
        assert report.best is None
        assert report.least_used is None
        assert not report.exploration_suggested
