"""Text rendering: the rewrite meta-prompt, diffs, and markdown reports."""
from __future__ import annotations

import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from trajmem_core.types import OptimizationRecord, Trajectory

    from trajmem_optimizer.types import (
        AnalysisResult,
        CuratedExample,
        Region,
        StrategyReport,
        StrategySelection,
    )

_REWRITE_INSTRUCTIONS = """\
### Your Task

Based on this trajectory data, rewrite the instructions section to help the
agent consistently achieve high-scoring outcomes. Your output should:

1. Be concrete and actionable (not vague advice)
2. Reference specific patterns that correlated with success
3. Warn against anti-patterns from low-scoring sessions
4. Be formatted as a numbered list of best practices
5. Include quantitative guidance where the data supports it
   (e.g., "use 5-8 searches" not "use multiple searches")
6. Be concise: aim for 8-12 practices maximum

Output ONLY the new instructions content, no preamble or explanation.
"""


def build_meta_prompt(region: Region, analysis: AnalysisResult) -> str:
    """Assemble the prompt asking a language model to rewrite ``region``."""
    parts = [
        "## Context Optimization Request\n\n",
        "You are analyzing trajectory data to improve agent instructions.\n\n",
        "### Current Instructions\n```\n",
        region.content.rstrip("\n"),
        "\n```\n\n",
        f'### Trajectory Analysis for "{analysis.label}" tasks\n\n',
        f"**{analysis.high_sessions} high-scoring sessions "
        f"(avg {analysis.avg_score_high:.0%}):**\n",
        "Patterns observed:\n",
    ]
    parts.extend(f"- {p.statement}\n" for p in analysis.patterns)
    parts.append("\n")
    parts.append(
        f"**{analysis.low_sessions} low-scoring sessions "
        f"(avg {analysis.avg_score_low:.0%}):**\n"
    )
    parts.append("Anti-patterns observed:\n")
    parts.extend(f"- {a.statement}\n" for a in analysis.anti_patterns)
    parts.append("\n")

    positives = [e for e in analysis.curated_examples if not e.negative]
    negatives = [e for e in analysis.curated_examples if e.negative]
    if positives:
        parts.append("### Example High-Scoring Session\n\n")
        parts.append(_prompt_example(positives[0]))
    if negatives:
        parts.append("### Example Low-Scoring Session\n\n")
        parts.append(_prompt_example(negatives[0]))

    parts.append(_REWRITE_INSTRUCTIONS)
    return "".join(parts)


def _prompt_example(example: CuratedExample) -> str:
    text = f"**Score: {example.score:.0%}**: {example.task}\n"
    if example.summary:
        text += f"{example.summary}\n"
    if example.notes:
        text += f"User notes: {example.notes}\n"
    return text + "\n"


def generate_diff(
    old: str, new: str, old_name: str = "current", new_name: str = "proposed"
) -> str:
    """Whole-text diff: every old line removed, every new line added."""
    old_lines = old.splitlines()
    new_lines = new.splitlines()
    lines = [
        f"--- {old_name}",
        f"+++ {new_name}",
        f"@@ -1,{len(old_lines)} +1,{len(new_lines)} @@",
    ]
    lines.extend(f"-{line}" for line in old_lines)
    lines.extend(f"+{line}" for line in new_lines)
    return "\n".join(lines) + "\n"


# ── Markdown Reports ───────────────────────────────────────────


def _timestamp(ts: float | None) -> str:
    if ts is None:
        return "-"
    return datetime.datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M")


def format_analysis(analysis: AnalysisResult) -> str:
    lines = [
        f"## Analysis: {analysis.label}",
        "",
        f"- Sessions: {analysis.total_sessions} "
        f"({analysis.high_sessions} high, {analysis.medium_sessions} medium, "
        f"{analysis.low_sessions} low)",
        f"- Average score: high {analysis.avg_score_high:.2f}, "
        f"low {analysis.avg_score_low:.2f}",
        "",
    ]
    if analysis.recommendations:
        lines.append("### Recommendations")
        lines.extend(f"- {r}" for r in analysis.recommendations)
        lines.append("")
    return "\n".join(lines)


def format_history(records: Sequence[OptimizationRecord]) -> str:
    """Markdown table of optimization records."""
    if not records:
        return "No optimization history."
    lines = [
        "| ID | Label | Status | Sessions | High | Low | Created | Applied |",
        "|---|---|---|---|---|---|---|---|",
    ]
    for r in records:
        lines.append(
            f"| {r.id} | {r.label} | {r.status.value} | {r.sessions_used} "
            f"| {r.avg_score_high:.2f} | {r.avg_score_low:.2f} "
            f"| {_timestamp(r.created_at)} | {_timestamp(r.applied_at)} |"
        )
    return "\n".join(lines)


def format_record(record: OptimizationRecord) -> str:
    return "\n".join([
        f"## Optimization {record.id}",
        "",
        f"- File: {record.target_file}",
        f"- Label: {record.label}",
        f"- Status: {record.status.value}",
        f"- Sessions used: {record.sessions_used}",
        f"- Created: {_timestamp(record.created_at)}",
        f"- Applied: {_timestamp(record.applied_at)}",
        f"- Rolled back: {_timestamp(record.rolled_back_at)}",
    ])


def format_selection(selection: StrategySelection) -> str:
    strategy = selection.strategy
    lines = [
        f"## Strategy: {strategy.name}",
        "",
        f"- Mode: {selection.mode.value}",
        f"- Reason: {selection.reason}",
    ]
    if strategy.description:
        lines.append(f"- Description: {strategy.description}")
    if strategy.approach_prompt:
        lines.extend(["", "### Approach", "", strategy.approach_prompt.rstrip()])
    return "\n".join(lines)


def format_strategy_report(report: StrategyReport) -> str:
    lines = [
        f"## Strategy performance: {report.label}",
        "",
        f"Total sessions: {report.total_usages}",
        "",
        "| Strategy | Uses | Avg score |",
        "|---|---|---|",
    ]
    for s in report.strategies:
        avg = "-" if s.avg_score is None else f"{s.avg_score:.2f}"
        lines.append(f"| {s.name} | {s.usage_count} | {avg} |")
    lines.append("")
    if report.best is not None:
        lines.append(
            f"Best performer: **{report.best.name}** "
            f"({report.best.avg_score or 0.0:.2f} avg)"
        )
    if report.exploration_suggested and report.least_used is not None:
        lines.append(
            f"Exploration suggested: try **{report.least_used.name}** "
            f"({report.least_used.usage_count} uses)"
        )
    return "\n".join(lines)


# ── Trajectories ───────────────────────────────────────────────

MAX_RENDERED_STEPS = 50
_CLIP_LIMIT = 200

_SUMMARIZATION_REQUEST = """\
Please provide a 2-3 sentence summary of this trajectory: what task was
accomplished, what approach was taken, and any notable patterns in the
execution.

Then store it with `summarize(trajectory_id="{id}", summary=...)`.
"""


def _clip(text: str, limit: int = _CLIP_LIMIT) -> str:
    text = " ".join(text.split())
    return text if len(text) <= limit else text[: limit - 3] + "..."


def format_trajectory(
    trajectory: Trajectory, *, summarization_request: bool = False
) -> str:
    """Render a trajectory as markdown for review or summarization.

    Only the first ``MAX_RENDERED_STEPS`` steps are listed. Write and
    Edit steps also show their output summary.
    """
    labels = ", ".join(trajectory.labels) or "-"
    lines = [
        "## Trajectory",
        "",
        f"- ID: {trajectory.id}",
        f"- Task: {trajectory.task}",
        f"- Labels: {labels}",
        f"- Started: {_timestamp(trajectory.started_at)}",
    ]
    if trajectory.strategy:
        lines.append(f"- Strategy: {trajectory.strategy}")

    total = len(trajectory.steps)
    lines.extend(["", f"### Steps ({total} total)", ""])
    if total > MAX_RENDERED_STEPS:
        lines.extend([f"*(Showing first {MAX_RENDERED_STEPS} of {total} steps)*", ""])
    for i, step in enumerate(trajectory.steps[:MAX_RENDERED_STEPS], start=1):
        lines.append(f"{i}. [{step.action}] {_clip(step.input_summary)}")
        if step.action in ("Write", "Edit") and step.output_summary:
            lines.append(f"   -> {_clip(step.output_summary)}")

    if trajectory.summary:
        lines.extend(["", f"**Summary:** {trajectory.summary}"])
    if trajectory.outcome is not None:
        outcome = f"**Outcome:** score {trajectory.outcome.score:.2f}"
        if trajectory.outcome.notes:
            outcome += f" ({trajectory.outcome.notes})"
        lines.extend(["", outcome])

    text = "\n".join(lines) + "\n"
    if summarization_request:
        text += "\n---\n\n" + _SUMMARIZATION_REQUEST.format(id=trajectory.id)
    return text


def format_search_results(query: str, trajectories: Sequence[Trajectory]) -> str:
    """Markdown table of trajectories matching ``query``."""
    if not trajectories:
        return f"No trajectories match '{query}'."
    lines = [
        "| ID | Task | Labels | Steps | Score | Summary |",
        "|---|---|---|---|---|---|",
    ]
    for t in trajectories:
        score = "-" if t.score is None else f"{t.score:.2f}"
        lines.append(
            f"| {t.id} | {_clip(t.task, 60)} | {', '.join(t.labels) or '-'} "
            f"| {len(t.steps)} | {score} | {_clip(t.summary, 80) or '-'} |"
        )
    return "\n".join(lines)
