"""Watch mode summary rendering (watch-summary.md)."""

from __future__ import annotations

from typing import TYPE_CHECKING

from brain_monitor.core.models import WatchStatus
from brain_monitor.domain.reporting.formatting import (
    format_seconds,
    format_timestamp,
    markdown_table,
    relative_link,
)

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime
    from pathlib import Path

    from brain_monitor.core.models import WatchTaskState


def _status(state: WatchTaskState) -> tuple[str, str, str]:
    """(quick emoji, quick text, table status) for one task."""
    if state.status is WatchStatus.RUNNING:
        return "🟡", "Checking...", "⏳ Running"
    if state.status is WatchStatus.ERROR or state.issue_count:
        return "🔴", f"{state.issue_count} issues", "❌ Failed"
    if state.last_run_at is None:
        return "⚪", "Waiting", "⏸️ Waiting"
    return "🟢", "Passed ✓", "✅ Passed"


def _overall(states: Sequence[WatchTaskState], stopped: bool) -> str:
    if stopped:
        return "⏹️ Stopped"
    if any(s.status is WatchStatus.RUNNING for s in states):
        return "🟡 Checking..."
    if any(s.status is WatchStatus.ERROR for s in states):
        return "🔴 Errors Found"
    return "🟢 All Clear"


def render_watch_summary(
    states: Sequence[WatchTaskState],
    *,
    generated_at: datetime,
    all_tasks: bool,
    interval_seconds: float,
    report_dir: Path,
    stopped: bool = False,
) -> str:
    """Markdown watch summary; ``stopped`` renders the final shutdown snapshot."""
    total = sum(s.issue_count for s in states)
    mode = "🔄 All Validations" if all_tasks else "⚡ Fast Mode (Type Checking + Lint)"
    lines = [
        "# 👁️ Watch Mode Stopped" if stopped else "# 👁️ Watch Mode Active",
        "",
        f"**Last Updated:** {format_timestamp(generated_at)}",
        f"**Mode:** {mode}",
        f"**Status:** {_overall(states, stopped)}",
        f"**Total Issues:** {total}",
        "",
        "## 🚦 Quick Status",
    ]
    rows = []
    for state in states:
        emoji, quick, table_status = _status(state)
        lines.append(f"- {emoji} **{state.task.name}**: {quick}")
        last_check = (
            state.last_run_at.strftime("%I:%M:%S %p") if state.last_run_at else "-"
        )
        duration = (
            format_seconds(state.last_duration_ms)
            if state.last_duration_ms is not None
            else "-"
        )
        link = relative_link(state.task.output_path, report_dir)
        rows.append(
            [
                state.task.name,
                table_status,
                state.issue_count,
                last_check,
                duration,
                f"[View Report]({link})",
            ]
        )
    lines.extend(
        [
            "",
            "## 📊 Validation Details",
            "",
            markdown_table(
                ["Validation", "Status", "Issues", "Last Check", "Duration", "Report"],
                rows,
            ),
            "",
            "## 🔄 Watch Mode Info",
            "",
            "- **Watching:** File changes trigger automatic validation",
            f"- **Throttling:** Minimum {interval_seconds:g}s between runs per validation",
            "- **Stop watching:** Press `Ctrl+C`",
            "",
        ]
    )
    return "\n".join(lines)
