"""Run summary rendering (validation-summary.md / .json)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from brain_monitor.core.models import TaskCategory
from brain_monitor.domain.reporting.formatting import (
    format_delta,
    format_percent,
    format_seconds,
    format_timestamp,
    markdown_table,
    relative_link,
)
from brain_monitor.domain.reporting.task_report import rerun_command, suite_to_dict

if TYPE_CHECKING:
    from pathlib import Path

    from brain_monitor.domain.aggregate import Summary, SummaryRow
    from brain_monitor.domain.reporting.formatting import ReportHeader

_RECOMMENDED_ORDER = (
    "1. **Type errors** - Must be fixed manually for compilation",
    "2. **Lint issues** - Remaining issues after auto-fix",
    "3. **Format issues** - Files that couldn't be auto-formatted",
    "4. **Test failures** - Fix broken functionality",
)


def _overall_status(summary: Summary) -> str:
    if summary.interrupted:
        return f"⚠️ Interrupted ({summary.not_run} validation(s) did not finish)"
    if summary.success:
        return "✅ All validations passed!"
    return f"❌ {summary.failed} validation(s) failed"


def _quick_status(row: SummaryRow) -> str:
    if not row.ran:
        return f"- ⚪ **{row.task.name}**: Not run"
    if row.success:
        return f"- 🟢 **{row.task.name}**: Passed ✓"
    return f"- 🔴 **{row.task.name}**: {row.issue_count} issues"


def _priority_fix(row: SummaryRow, report_dir: Path) -> str:
    link = relative_link(row.task.output_path, report_dir)
    note = ""
    if row.task.category is TaskCategory.LINT:
        note = "Manual fixes required - "
    elif row.task.category is TaskCategory.FORMAT:
        note = "Manual intervention needed - "
    return f"- Fix {row.task.name} issues: {note}[View {link}]({link})"


def render_summary(
    summary: Summary,
    header: ReportHeader,
    *,
    duration_ms: int,
    report_dir: Path,
) -> str:
    """Markdown summary. Rows keep declaration order, not completion order."""
    auto_fixed = ", ".join(row.task.name for row in summary.auto_fixed) or "None"
    lines = [
        "# 🔍 Validation Summary Report",
        "",
        f"**Generated:** {format_timestamp(header.generated_at)}",
        f"**Branch:** {header.branch} | **Commit:** {header.commit}",
        f"**Total Duration:** {format_seconds(duration_ms)}",
        f"**Overall Status:** {_overall_status(summary)}",
        f"**Total Issues Found:** {summary.total_issues}",
        f"**Auto-fix Applied:** {auto_fixed}",
        "",
        "## 🚦 Quick Status",
        *(_quick_status(row) for row in summary.rows),
        "",
        "## 📊 Validation Results",
        "",
    ]
    rows = []
    for row in summary.rows:
        link = relative_link(row.task.output_path, report_dir)
        rows.append(
            [
                f"{row.task.emoji} {row.task.name}",
                row.status_label,
                format_seconds(row.duration_ms) if row.ran else "-",
                row.issue_count,
                "✅ Yes" if row.auto_fix_applied else "-",
                f"[View Report]({link})" if row.ran else "-",
            ]
        )
    lines.append(
        markdown_table(
            ["Validation", "Status", "Duration", "Issues", "Auto-Fixed", "Report"], rows
        )
    )
    lines.append("")

    suite_rows = summary.suite_rows
    if suite_rows:
        lines.extend(["## 🧪 Coverage", ""])
        coverage_rows = []
        for row in suite_rows:
            suite = row.suite
            assert suite is not None
            coverage = suite.coverage
            coverage_rows.append(
                [
                    row.task.name,
                    format_percent(coverage.average if coverage else None),
                    format_percent(suite.target_coverage),
                    format_delta(suite.coverage_delta),
                    len(suite.attempts),
                    ", ".join(sorted(a.value for a in suite.adjustments)) or "-",
                    suite.status.value,
                ]
            )
        lines.append(
            markdown_table(
                ["Suite", "Average", "Target", "Delta", "Attempts", "Adjustments", "Outcome"],
                coverage_rows,
            )
        )
        lines.append("")

    lines.extend(["## 🎯 Quick Actions", ""])
    failed_rows = summary.failed_rows
    if failed_rows:
        lines.extend(["### Priority Fixes Required", ""])
        lines.extend(_priority_fix(row, report_dir) for row in failed_rows)
        lines.extend(["", "### Recommended Order:", *_RECOMMENDED_ORDER, ""])
    elif summary.success:
        lines.extend(
            [
                "### Next Steps:",
                "- Consider adding more tests",
                "- Review code coverage",
                "",
            ]
        )
    else:
        lines.extend(["- Re-run `brain-monitor validate` to finish the run", ""])

    lines.extend(
        [
            "## ⚡ Quick Commands",
            "",
            "- **Re-run all validations:** `brain-monitor validate`",
            *(f"- **{row.task.name}:** `{rerun_command(row.task)}`" for row in summary.rows),
            "",
        ]
    )
    return "\n".join(lines)


def summary_data(
    summary: Summary,
    header: ReportHeader,
    *,
    duration_ms: int,
    report_dir: Path,
) -> dict[str, Any]:
    """JSON-ready companion to render_summary."""
    return {
        "generated_at": header.generated_at.isoformat(),
        "branch": header.branch,
        "commit": header.commit,
        "duration_ms": duration_ms,
        "success": summary.success,
        "interrupted": summary.interrupted,
        "total_issues": summary.total_issues,
        "passed": summary.passed,
        "failed": summary.failed,
        "not_run": summary.not_run,
        "auto_fixed": [row.task.name for row in summary.auto_fixed],
        "tasks": [
            {
                "name": row.task.name,
                "category": row.task.category.value,
                "test_type": row.task.test_type,
                "ran": row.ran,
                "success": row.success,
                "issue_count": row.issue_count,
                "duration_ms": row.duration_ms,
                "auto_fix_applied": row.auto_fix_applied,
                "report": relative_link(row.task.output_path, report_dir),
                "suite": suite_to_dict(row.suite) if row.suite else None,
            }
            for row in summary.rows
        ],
    }
