"""Per-task report rendering (markdown and JSON).

A task report is a checklist of every failure in encounter order, preceded
by a quick summary and, for test tasks, failure groups by classification
and the adaptive attempt history.
"""

from __future__ import annotations

from collections import Counter
from typing import TYPE_CHECKING, Any

from brain_monitor.core.models import FailureClassification, TaskCategory
from brain_monitor.domain.reporting.formatting import (
    CLASSIFICATION_EMOJI,
    CLASSIFICATION_HINT,
    classification_label,
    format_delta,
    format_location,
    format_percent,
    format_seconds,
    format_timestamp,
    markdown_table,
)

if TYPE_CHECKING:
    from brain_monitor.core.models import (
        Failure,
        SuiteOutcome,
        TaskOutcome,
        ValidationTask,
    )
    from brain_monitor.domain.reporting.formatting import ReportHeader

# What the failure title means for each category
_TITLE_LABEL = {
    TaskCategory.TYPECHECK: "Code",
    TaskCategory.LINT: "Rule",
    TaskCategory.FORMAT: "File type",
    TaskCategory.TEST: "Test",
}

_RERUN_COMMAND = {
    TaskCategory.TYPECHECK: "brain-monitor typecheck",
    TaskCategory.LINT: "brain-monitor lint",
    TaskCategory.FORMAT: "brain-monitor format",
}


def rerun_command(task: ValidationTask) -> str:
    if task.category is TaskCategory.TEST:
        return f"brain-monitor test {task.test_type or ''}".rstrip()
    return _RERUN_COMMAND[task.category]


def _status_line(outcome: TaskOutcome) -> str:
    result = outcome.result
    if result.success:
        return "✅ Passed"
    if result.timed_out:
        return "⏱️ Timed out"
    if result.exit_code is None:
        return "❌ Failed (process did not start)"
    return f"❌ Failed (exit code {result.exit_code})"


def _classification_groups(
    failures: tuple[Failure, ...],
) -> list[tuple[FailureClassification, list[Failure]]]:
    """Groups sorted by size (largest first), ties in enum order."""
    counts = Counter(f.classification for f in failures)
    order = list(FailureClassification)
    ranked = sorted(counts, key=lambda c: (-counts[c], order.index(c)))
    return [(c, [f for f in failures if f.classification is c]) for c in ranked]


def _render_classification_section(failures: tuple[Failure, ...]) -> list[str]:
    lines = ["## 🔄 Failures by Type", ""]
    if not failures:
        return [*lines, "### ✅ All tests passing!", ""]
    for classification, group in _classification_groups(failures):
        lines.extend(
            [
                f"### {CLASSIFICATION_EMOJI[classification]} "
                f"**{classification_label(classification)} Failures** ({len(group)})",
                f"- **Common issue:** {CLASSIFICATION_HINT[classification]}",
                f"- **First occurrence:** `{group[0].file_path}`",
                "",
            ]
        )
    return lines


def _render_suite_section(suite: SuiteOutcome) -> list[str]:
    lines = ["## 🧪 Adaptive Attempts", ""]
    rows = []
    for attempt in suite.attempts:
        coverage = attempt.coverage.average if attempt.coverage is not None else None
        rows.append(
            [
                attempt.attempt_number,
                "✅ Passed" if attempt.result.success else "❌ Failed",
                format_seconds(attempt.result.duration_ms),
                format_percent(coverage),
                ", ".join(sorted(a.value for a in attempt.applied_adjustments)) or "-",
            ]
        )
    lines.append(
        markdown_table(["Attempt", "Result", "Duration", "Coverage", "Adjustments"], rows)
    )
    lines.append("")
    lines.append(f"- **Outcome:** {suite.status.value}")
    if suite.target_coverage is not None:
        lines.append(f"- **Target coverage:** {format_percent(suite.target_coverage)}")
    coverage = suite.coverage
    if coverage is not None:
        lines.append(
            f"- **Final coverage:** {format_percent(coverage.average)} "
            f"(statements {coverage.statements:.2f}, branches {coverage.branches:.2f}, "
            f"functions {coverage.functions:.2f}, lines {coverage.lines:.2f})"
        )
        lines.append(f"- **Delta:** {format_delta(suite.coverage_delta)}")
    else:
        lines.append("- **Final coverage:** n/a")
    lines.append("")
    return lines


def _render_package_section(failures: tuple[Failure, ...]) -> list[str]:
    if not failures:
        return []
    by_package: dict[str, list[Failure]] = {}
    for failure in failures:
        by_package.setdefault(failure.package_id, []).append(failure)
    lines = ["## 📦 Failures by Package", ""]
    for package, group in by_package.items():
        kinds = list(dict.fromkeys(f.classification.value for f in group))
        lines.extend(
            [
                f"### {package}",
                f"- **Failures:** {len(group)}",
                f"- **Types:** {', '.join(kinds)}",
                "",
            ]
        )
    return lines


def _render_checklist(task: ValidationTask, failures: tuple[Failure, ...]) -> list[str]:
    lines = ["## 🎯 Fix These Issues (Checkboxes)", ""]
    if not failures:
        return [*lines, "✅ No issues to fix!", ""]
    title_label = _TITLE_LABEL[task.category]
    for failure in failures:
        emoji = CLASSIFICATION_EMOJI[failure.classification]
        lines.append(
            f"- [ ] **{emoji} {failure.classification.value}** in "
            f"`{format_location(failure)}`"
        )
        if failure.title:
            lines.append(f"  - **{title_label}:** {failure.title}")
        if failure.severity != "error":
            lines.append(f"  - **Severity:** {failure.severity}")
        lines.append(f"  - **Error:** {failure.message}")
        lines.append(f"  - **Package:** {failure.package_id}")
    lines.append("")
    return lines


def render_task_report(outcome: TaskOutcome, header: ReportHeader) -> str:
    """Markdown report for one task. Deterministic for identical inputs."""
    task = outcome.task
    result = outcome.result
    failures = outcome.failures

    run = f"#{header.run_number}" if header.run_number is not None else "-"
    lines = [
        f"# {task.emoji} {task.name} Report",
        "",
        f"**Run:** {run} | **Branch:** {header.branch} | **Commit:** {header.commit}",
        f"**Generated:** {format_timestamp(header.generated_at)}",
        f"**Status:** {_status_line(outcome)}",
        "",
        "## 📊 Quick Summary",
        f"- **Issues:** {result.issue_count}",
        f"- **Parsed failures:** {len(failures)}",
        f"- **Duration:** {format_seconds(result.duration_ms)}",
        f"- **Auto-fix applied:** {'Yes' if result.auto_fix_applied else 'No'}",
        f"- **Exit code:** {result.exit_code if result.exit_code is not None else 'n/a'}",
    ]
    if result.message:
        lines.append(f"- **Message:** {result.message}")
    lines.append("")

    if task.category is TaskCategory.TEST:
        lines.extend(_render_classification_section(failures))
    if outcome.suite is not None:
        lines.extend(_render_suite_section(outcome.suite))
    lines.extend(_render_checklist(task, failures))
    lines.extend(_render_package_section(failures))
    lines.extend(
        [
            "## ⚡ Quick Actions",
            "",
            f"- **Re-run:** `{rerun_command(task)}`",
            f"- **Command:** `{task.command}`",
            "",
        ]
    )
    return "\n".join(lines)


def failure_to_dict(failure: Failure) -> dict[str, Any]:
    return {
        "package": failure.package_id,
        "file": failure.file_path,
        "classification": failure.classification.value,
        "message": failure.message,
        "title": failure.title,
        "severity": failure.severity,
        "line": failure.location.line if failure.location else None,
        "column": failure.location.column if failure.location else None,
        "source_lines": list(failure.source_line_range),
    }


def suite_to_dict(suite: SuiteOutcome) -> dict[str, Any]:
    return {
        "status": suite.status.value,
        "target_coverage": suite.target_coverage,
        "coverage": suite.coverage.to_dict() if suite.coverage else None,
        "delta": suite.coverage_delta,
        "attempts": [
            {
                "attempt": attempt.attempt_number,
                "success": attempt.result.success,
                "duration_ms": attempt.result.duration_ms,
                "timed_out": attempt.result.timed_out,
                "adjustments": sorted(a.value for a in attempt.applied_adjustments),
                "coverage": attempt.coverage.to_dict() if attempt.coverage else None,
            }
            for attempt in suite.attempts
        ],
    }


def task_report_data(outcome: TaskOutcome, header: ReportHeader) -> dict[str, Any]:
    """JSON-ready companion to render_task_report."""
    task = outcome.task
    result = outcome.result
    return {
        "task": task.name,
        "category": task.category.value,
        "test_type": task.test_type,
        "run_number": header.run_number,
        "branch": header.branch,
        "commit": header.commit,
        "generated_at": header.generated_at.isoformat(),
        "success": result.success,
        "issue_count": result.issue_count,
        "duration_ms": result.duration_ms,
        "auto_fix_applied": result.auto_fix_applied,
        "exit_code": result.exit_code,
        "timed_out": result.timed_out,
        "message": result.message,
        "failures": [failure_to_dict(f) for f in outcome.failures],
        "suite": suite_to_dict(outcome.suite) if outcome.suite else None,
    }
