"""Console event sink implementation.

Provides ConsoleEventSink which outputs orchestration events to the console
using the log helpers from log_output/console.py.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from brain_monitor.core.models import WatchStatus
from brain_monitor.infra.io.base_sink import BaseEventSink
from brain_monitor.infra.io.log_output.console import (
    Colors,
    format_duration,
    log,
    log_verbose,
    progress_bar,
    truncate_text,
)

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from brain_monitor.core.models import (
        DiscoveryWarning,
        RunAttempt,
        TaskResult,
        ValidationTask,
        WatchTaskState,
    )


class ConsoleEventSink(BaseEventSink):
    """Event sink that prints progress with the console log helpers.

    Example:
        deps = OrchestratorDependencies(event_sink=ConsoleEventSink())
        orchestrator = create_orchestrator(OrchestratorConfig(repo), deps=deps)
        await orchestrator.run()  # Produces console output
    """

    # -------------------------------------------------------------------------
    # Run lifecycle
    # -------------------------------------------------------------------------

    def on_run_started(self, tasks: Sequence[ValidationTask]) -> None:
        log("→", f"[START] Running {len(tasks)} validations", Colors.BOLD)
        for task in tasks:
            mode = "sequential" if task.sequential else "parallel"
            log_verbose(task.emoji, f"{task.name} ({mode}): {task.command}")

    def on_discovery_warning(self, warning: DiscoveryWarning) -> None:
        log("⚠", f"Skipped package {warning}", Colors.YELLOW)

    def on_run_completed(
        self,
        success: bool,
        total_issues: int,
        summary_path: Path | None,
    ) -> None:
        if success:
            log("✓", "All validations passed", Colors.GREEN)
        else:
            log("✗", f"Validation failed with {total_issues} issues", Colors.RED)
        if summary_path is not None:
            log("◦", f"Summary: {summary_path}", dim=True)

    def on_run_interrupted(self) -> None:
        log("○", "Interrupted, stopping running validations", Colors.YELLOW)

    # -------------------------------------------------------------------------
    # Task lifecycle
    # -------------------------------------------------------------------------

    def on_task_started(self, task: ValidationTask) -> None:
        log("▶", "started", task_name=task.name)

    def on_task_output(self, task: ValidationTask, line: str) -> None:
        stripped = line.strip()
        if stripped:
            log_verbose("│", truncate_text(stripped, 120), task_name=task.name)

    def on_test_running(self, task: ValidationTask, test_name: str) -> None:
        log_verbose(
            "…", f"running {truncate_text(test_name, 100)}", task_name=task.name
        )

    def on_task_completed(
        self, result: TaskResult, completed: int, total: int
    ) -> None:
        duration = format_duration(result.duration_ms)
        if result.success:
            icon, color, status = "✓", Colors.GREEN, "passed"
        else:
            icon, color, status = "✗", Colors.RED, "failed"
        details = [duration]
        if result.issue_count:
            details.append(f"{result.issue_count} issues")
        if result.auto_fix_applied:
            details.append("auto-fixed")
        if result.timed_out:
            details.append("timed out")
        log(
            icon,
            f"{status} ({', '.join(details)}) {progress_bar(completed, total)}",
            color,
            task_name=result.task.name,
        )
        if result.message:
            log("◦", result.message, dim=True, task_name=result.task.name)

    def on_report_written(self, task: ValidationTask | None, path: Path) -> None:
        log_verbose("◦", f"Report written: {path}", task_name=task.name if task else None)

    # -------------------------------------------------------------------------
    # Adaptive runner
    # -------------------------------------------------------------------------

    def on_attempt_started(
        self, task: ValidationTask, attempt_number: int, max_attempts: int
    ) -> None:
        log("↻", f"Attempt {attempt_number}/{max_attempts}", task_name=task.name)

    def on_attempt_completed(
        self, task: ValidationTask, attempt: RunAttempt, target: float | None
    ) -> None:
        coverage = attempt.coverage
        if coverage is None:
            cov_text = "coverage n/a"
        elif target is None:
            cov_text = f"coverage {coverage.average:.2f}%"
        else:
            cov_text = f"coverage {coverage.average:.2f}% (target {target:.0f}%)"
        status = "passed" if attempt.result.success else "failed"
        color = Colors.GREEN if attempt.result.success else Colors.YELLOW
        log("◦", f"Attempt {attempt.attempt_number} {status}, {cov_text}", color, task_name=task.name)
        if attempt.applied_adjustments:
            names = ", ".join(sorted(a.value for a in attempt.applied_adjustments))
            log_verbose("◦", f"Adjustments in effect: {names}", task_name=task.name)

    def on_adjustment_applied(self, task: ValidationTask, adjustment: str) -> None:
        log("⚙", f"Applying adjustment: {adjustment}", Colors.CYAN, task_name=task.name)

    # -------------------------------------------------------------------------
    # Watch mode
    # -------------------------------------------------------------------------

    def on_watch_started(
        self, tasks: Sequence[ValidationTask], interval_seconds: float
    ) -> None:
        names = ", ".join(task.name for task in tasks)
        log("👁", f"Watching {names} (throttle {interval_seconds:g}s)", Colors.CYAN)
        log("◦", "Press Ctrl+C to stop", dim=True)

    def on_watch_task_dispatched(self, task: ValidationTask, reason: str) -> None:
        log("▶", f"running ({reason})", task_name=task.name)

    def on_watch_task_finished(self, state: WatchTaskState) -> None:
        if state.status is WatchStatus.ERROR:
            log("✗", f"{state.issue_count} issues", Colors.RED, task_name=state.task.name)
        else:
            log("✓", "clean", Colors.GREEN, task_name=state.task.name)

    def on_watch_stopped(self, summary_path: Path | None) -> None:
        log("○", "Watch stopped", Colors.YELLOW)
        if summary_path is not None:
            log("◦", f"Summary: {summary_path}", dim=True)

    # -------------------------------------------------------------------------
    # Diagnostics
    # -------------------------------------------------------------------------

    def on_warning(self, message: str) -> None:
        log("⚠", message, Colors.YELLOW)
