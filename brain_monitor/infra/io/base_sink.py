"""Base event sink implementations.

- BaseEventSink: no-op implementation of every ValidationEventSink method,
  so concrete sinks only override what they present.
- NullEventSink: silent sink for tests and embedding.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

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


class BaseEventSink:
    """No-op implementation of the ValidationEventSink protocol."""

    def on_run_started(self, tasks: Sequence[ValidationTask]) -> None:
        pass

    def on_discovery_warning(self, warning: DiscoveryWarning) -> None:
        pass

    def on_run_completed(
        self,
        success: bool,
        total_issues: int,
        summary_path: Path | None,
    ) -> None:
        pass

    def on_run_interrupted(self) -> None:
        pass

    def on_task_started(self, task: ValidationTask) -> None:
        pass

    def on_task_output(self, task: ValidationTask, line: str) -> None:
        pass

    def on_test_running(self, task: ValidationTask, test_name: str) -> None:
        pass

    def on_task_completed(
        self, result: TaskResult, completed: int, total: int
    ) -> None:
        pass

    def on_report_written(self, task: ValidationTask | None, path: Path) -> None:
        pass

    def on_attempt_started(
        self, task: ValidationTask, attempt_number: int, max_attempts: int
    ) -> None:
        pass

    def on_attempt_completed(
        self, task: ValidationTask, attempt: RunAttempt, target: float | None
    ) -> None:
        pass

    def on_adjustment_applied(self, task: ValidationTask, adjustment: str) -> None:
        pass

    def on_watch_started(
        self, tasks: Sequence[ValidationTask], interval_seconds: float
    ) -> None:
        pass

    def on_watch_task_dispatched(self, task: ValidationTask, reason: str) -> None:
        pass

    def on_watch_task_finished(self, state: WatchTaskState) -> None:
        pass

    def on_watch_stopped(self, summary_path: Path | None) -> None:
        pass

    def on_warning(self, message: str) -> None:
        pass


class NullEventSink(BaseEventSink):
    """Event sink that discards every event."""
