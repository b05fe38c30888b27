"""FakeEventSink: records every ValidationEventSink call for assertions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

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


@dataclass(frozen=True)
class RecordedEvent:
    """One sink call: event name (method without ``on_``) and its arguments."""

    name: str
    kwargs: dict[str, Any] = field(default_factory=dict)


class FakeEventSink:
    """In-memory ValidationEventSink.

    Usage:
        sink = FakeEventSink()
        ...
        assert sink.has_event("run_completed")
        assert sink.get_events("task_completed")[0].kwargs["completed"] == 1
    """

    def __init__(self) -> None:
        self.events: list[RecordedEvent] = []

    def _record(self, name: str, **kwargs: Any) -> None:  # noqa: ANN401
        self.events.append(RecordedEvent(name=name, kwargs=kwargs))

    def has_event(self, name: str) -> bool:
        return any(e.name == name for e in self.events)

    def get_events(self, name: str) -> list[RecordedEvent]:
        return [e for e in self.events if e.name == name]

    def names(self) -> list[str]:
        return [e.name for e in self.events]

    def on_run_started(self, tasks: Sequence[ValidationTask]) -> None:
        self._record("run_started", tasks=list(tasks))

    def on_discovery_warning(self, warning: DiscoveryWarning) -> None:
        self._record("discovery_warning", warning=warning)

    def on_run_completed(
        self, success: bool, total_issues: int, summary_path: Path | None
    ) -> None:
        self._record(
            "run_completed",
            success=success,
            total_issues=total_issues,
            summary_path=summary_path,
        )

    def on_run_interrupted(self) -> None:
        self._record("run_interrupted")

    def on_task_started(self, task: ValidationTask) -> None:
        self._record("task_started", task=task)

    def on_task_output(self, task: ValidationTask, line: str) -> None:
        self._record("task_output", task=task, line=line)

    def on_test_running(self, task: ValidationTask, test_name: str) -> None:
        self._record("test_running", task=task, test_name=test_name)

    def on_task_completed(self, result: TaskResult, completed: int, total: int) -> None:
        self._record("task_completed", result=result, completed=completed, total=total)

    def on_report_written(self, task: ValidationTask | None, path: Path) -> None:
        self._record("report_written", task=task, path=path)

    def on_attempt_started(
        self, task: ValidationTask, attempt_number: int, max_attempts: int
    ) -> None:
        self._record(
            "attempt_started",
            task=task,
            attempt_number=attempt_number,
            max_attempts=max_attempts,
        )

    def on_attempt_completed(
        self, task: ValidationTask, attempt: RunAttempt, target: float | None
    ) -> None:
        self._record("attempt_completed", task=task, attempt=attempt, target=target)

    def on_adjustment_applied(self, task: ValidationTask, adjustment: str) -> None:
        self._record("adjustment_applied", task=task, adjustment=adjustment)

    def on_watch_started(
        self, tasks: Sequence[ValidationTask], interval_seconds: float
    ) -> None:
        self._record("watch_started", tasks=list(tasks), interval_seconds=interval_seconds)

    def on_watch_task_dispatched(self, task: ValidationTask, reason: str) -> None:
        self._record("watch_task_dispatched", task=task, reason=reason)

    def on_watch_task_finished(self, state: WatchTaskState) -> None:
        self._record(
            "watch_task_finished",
            task=state.task,
            status=state.status,
            issue_count=state.issue_count,
        )

    def on_watch_stopped(self, summary_path: Path | None) -> None:
        self._record("watch_stopped", summary_path=summary_path)

    def on_warning(self, message: str) -> None:
        self._record("warning", message=message)
