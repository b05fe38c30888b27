"""Aggregation of task outcomes into a run summary.

``aggregate`` is a pure function: the same tasks and outcomes always produce
the same Summary, regardless of the order in which tasks finished. Rows
follow the task declaration order; a declared task that produced no outcome
(the run was interrupted before it finished) is reported as not run.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from brain_monitor.core.models import SuiteStatus, TaskCategory

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from brain_monitor.core.models import (
        CoverageReport,
        Failure,
        SuiteOutcome,
        TaskOutcome,
        ValidationTask,
    )


@dataclass(frozen=True)
class SummaryRow:
    """One task's line in the summary."""

    task: ValidationTask
    outcome: TaskOutcome | None

    @property
    def ran(self) -> bool:
        return self.outcome is not None

    @property
    def success(self) -> bool:
        return self.outcome is not None and self.outcome.result.success

    @property
    def issue_count(self) -> int:
        return self.outcome.result.issue_count if self.outcome is not None else 0

    @property
    def duration_ms(self) -> int:
        return self.outcome.result.duration_ms if self.outcome is not None else 0

    @property
    def auto_fix_applied(self) -> bool:
        return self.outcome is not None and self.outcome.result.auto_fix_applied

    @property
    def failures(self) -> tuple[Failure, ...]:
        return self.outcome.failures if self.outcome is not None else ()

    @property
    def suite(self) -> SuiteOutcome | None:
        return self.outcome.suite if self.outcome is not None else None

    @property
    def coverage(self) -> CoverageReport | None:
        return self.suite.coverage if self.suite is not None else None

    @property
    def status_label(self) -> str:
        if self.outcome is None:
            return "⏭️ Not run"
        if self.success:
            return "✅ Passed"
        if self.suite is not None and self.suite.status is SuiteStatus.EXHAUSTED:
            return "❌ Exhausted"
        if self.outcome.result.timed_out:
            return "⏱️ Timed out"
        return "❌ Failed"


@dataclass(frozen=True)
class Summary:
    """Aggregate view of a run.

    Attributes:
        rows: One row per declared task, in declaration order.
        interrupted: Whether the run was stopped by a shutdown signal.
    """

    rows: tuple[SummaryRow, ...]
    interrupted: bool = False

    @property
    def success(self) -> bool:
        """True iff every declared task ran and succeeded."""
        return not self.interrupted and all(row.success for row in self.rows)

    @property
    def total_issues(self) -> int:
        return sum(row.issue_count for row in self.rows)

    @property
    def passed(self) -> int:
        return sum(1 for row in self.rows if row.success)

    @property
    def failed(self) -> int:
        return sum(1 for row in self.rows if row.ran and not row.success)

    @property
    def not_run(self) -> int:
        return sum(1 for row in self.rows if not row.ran)

    @property
    def auto_fixed(self) -> tuple[SummaryRow, ...]:
        return tuple(row for row in self.rows if row.auto_fix_applied)

    @property
    def failed_rows(self) -> tuple[SummaryRow, ...]:
        return tuple(row for row in self.rows if row.ran and not row.success)

    @property
    def suite_rows(self) -> tuple[SummaryRow, ...]:
        return tuple(row for row in self.rows if row.suite is not None)

    def count_by_category(self) -> dict[TaskCategory, int]:
        counts = {category: 0 for category in TaskCategory}
        for row in self.rows:
            counts[row.task.category] += row.issue_count
        return counts


def aggregate(
    tasks: Sequence[ValidationTask],
    outcomes: Iterable[TaskOutcome],
    *,
    interrupted: bool = False,
) -> Summary:
    """Merge outcomes into a Summary ordered by ``tasks``.

    Raises:
        ValueError: If an outcome belongs to a task not in ``tasks``, or two
            outcomes belong to the same task.
    """
    by_task: dict[ValidationTask, TaskOutcome] = {}
    for outcome in outcomes:
        if outcome.task not in tasks:
            raise ValueError(f"outcome for undeclared task {outcome.task.name!r}")
        if outcome.task in by_task:
            raise ValueError(f"duplicate outcome for task {outcome.task.name!r}")
        by_task[outcome.task] = outcome
    return Summary(
        rows=tuple(SummaryRow(task=task, outcome=by_task.get(task)) for task in tasks),
        interrupted=interrupted,
    )
