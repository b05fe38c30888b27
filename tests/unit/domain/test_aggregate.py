"""Tests for outcome aggregation."""

from __future__ import annotations

import random

import pytest

from brain_monitor.core.models import (
    Adjustment,
    SuiteOutcome,
    SuiteStatus,
    TaskCategory,
    TaskOutcome,
    ValidationTask,
)
from brain_monitor.domain.aggregate import aggregate
from tests.factories import (
    make_attempt,
    make_outcome,
    make_result,
    make_task,
    make_test_task,
)


@pytest.fixture
def tasks() -> list[ValidationTask]:
    return [
        make_task(TaskCategory.TYPECHECK),
        make_task(TaskCategory.LINT),
        make_task(TaskCategory.FORMAT),
        make_test_task("test:unit"),
    ]


class TestAggregate:
    def test_all_passing(self, tasks: list[ValidationTask]) -> None:
        summary = aggregate(tasks, [make_outcome(t) for t in tasks])

        assert summary.success
        assert summary.passed == 4
        assert summary.failed == 0
        assert summary.total_issues == 0

    def test_rows_follow_declaration_order_regardless_of_completion(
        self, tasks: list[ValidationTask]
    ) -> None:
        outcomes = [
            make_outcome(t, success=False, issue_count=i + 1)
            for i, t in enumerate(tasks)
        ]
        shuffled = outcomes[:]
        random.Random(7).shuffle(shuffled)

        assert aggregate(tasks, shuffled) == aggregate(tasks, outcomes)
        assert [row.task for row in aggregate(tasks, shuffled).rows] == tasks

    def test_counts(self, tasks: list[ValidationTask]) -> None:
        outcomes = [
            make_outcome(tasks[0], success=False, issue_count=14),
            make_outcome(tasks[1], auto_fix_applied=True),
            make_outcome(tasks[2], success=False, issue_count=2),
            make_outcome(tasks[3]),
        ]

        summary = aggregate(tasks, outcomes)

        assert not summary.success
        assert summary.total_issues == 16
        assert summary.failed == 2
        assert [row.task for row in summary.auto_fixed] == [tasks[1]]
        assert summary.count_by_category()[TaskCategory.TYPECHECK] == 14

    def test_interrupted_run_reports_not_run_rows(self, tasks: list[ValidationTask]) -> None:
        summary = aggregate(tasks, [make_outcome(tasks[0])], interrupted=True)

        assert not summary.success
        assert summary.not_run == 3
        assert [row.status_label for row in summary.rows[1:]] == ["⏭️ Not run"] * 3

    def test_missing_outcome_is_not_success(self, tasks: list[ValidationTask]) -> None:
        summary = aggregate(tasks, [make_outcome(t) for t in tasks[:-1]])

        assert not summary.success

    def test_exhausted_suite_label(self, tasks: list[ValidationTask]) -> None:
        test_task = tasks[3]
        attempts = (
            make_attempt(1, task=test_task, success=False),
            make_attempt(
                2,
                task=test_task,
                success=False,
                adjustments=frozenset({Adjustment.RETRY}),
            ),
        )
        outcome = TaskOutcome(
            result=make_result(test_task, success=False, issue_count=1),
            suite=SuiteOutcome(status=SuiteStatus.EXHAUSTED, attempts=attempts),
        )

        summary = aggregate(tasks, [outcome])

        assert summary.rows[3].status_label == "❌ Exhausted"
        assert summary.suite_rows == (summary.rows[3],)

    def test_undeclared_task_rejected(self, tasks: list[ValidationTask]) -> None:
        stray = make_task(TaskCategory.TEST, slug="test-other", test_type="test:other")

        with pytest.raises(ValueError, match="undeclared"):
            aggregate(tasks, [make_outcome(stray)])

    def test_duplicate_outcome_rejected(self, tasks: list[ValidationTask]) -> None:
        with pytest.raises(ValueError, match="duplicate"):
            aggregate(tasks, [make_outcome(tasks[0]), make_outcome(tasks[0])])
