"""Tests for AdaptiveRunner: attempts, adjustments, coverage gate, interrupts."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from pathlib import Path

import pytest

from brain_monitor.core.models import Adjustment, SuiteStatus
from brain_monitor.domain.retry_policy import COVERAGE_DIR_ENV, RetryPolicy
from brain_monitor.pipeline.adaptive_runner import AdaptiveRunner
from brain_monitor.pipeline.task_runner import TaskRunner
from tests.factories import REPORT_DIR, make_test_task
from tests.fakes import (
    FakeCommandRunner,
    FakeCoverageReader,
    FakeEventSink,
    FakeResponse,
    FakeSleep,
)

REPO = Path("/repo")
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
STARTED = NOW.timestamp()
ALL_ADJUSTMENTS = frozenset(Adjustment)

FAILING_VITEST = """\
 FAIL  src/app.test.ts > App > renders
AssertionError: expected 1 to be 2
"""


class Harness:
    """Wires an AdaptiveRunner to fakes and captures written artifacts."""

    def __init__(
        self,
        coverage: FakeCoverageReader | None = None,
        interrupt_event: asyncio.Event | None = None,
        sleep: FakeSleep | None = None,
    ) -> None:
        self.runner = FakeCommandRunner()
        self.sink = FakeEventSink()
        self.coverage = coverage or FakeCoverageReader()
        self.sleep = sleep or FakeSleep()
        self.written: dict[Path, object] = {}
        self.adaptive = AdaptiveRunner(
            task_runner=TaskRunner(
                command_runner=self.runner, repo_path=REPO, event_sink=self.sink
            ),
            coverage_reader=self.coverage,
            repo_path=REPO,
            event_sink=self.sink,
            write_json=self._write_json,
            report_dir=REPORT_DIR,
            interrupt_event=interrupt_event,
            sleep_fn=self.sleep,
            now=lambda: NOW,
            wall_time=lambda: STARTED,
        )

    def _write_json(self, path: Path, data: object) -> None:
        self.written[path] = data


class TestCoverageGate:
    @pytest.mark.asyncio
    async def test_low_coverage_retries_with_isolation(self) -> None:
        harness = Harness(coverage=FakeCoverageReader.averaging(70.0, 86.0))
        task = make_test_task()
        harness.runner.add("run test-unit", FakeResponse())
        policy = RetryPolicy(
            max_retries=2, target_coverage=85.0, adjustments=ALL_ADJUSTMENTS
        )

        outcome = await harness.adaptive.run(task, policy)

        assert outcome.suite is not None
        assert outcome.suite.status is SuiteStatus.SUCCEEDED
        assert [a.attempt_number for a in outcome.suite.attempts] == [1, 2]
        assert outcome.suite.adjustments == {Adjustment.ISOLATE}
        assert outcome.result.success
        assert harness.runner.calls[1].env["VITEST_ISOLATE"] == "true"
        assert harness.runner.calls[1].env["CI"] == "true"
        assert "VITEST_ISOLATE" not in harness.runner.calls[0].env
        assert harness.sleep.delays == [policy.backoff_seconds]
        assert [e.kwargs["adjustment"] for e in harness.sink.get_events("adjustment_applied")] == [
            "isolate"
        ]

    @pytest.mark.asyncio
    async def test_coverage_delta_written(self) -> None:
        harness = Harness(coverage=FakeCoverageReader.averaging(70.0, 86.0))
        task = make_test_task()
        harness.runner.add("run test-unit", FakeResponse())
        policy = RetryPolicy(target_coverage=85.0, adjustments=ALL_ADJUSTMENTS)

        await harness.adaptive.run(task, policy)

        path = REPORT_DIR / "coverage-delta-test-unit.json"
        record = harness.written[path]
        assert isinstance(record, dict)
        assert record["suite"] == "test-unit"
        assert record["status"] == "PASS"
        assert record["attempts"] == 2
        assert record["adjustments"] == ["isolate"]
        assert record["delta"] == pytest.approx(1.0)
        reports = harness.sink.get_events("report_written")
        assert reports[0].kwargs["path"] == path

    @pytest.mark.asyncio
    async def test_no_artifact_skips_gate(self) -> None:
        harness = Harness()
        task = make_test_task()
        harness.runner.add("run test-unit", FakeResponse())
        policy = RetryPolicy(target_coverage=85.0, adjustments=ALL_ADJUSTMENTS)

        outcome = await harness.adaptive.run(task, policy)

        assert outcome.suite is not None
        assert outcome.suite.status is SuiteStatus.SUCCEEDED
        assert len(outcome.suite.attempts) == 1
        assert harness.written == {}
        assert harness.coverage.paths == [
            REPO / "coverage" / "test-unit" / "coverage-summary.json"
        ]

    @pytest.mark.asyncio
    async def test_each_attempt_reads_only_its_own_artifact(self) -> None:
        harness = Harness(coverage=FakeCoverageReader.averaging(70.0, 86.0))
        task = make_test_task("test:integration")
        harness.runner.add("run test-integration", FakeResponse())
        policy = RetryPolicy(target_coverage=85.0, adjustments=ALL_ADJUSTMENTS)

        await harness.adaptive.run(task, policy)

        artifact_dir = REPO / "coverage" / "test-integration"
        assert harness.coverage.paths == [artifact_dir / "coverage-summary.json"] * 2
        assert harness.coverage.cutoffs == [STARTED, STARTED]
        assert [c.env[COVERAGE_DIR_ENV] for c in harness.runner.calls] == [
            str(artifact_dir)
        ] * 2

    @pytest.mark.asyncio
    async def test_no_target_skips_delta(self) -> None:
        harness = Harness(coverage=FakeCoverageReader.averaging(40.0))
        task = make_test_task()
        harness.runner.add("run test-unit", FakeResponse())

        outcome = await harness.adaptive.run(task, RetryPolicy())

        assert outcome.result.success
        assert harness.written == {}


class TestExhaustion:
    @pytest.mark.asyncio
    async def test_always_failing_suite_is_exhausted(self) -> None:
        harness = Harness()
        task = make_test_task()
        harness.runner.add(
            "run test-unit", FakeResponse(stdout=FAILING_VITEST, returncode=1)
        )
        policy = RetryPolicy(
            max_retries=2,
            adjustments=frozenset(
                {Adjustment.TIMEOUT, Adjustment.ISOLATE, Adjustment.WORKERS}
            ),
        )

        outcome = await harness.adaptive.run(task, policy)

        assert outcome.suite is not None
        assert outcome.suite.status is SuiteStatus.EXHAUSTED
        assert len(outcome.suite.attempts) == policy.max_attempts
        assert not outcome.result.success
        assert outcome.result.message == (
            "Exhausted after 3 attempts: #1 [none]; #2 [isolate]; #3 [isolate, workers]"
        )
        assert len(outcome.failures) == 1
        assert len(harness.sleep.delays) == 2

    @pytest.mark.asyncio
    async def test_adjustments_accumulate(self) -> None:
        harness = Harness()
        task = make_test_task()
        harness.runner.add(
            "run test-unit", FakeResponse(stdout=FAILING_VITEST, returncode=1)
        )
        policy = RetryPolicy(max_retries=3, adjustments=ALL_ADJUSTMENTS)

        outcome = await harness.adaptive.run(task, policy)

        assert outcome.suite is not None
        applied = [a.applied_adjustments for a in outcome.suite.attempts]
        for earlier, later in zip(applied, applied[1:], strict=False):
            assert earlier <= later
        assert applied[1] == {Adjustment.RETRY}
        assert harness.runner.calls[1].env["VITEST_RETRY"] == "2"

    @pytest.mark.asyncio
    async def test_zero_retries_runs_once(self) -> None:
        harness = Harness()
        task = make_test_task()
        harness.runner.add("run test-unit", FakeResponse(returncode=1))

        outcome = await harness.adaptive.run(task, RetryPolicy(max_retries=0))

        assert outcome.suite is not None
        assert outcome.suite.status is SuiteStatus.EXHAUSTED
        assert len(harness.runner.calls) == 1
        assert harness.sleep.delays == []

    @pytest.mark.asyncio
    async def test_duration_covers_every_attempt(self) -> None:
        harness = Harness()
        task = make_test_task()
        harness.runner.add("run test-unit", FakeResponse(returncode=1))

        outcome = await harness.adaptive.run(task, RetryPolicy(max_retries=1))

        assert outcome.suite is not None
        assert outcome.result.duration_ms == sum(
            a.result.duration_ms for a in outcome.suite.attempts
        )


class TestTimeoutAdjustment:
    @pytest.mark.asyncio
    async def test_timeout_doubles_on_retry(self) -> None:
        harness = Harness()
        task = make_test_task(timeout_seconds=60.0)
        harness.runner.add(
            "run test-unit",
            FakeResponse(timed_out=True),
            FakeResponse(),
        )
        policy = RetryPolicy(adjustments=ALL_ADJUSTMENTS)

        outcome = await harness.adaptive.run(task, policy)

        assert outcome.suite is not None
        assert outcome.suite.status is SuiteStatus.SUCCEEDED
        assert [c.timeout for c in harness.runner.calls] == [60.0, 120.0]
        assert harness.runner.calls[1].env["VITEST_TIMEOUT_MULTIPLIER"] == "2"
        assert outcome.suite.adjustments == {Adjustment.TIMEOUT}

    @pytest.mark.asyncio
    async def test_extra_args_appended_while_active(self) -> None:
        harness = Harness()
        task = make_test_task()
        harness.runner.add("run test-unit", FakeResponse(timed_out=True))
        harness.runner.add("run test-unit --no-file-parallelism", FakeResponse())
        policy = RetryPolicy(
            adjustments=frozenset({Adjustment.WORKERS}),
            extra_args={Adjustment.WORKERS: "--no-file-parallelism"},
        )

        outcome = await harness.adaptive.run(task, policy)

        assert outcome.result.success
        assert harness.runner.commands() == [
            "run test-unit",
            "run test-unit --no-file-parallelism",
        ]


class TestInterrupts:
    @pytest.mark.asyncio
    async def test_interrupt_during_backoff(self) -> None:
        harness = Harness(sleep=FakeSleep(interrupt_after=1))
        task = make_test_task()
        harness.runner.add("run test-unit", FakeResponse(returncode=1))

        outcome = await harness.adaptive.run(task, RetryPolicy(max_retries=3))

        assert outcome.suite is not None
        assert outcome.suite.status is SuiteStatus.INTERRUPTED
        assert len(outcome.suite.attempts) == 1
        assert outcome.result.message == "Interrupted during retry"
        assert not outcome.result.success

    @pytest.mark.asyncio
    async def test_interrupt_before_first_attempt_finishes(self) -> None:
        event = asyncio.Event()
        event.set()
        harness = Harness(interrupt_event=event)
        task = make_test_task()
        harness.runner.add("run test-unit", FakeResponse(block=asyncio.Event()))

        outcome = await harness.adaptive.run(task, RetryPolicy())

        assert outcome.suite is None
        assert not outcome.result.success
        assert outcome.result.message == "Interrupted before the first attempt finished"
        assert harness.written == {}
        assert not harness.sink.has_event("attempt_completed")
