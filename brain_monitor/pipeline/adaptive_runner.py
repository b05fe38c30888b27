"""AdaptiveRunner: drive one suite through the retry policy.

The decision logic lives in domain.retry_policy.next_action; this module
only performs the side effects around it:

    Idle -> Running -> next_action -> Succeed   -> SuiteStatus.SUCCEEDED
                                   -> Retry     -> backoff -> Running
                                   -> Exhaust   -> SuiteStatus.EXHAUSTED

Each attempt runs through the TaskRunner with the execution parameters of
its adjustment set, then reads the suite's own coverage artifact, ignoring
one left over from before the attempt started. Adjustments are only
ever added. An interrupt during an attempt or during the backoff ends the
suite with SuiteStatus.INTERRUPTED.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from brain_monitor.core.models import (
    RunAttempt,
    SuiteOutcome,
    SuiteStatus,
    TaskOutcome,
    TaskResult,
)
from brain_monitor.domain.coverage import build_delta_record, delta_file_name
from brain_monitor.domain.retry_policy import (
    Exhaust,
    Retry,
    Succeed,
    coverage_artifact_for,
    execution_params,
    next_action,
)
from brain_monitor.infra.sigint_guard import await_interruptible, run_until_interrupted

if TYPE_CHECKING:
    from pathlib import Path

    from brain_monitor.core.models import Adjustment, ValidationTask
    from brain_monitor.core.protocols import CoverageReader, ValidationEventSink
    from brain_monitor.domain.retry_policy import RetryPolicy
    from brain_monitor.pipeline.task_runner import TaskRunner

logger = logging.getLogger(__name__)

# Writes a JSON document atomically; injected so tests need no filesystem
JsonWriter = Callable[["Path", object], object]
SleepFn = Callable[[float, "asyncio.Event | None"], Awaitable[bool]]


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _describe(adjustments: frozenset[Adjustment]) -> str:
    return ", ".join(sorted(a.value for a in adjustments)) or "none"


@dataclass
class AdaptiveRunner:
    """Runs a suite until it passes or the retry budget is exhausted.

    Attributes:
        task_runner: Executes individual attempts.
        coverage_reader: Reads the coverage artifact after each attempt.
        repo_path: Repository root; coverage artifacts are relative to it.
        event_sink: Receives attempt and adjustment events.
        write_json: Persists the coverage delta artifact, None to skip it.
        report_dir: Where coverage delta artifacts are written.
        interrupt_event: Set on SIGINT/SIGTERM.
        sleep_fn: Interruptible sleep, returns True if interrupted.
        now: Wall clock for artifact timestamps.
        wall_time: Epoch seconds, compared with artifact mtimes.
    """

    task_runner: TaskRunner
    coverage_reader: CoverageReader
    repo_path: Path
    event_sink: ValidationEventSink
    write_json: JsonWriter | None = None
    report_dir: Path | None = None
    interrupt_event: asyncio.Event | None = None
    sleep_fn: SleepFn = field(default=await_interruptible)
    now: Callable[[], datetime] = field(default=_utc_now)
    wall_time: Callable[[], float] = field(default=time.time)

    async def run(self, task: ValidationTask, policy: RetryPolicy) -> TaskOutcome:
        """Run task under policy and return its final outcome.

        The returned TaskResult is the final attempt's result with
        ``success`` reflecting the suite verdict (coverage included) and the
        duration covering every attempt.
        """
        attempts: list[RunAttempt] = []
        applied: frozenset[Adjustment] = frozenset()
        status = SuiteStatus.INTERRUPTED
        artifact = self.repo_path / coverage_artifact_for(policy.coverage_artifact, task)

        while True:
            attempt_number = len(attempts) + 1
            self.event_sink.on_attempt_started(task, attempt_number, policy.max_attempts)
            params = execution_params(
                task, applied, policy, coverage_dir=str(artifact.parent)
            )
            started = self.wall_time()
            logger.debug(
                "%s attempt %d: adjustments=%s timeout=%s",
                task.name,
                attempt_number,
                sorted(a.value for a in applied),
                params.timeout,
            )
            outcome, interrupted = await run_until_interrupted(
                self.task_runner.run(task, params), self.interrupt_event
            )
            if interrupted or outcome is None:
                break

            # A summary older than this attempt belongs to an earlier run
            coverage = self.coverage_reader.read(artifact, not_before=started)
            attempt = RunAttempt(
                attempt_number=attempt_number,
                applied_adjustments=applied,
                result=outcome.result,
                coverage=coverage,
                failures=outcome.failures,
            )
            attempts.append(attempt)
            self.event_sink.on_attempt_completed(task, attempt, policy.target_coverage)

            action = next_action(attempts, policy)
            if isinstance(action, Succeed):
                status = SuiteStatus.SUCCEEDED
                break
            if isinstance(action, Exhaust):
                logger.info(
                    "%s exhausted after %d attempts (%s)",
                    task.name,
                    len(attempts),
                    action.signal.value,
                )
                status = SuiteStatus.EXHAUSTED
                break

            assert isinstance(action, Retry)
            if action.adjustment is not None:
                applied = applied | {action.adjustment}
                self.event_sink.on_adjustment_applied(task, action.adjustment.value)
            logger.info(
                "%s attempt %d failed (%s), retrying",
                task.name,
                attempt_number,
                action.signal.value,
            )
            if await self.sleep_fn(policy.backoff_seconds, self.interrupt_event):
                break

        return self._finish(task, policy, attempts, status)

    def _finish(
        self,
        task: ValidationTask,
        policy: RetryPolicy,
        attempts: list[RunAttempt],
        status: SuiteStatus,
    ) -> TaskOutcome:
        total_ms = sum(a.result.duration_ms for a in attempts)
        if not attempts:
            # Interrupted during the first attempt: nothing ran to completion
            return TaskOutcome(
                result=TaskResult(
                    task=task,
                    success=False,
                    duration_ms=0,
                    message="Interrupted before the first attempt finished",
                )
            )

        suite = SuiteOutcome(
            status=status,
            attempts=tuple(attempts),
            target_coverage=policy.target_coverage,
        )
        final = suite.final_attempt.result
        message = final.message
        if status is SuiteStatus.EXHAUSTED:
            history = "; ".join(
                f"#{a.attempt_number} [{_describe(a.applied_adjustments)}]"
                for a in attempts
            )
            message = f"Exhausted after {len(attempts)} attempts: {history}"
        elif status is SuiteStatus.INTERRUPTED:
            message = "Interrupted during retry"

        result = TaskResult(
            task=task,
            success=status is SuiteStatus.SUCCEEDED,
            duration_ms=total_ms,
            issue_count=final.issue_count,
            auto_fix_applied=final.auto_fix_applied,
            exit_code=final.exit_code,
            timed_out=final.timed_out,
            message=message,
        )
        self._write_delta(task, suite, total_ms)
        return TaskOutcome(
            result=result, failures=suite.final_attempt.failures, suite=suite
        )

    def _write_delta(
        self, task: ValidationTask, suite: SuiteOutcome, duration_ms: int
    ) -> None:
        if (
            self.write_json is None
            or self.report_dir is None
            or suite.coverage is None
            or suite.target_coverage is None
        ):
            return
        record = build_delta_record(
            suite=task.slug,
            coverage=suite.coverage,
            target=suite.target_coverage,
            duration_ms=duration_ms,
            attempts=len(suite.attempts),
            adjustments=suite.adjustments,
            timestamp=self.now(),
        )
        path = self.report_dir / delta_file_name(task.slug)
        self.write_json(path, record)
        self.event_sink.on_report_written(task, path)
