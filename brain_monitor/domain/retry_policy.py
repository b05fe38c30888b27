"""Adaptive retry policy.

The decision step is a pure function of the attempts made so far:

    next_action(attempts, policy) -> Succeed | Retry | Exhaust

An attempt passes when its process succeeded and, if the suite has a
coverage target and the attempt produced coverage, the average meets the
target. Otherwise the failure signal picks the next adjustment:

    timeout-related failure -> [timeout, workers, retry]
    coverage below target   -> [isolate, workers, retry]
    any other failure       -> [retry, isolate, workers]

Only adjustments enabled for the suite are eligible, and applied
adjustments are never withdrawn. When every eligible adjustment is already
applied the retry proceeds with the current set. Attempts are numbered from
1; the run is exhausted once ``attempt_number > max_retries``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING

from brain_monitor.core.models import Adjustment
from brain_monitor.domain.config import DEFAULT_COVERAGE_ARTIFACT, DEFAULT_MAX_RETRIES
from brain_monitor.domain.coverage import meets_target
from brain_monitor.domain.registry import get_test_type

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from brain_monitor.core.models import RunAttempt, ValidationTask
    from brain_monitor.domain.config import MonitorConfig

DEFAULT_BACKOFF_SECONDS = 1.0
TIMEOUT_MULTIPLIER = 2

# Absolute directory the suite should write its coverage summary into
COVERAGE_DIR_ENV = "BRAIN_MONITOR_COVERAGE_DIR"
SUITE_PLACEHOLDER = "{suite}"


class FailureSignal(Enum):
    TIMEOUT = "timeout"
    LOW_COVERAGE = "low_coverage"
    FAILURE = "failure"


ADJUSTMENT_PRIORITY: Mapping[FailureSignal, tuple[Adjustment, ...]] = MappingProxyType(
    {
        FailureSignal.TIMEOUT: (Adjustment.TIMEOUT, Adjustment.WORKERS, Adjustment.RETRY),
        FailureSignal.LOW_COVERAGE: (
            Adjustment.ISOLATE,
            Adjustment.WORKERS,
            Adjustment.RETRY,
        ),
        FailureSignal.FAILURE: (Adjustment.RETRY, Adjustment.ISOLATE, Adjustment.WORKERS),
    }
)

# Environment each adjustment sets for vitest-based suites
ADJUSTMENT_ENV: Mapping[Adjustment, Mapping[str, str]] = MappingProxyType(
    {
        Adjustment.TIMEOUT: MappingProxyType(
            {"VITEST_TIMEOUT_MULTIPLIER": str(TIMEOUT_MULTIPLIER)}
        ),
        Adjustment.WORKERS: MappingProxyType({"VITEST_POOL_SIZE": "1"}),
        Adjustment.ISOLATE: MappingProxyType({"VITEST_ISOLATE": "true"}),
        Adjustment.RETRY: MappingProxyType({"VITEST_RETRY": "2"}),
    }
)


@dataclass(frozen=True)
class RetryPolicy:
    """Retry settings for one suite.

    Attributes:
        max_retries: Retries after the first attempt.
        target_coverage: Coverage target, None disables the coverage gate.
        adjustments: Adjustments this suite may apply.
        coverage_artifact: Artifact path relative to the repository root;
            ``{suite}`` is replaced by the task slug.
        backoff_seconds: Pause between attempts.
        extra_args: Command arguments appended while an adjustment is active.
    """

    max_retries: int = DEFAULT_MAX_RETRIES
    target_coverage: float | None = None
    adjustments: frozenset[Adjustment] = frozenset()
    coverage_artifact: str = DEFAULT_COVERAGE_ARTIFACT
    backoff_seconds: float = DEFAULT_BACKOFF_SECONDS
    extra_args: Mapping[Adjustment, str] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be non-negative, got {self.max_retries}")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


@dataclass(frozen=True)
class Succeed:
    pass


@dataclass(frozen=True)
class Retry:
    """Run another attempt, adding ``adjustment`` (None keeps the current set)."""

    adjustment: Adjustment | None
    signal: FailureSignal


@dataclass(frozen=True)
class Exhaust:
    signal: FailureSignal


NextAction = Succeed | Retry | Exhaust


def attempt_passed(attempt: RunAttempt, target: float | None) -> bool:
    if not attempt.result.success:
        return False
    if target is None or attempt.coverage is None:
        return True
    return meets_target(attempt.coverage, target)


def failure_signal(attempt: RunAttempt, target: float | None) -> FailureSignal:
    """Classify why an attempt did not pass."""
    if attempt.timeout_related:
        return FailureSignal.TIMEOUT
    if (
        target is not None
        and attempt.coverage is not None
        and not meets_target(attempt.coverage, target)
    ):
        return FailureSignal.LOW_COVERAGE
    return FailureSignal.FAILURE


def select_adjustment(
    signal: FailureSignal,
    applied: frozenset[Adjustment],
    enabled: frozenset[Adjustment],
) -> Adjustment | None:
    for adjustment in ADJUSTMENT_PRIORITY[signal]:
        if adjustment in enabled and adjustment not in applied:
            return adjustment
    return None


def next_action(attempts: Sequence[RunAttempt], policy: RetryPolicy) -> NextAction:
    """Decide what follows the latest attempt.

    Raises:
        ValueError: If attempts is empty.
    """
    if not attempts:
        raise ValueError("next_action needs at least one attempt")
    last = attempts[-1]
    if attempt_passed(last, policy.target_coverage):
        return Succeed()
    signal = failure_signal(last, policy.target_coverage)
    if last.attempt_number > policy.max_retries:
        return Exhaust(signal)
    return Retry(
        adjustment=select_adjustment(
            signal, last.applied_adjustments, policy.adjustments
        ),
        signal=signal,
    )


@dataclass(frozen=True)
class ExecutionParams:
    """Concrete command/env/timeout for one attempt."""

    command: str
    env: Mapping[str, str]
    timeout: float | None


def coverage_artifact_for(artifact: str, task: ValidationTask) -> str:
    """Expand the ``{suite}`` placeholder of an artifact path."""
    return artifact.replace(SUITE_PLACEHOLDER, task.slug)


def execution_params(
    task: ValidationTask,
    adjustments: frozenset[Adjustment],
    policy: RetryPolicy,
    coverage_dir: str | None = None,
) -> ExecutionParams:
    env: dict[str, str] = {}
    if coverage_dir is not None:
        env[COVERAGE_DIR_ENV] = coverage_dir
    command = task.command
    timeout = task.timeout_seconds
    # Enum order keeps the command line stable across runs
    for adjustment in Adjustment:
        if adjustment not in adjustments:
            continue
        env.update(ADJUSTMENT_ENV[adjustment])
        extra = policy.extra_args.get(adjustment)
        if extra:
            command = f"{command} {extra}"
        if adjustment is Adjustment.TIMEOUT and timeout is not None:
            timeout = timeout * TIMEOUT_MULTIPLIER
    return ExecutionParams(command=command, env=MappingProxyType(env), timeout=timeout)


def resolve_policy(
    task: ValidationTask,
    config: MonitorConfig,
    *,
    target_override: float | None = None,
    max_retries_override: int | None = None,
    env_threshold: float | None = None,
) -> RetryPolicy:
    """Effective policy for a test task.

    Coverage target precedence: explicit override, suite config,
    ``COVERAGE_THRESHOLD`` (env_threshold), then ``coverage.target``.
    """
    script = task.test_type or ""
    suite = config.tests.suites.get(script)
    defaults = get_test_type(script).default_adjustments if script else frozenset()

    if target_override is not None:
        target = target_override
    elif suite is not None and suite.target_coverage is not None:
        target = suite.target_coverage
    elif env_threshold is not None:
        target = env_threshold
    else:
        target = config.coverage.target

    if max_retries_override is not None:
        max_retries = max_retries_override
    elif suite is not None and suite.max_retries is not None:
        max_retries = suite.max_retries
    else:
        max_retries = DEFAULT_MAX_RETRIES

    adjustments = defaults
    if suite is not None and suite.adjustments is not None:
        adjustments = suite.adjustments

    artifact = config.coverage.artifact
    if suite is not None and suite.coverage_artifact is not None:
        artifact = suite.coverage_artifact

    return RetryPolicy(
        max_retries=max_retries,
        target_coverage=target,
        adjustments=adjustments,
        coverage_artifact=coverage_artifact_for(artifact, task),
        extra_args=suite.extra_args if suite is not None else MappingProxyType({}),
    )
