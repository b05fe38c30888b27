"""Unit tests for the pure adaptive retry policy."""

from __future__ import annotations

import itertools

import pytest

from brain_monitor.core.models import Adjustment, FailureClassification
from brain_monitor.domain.config import (
    CoverageSettings,
    MonitorConfig,
    SuiteConfig,
    TestsConfig,
)
from brain_monitor.domain.retry_policy import (
    COVERAGE_DIR_ENV,
    Exhaust,
    FailureSignal,
    Retry,
    RetryPolicy,
    Succeed,
    execution_params,
    failure_signal,
    next_action,
    resolve_policy,
    select_adjustment,
)
from tests.factories import make_attempt, make_failure, make_test_task

ALL = frozenset(Adjustment)


class TestNextAction:
    def test_passing_attempt_with_coverage_above_target_succeeds(self) -> None:
        policy = RetryPolicy(target_coverage=85.0, adjustments=ALL)
        # 90/82/88/91 averages to 87.75
        attempt = make_attempt(1, coverage_avg=87.75)

        assert next_action([attempt], policy) == Succeed()

    def test_low_coverage_applies_isolation_first(self) -> None:
        policy = RetryPolicy(target_coverage=85.0, adjustments=ALL)
        attempt = make_attempt(1, coverage_avg=70.0)

        action = next_action([attempt], policy)

        assert action == Retry(
            adjustment=Adjustment.ISOLATE, signal=FailureSignal.LOW_COVERAGE
        )

    def test_low_coverage_then_recovery_succeeds_on_second_attempt(self) -> None:
        policy = RetryPolicy(target_coverage=85.0, adjustments=ALL)
        first = make_attempt(1, coverage_avg=70.0)
        second = make_attempt(
            2, coverage_avg=86.0, adjustments=frozenset({Adjustment.ISOLATE})
        )

        assert next_action([first, second], policy) == Succeed()

    def test_timeout_signal_prefers_timeout_adjustment(self) -> None:
        policy = RetryPolicy(adjustments=ALL)
        attempt = make_attempt(1, success=False, timed_out=True)

        assert next_action([attempt], policy) == Retry(
            adjustment=Adjustment.TIMEOUT, signal=FailureSignal.TIMEOUT
        )

    def test_timeout_failure_record_counts_as_timeout_signal(self) -> None:
        attempt = make_attempt(
            1,
            success=False,
            failures=(make_failure(FailureClassification.TIMEOUT),),
        )

        assert failure_signal(attempt, None) is FailureSignal.TIMEOUT

    def test_generic_failure_prefers_retry(self) -> None:
        policy = RetryPolicy(adjustments=ALL)
        attempt = make_attempt(1, success=False)

        assert next_action([attempt], policy) == Retry(
            adjustment=Adjustment.RETRY, signal=FailureSignal.FAILURE
        )

    def test_only_enabled_adjustments_are_eligible(self) -> None:
        policy = RetryPolicy(adjustments=frozenset({Adjustment.WORKERS}))
        attempt = make_attempt(1, success=False)

        action = next_action([attempt], policy)

        assert isinstance(action, Retry)
        assert action.adjustment is Adjustment.WORKERS

    def test_retry_without_remaining_adjustment_keeps_current_set(self) -> None:
        policy = RetryPolicy(adjustments=frozenset({Adjustment.RETRY}), max_retries=3)
        attempt = make_attempt(
            2, success=False, adjustments=frozenset({Adjustment.RETRY})
        )

        assert next_action([attempt], policy) == Retry(
            adjustment=None, signal=FailureSignal.FAILURE
        )

    def test_exhausts_after_max_retries(self) -> None:
        policy = RetryPolicy(max_retries=2, adjustments=ALL)
        attempt = make_attempt(3, success=False)

        assert next_action([attempt], policy) == Exhaust(FailureSignal.FAILURE)

    def test_zero_retries_exhausts_immediately(self) -> None:
        policy = RetryPolicy(max_retries=0)

        action = next_action([make_attempt(1, success=False)], policy)

        assert isinstance(action, Exhaust)

    def test_absent_coverage_skips_coverage_gate(self) -> None:
        policy = RetryPolicy(target_coverage=85.0)

        assert next_action([make_attempt(1)], policy) == Succeed()

    def test_coverage_equal_to_target_within_epsilon_passes(self) -> None:
        policy = RetryPolicy(target_coverage=85.0)
        attempt = make_attempt(1, coverage_avg=84.99999999999)

        assert next_action([attempt], policy) == Succeed()

    def test_empty_attempts_rejected(self) -> None:
        with pytest.raises(ValueError):
            next_action([], RetryPolicy())

    def test_negative_max_retries_rejected(self) -> None:
        with pytest.raises(ValueError):
            RetryPolicy(max_retries=-1)


class TestPolicyProperties:
    @pytest.mark.parametrize("max_retries", [0, 1, 2, 5])
    def test_always_terminates_within_max_attempts(self, max_retries: int) -> None:
        """Simulate a suite that never passes; the loop must stop in time."""
        policy = RetryPolicy(max_retries=max_retries, adjustments=ALL)
        attempts = []
        applied: frozenset[Adjustment] = frozenset()
        for number in itertools.count(1):
            attempts.append(make_attempt(number, success=False, adjustments=applied))
            action = next_action(attempts, policy)
            if isinstance(action, Exhaust):
                break
            assert isinstance(action, Retry)
            if action.adjustment is not None:
                applied = applied | {action.adjustment}
            assert number <= max_retries

        assert len(attempts) == max_retries + 1

    def test_adjustments_are_monotonic(self) -> None:
        policy = RetryPolicy(max_retries=6, adjustments=ALL)
        attempts = []
        applied: frozenset[Adjustment] = frozenset()
        for number in range(1, 8):
            attempts.append(
                make_attempt(number, success=False, timed_out=number % 2 == 0, adjustments=applied)
            )
            action = next_action(attempts, policy)
            if not isinstance(action, Retry):
                break
            if action.adjustment is not None:
                applied = applied | {action.adjustment}

        for earlier, later in itertools.pairwise(attempts):
            assert earlier.applied_adjustments <= later.applied_adjustments


class TestSelectAdjustment:
    def test_skips_applied(self) -> None:
        applied = frozenset({Adjustment.TIMEOUT})
        assert (
            select_adjustment(FailureSignal.TIMEOUT, applied, ALL) is Adjustment.WORKERS
        )

    def test_none_when_everything_applied(self) -> None:
        assert select_adjustment(FailureSignal.FAILURE, ALL, ALL) is None


class TestExecutionParams:
    def test_timeout_doubles_and_sets_env(self) -> None:
        task = make_test_task(timeout_seconds=300)
        params = execution_params(
            task, frozenset({Adjustment.TIMEOUT, Adjustment.WORKERS}), RetryPolicy()
        )

        assert params.timeout == 600
        assert params.env["VITEST_TIMEOUT_MULTIPLIER"] == "2"
        assert params.env["VITEST_POOL_SIZE"] == "1"
        assert params.command == task.command

    def test_extra_args_append_in_stable_order(self) -> None:
        task = make_test_task(command="pnpm test")
        policy = RetryPolicy(
            extra_args={
                Adjustment.RETRY: "--retry=2",
                Adjustment.ISOLATE: "--isolate",
            }
        )

        params = execution_params(
            task, frozenset({Adjustment.RETRY, Adjustment.ISOLATE}), policy
        )

        assert params.command == "pnpm test --isolate --retry=2"

    def test_no_adjustments_runs_as_declared(self) -> None:
        task = make_test_task(timeout_seconds=60)
        params = execution_params(task, frozenset(), RetryPolicy())

        assert params.command == task.command
        assert dict(params.env) == {}
        assert params.timeout == 60

    def test_coverage_dir_is_exported(self) -> None:
        params = execution_params(
            make_test_task(), frozenset(), RetryPolicy(), coverage_dir="/repo/coverage/test-unit"
        )

        assert params.env == {COVERAGE_DIR_ENV: "/repo/coverage/test-unit"}


class TestResolvePolicy:
    def test_defaults_from_test_type(self) -> None:
        policy = resolve_policy(make_test_task("test:unit"), MonitorConfig())

        assert policy.target_coverage == 85.0
        assert policy.max_retries == 2
        assert policy.adjustments == frozenset(
            {Adjustment.TIMEOUT, Adjustment.ISOLATE, Adjustment.WORKERS}
        )

    def test_suites_get_separate_default_artifacts(self) -> None:
        unit = resolve_policy(make_test_task("test:unit"), MonitorConfig())
        integration = resolve_policy(make_test_task("test:integration"), MonitorConfig())

        assert unit.coverage_artifact == "coverage/test-unit/coverage-summary.json"
        assert integration.coverage_artifact == (
            "coverage/test-integration/coverage-summary.json"
        )

    def test_configured_artifact_template(self) -> None:
        config = MonitorConfig(
            coverage=CoverageSettings(artifact="reports/{suite}/summary.json")
        )

        policy = resolve_policy(make_test_task("test:e2e"), config)

        assert policy.coverage_artifact == "reports/test-e2e/summary.json"

    def test_target_precedence(self) -> None:
        config = MonitorConfig(
            tests=TestsConfig(suites={"test:unit": SuiteConfig(target_coverage=70.0)})
        )
        task = make_test_task("test:unit")

        assert resolve_policy(task, config, target_override=95.0).target_coverage == 95.0
        assert resolve_policy(task, config, env_threshold=60.0).target_coverage == 70.0
        assert (
            resolve_policy(task, MonitorConfig(), env_threshold=60.0).target_coverage
            == 60.0
        )

    def test_suite_overrides(self) -> None:
        config = MonitorConfig(
            tests=TestsConfig(
                suites={
                    "test:e2e": SuiteConfig(
                        max_retries=4,
                        adjustments=frozenset({Adjustment.RETRY}),
                        coverage_artifact="apps/web/coverage/summary.json",
                    )
                }
            )
        )

        policy = resolve_policy(make_test_task("test:e2e"), config)

        assert policy.max_retries == 4
        assert policy.adjustments == frozenset({Adjustment.RETRY})
        assert policy.coverage_artifact == "apps/web/coverage/summary.json"
        assert resolve_policy(
            make_test_task("test:e2e"), config, max_retries_override=0
        ).max_retries == 0
