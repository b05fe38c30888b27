"""Configuration dataclasses for brain-monitor.yaml.

All configuration objects are frozen. Every field has a default so that a
repository without a brain-monitor.yaml still gets a working setup for a
pnpm/turbo monorepo.

Key types:
- ConfigError: raised for any invalid configuration
- GateConfig: one static gate (typecheck/lint/format)
- SuiteConfig: per-test-type adaptive runner settings
- TestsConfig / CoverageSettings / WatchSettings: grouped settings
- MonitorConfig: the root object
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING

from brain_monitor.core.models import Adjustment, TaskCategory

if TYPE_CHECKING:
    from collections.abc import Mapping


class ConfigError(Exception):
    """Raised when brain-monitor.yaml has invalid content."""


DEFAULT_TEST_TIMEOUT_SECONDS = 600.0
DEFAULT_COVERAGE_TARGET = 85.0
DEFAULT_COVERAGE_ARTIFACT = "coverage/{suite}/coverage-summary.json"
DEFAULT_MAX_RETRIES = 2


def parse_non_negative_number(value: object, name: str) -> float:
    # Reject booleans explicitly (bool is subclass of int)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{name} must be a number, got {type(value).__name__}")
    if value < 0:
        raise ConfigError(f"{name} must be non-negative, got {value}")
    return float(value)


@dataclass(frozen=True)
class GateConfig:
    """Configuration for one static gate.

    Gates can be specified in two forms in brain-monitor.yaml:
    - String shorthand: "pnpm turbo run typecheck"
    - Object form: {command: "...", fix_command: "...", timeout: 300}

    Attributes:
        command: Check command.
        fix_command: Optional auto-fix command run before the check.
        timeout: Optional timeout in seconds.
    """

    command: str
    fix_command: str | None = None
    timeout: float | None = None

    @classmethod
    def from_value(cls, value: object, gate: str) -> GateConfig:
        """Create GateConfig from a YAML value (string or dict).

        Raises:
            ConfigError: If value is neither a non-empty string nor a valid dict.
        """
        if isinstance(value, str):
            if not value.strip():
                raise ConfigError(f"gates.{gate}: command cannot be empty")
            return cls(command=value)

        if isinstance(value, dict):
            unknown = set(value) - {"command", "fix_command", "timeout"}
            if unknown:
                raise ConfigError(
                    f"gates.{gate}: unknown field '{sorted(map(str, unknown))[0]}'"
                )
            command = value.get("command")
            if not isinstance(command, str) or not command.strip():
                raise ConfigError(f"gates.{gate}: 'command' must be a non-empty string")
            fix_command = value.get("fix_command")
            if fix_command is not None and (
                not isinstance(fix_command, str) or not fix_command.strip()
            ):
                raise ConfigError(
                    f"gates.{gate}: 'fix_command' must be a non-empty string"
                )
            timeout = value.get("timeout")
            if timeout is not None:
                timeout = parse_non_negative_number(timeout, f"gates.{gate}.timeout")
            return cls(command=command, fix_command=fix_command, timeout=timeout)

        raise ConfigError(
            f"gates.{gate} must be a string or object, got {type(value).__name__}"
        )


DEFAULT_GATES: Mapping[TaskCategory, GateConfig] = MappingProxyType(
    {
        TaskCategory.TYPECHECK: GateConfig(
            command="pnpm turbo run typecheck --output-logs=full --continue",
        ),
        TaskCategory.LINT: GateConfig(
            command='pnpm turbo run lint --filter="*" --continue',
            fix_command='pnpm turbo run lint --filter="*" --continue -- --fix',
        ),
        TaskCategory.FORMAT: GateConfig(
            command='pnpm turbo run format --filter="*" --continue -- --check',
            fix_command='pnpm turbo run format --filter="*" --continue -- --write',
        ),
    }
)


@dataclass(frozen=True)
class SuiteConfig:
    """Adaptive runner settings for one test type.

    Unset fields fall back to the defaults for the test type and to the
    global coverage settings.

    Attributes:
        target_coverage: Coverage target, None uses coverage.target.
        max_retries: Retry budget for the adaptive runner.
        adjustments: Adjustments this suite may apply.
        coverage_artifact: Path (relative to the repo) of the coverage summary;
            ``{suite}`` is replaced by the task slug.
        extra_args: Extra command arguments appended per adjustment.
    """

    target_coverage: float | None = None
    max_retries: int | None = None
    adjustments: frozenset[Adjustment] | None = None
    coverage_artifact: str | None = None
    extra_args: Mapping[Adjustment, str] = field(
        default_factory=lambda: MappingProxyType({})
    )


@dataclass(frozen=True)
class TestsConfig:
    """Settings shared by all discovered test tasks.

    Attributes:
        command_template: Command for one test type; ``{script}`` is replaced
            by the manifest script name (e.g. "test:unit").
        timeout: Per-attempt process timeout in seconds.
        sequential: Test types that run one at a time after the parallel group.
        suites: Per-test-type overrides keyed by script name.
    """

    __test__ = False  # not a pytest class

    command_template: str = "pnpm turbo run {script} --filter=* --continue"
    timeout: float | None = DEFAULT_TEST_TIMEOUT_SECONDS
    sequential: frozenset[str] = frozenset()
    suites: Mapping[str, SuiteConfig] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def command_for(self, script: str) -> str:
        return self.command_template.replace("{script}", script)


@dataclass(frozen=True)
class CoverageSettings:
    """Global coverage settings.

    Attributes:
        target: Default coverage target for every suite.
        artifact: Summary path relative to the repo. ``{suite}`` is replaced
            by the task slug so parallel suites never share an artifact.
    """

    target: float = DEFAULT_COVERAGE_TARGET
    artifact: str = DEFAULT_COVERAGE_ARTIFACT


@dataclass(frozen=True)
class WatchSettings:
    """Watch mode settings.

    Attributes:
        interval: Per-task throttle window in seconds.
        poll_interval: Seconds between timer-driven re-runs.
        change_command: Long-running command whose output lines are change
            events; None means polling-only.
        summary_interval: Seconds between live summary rewrites.
    """

    interval: float = 5.0
    poll_interval: float = 30.0
    change_command: str | None = None
    summary_interval: float = 2.0


@dataclass(frozen=True)
class MonitorConfig:
    """Root configuration object.

    Attributes:
        report_dir: Report directory (relative to the repo root).
        log_dir: Debug log directory (relative to the repo root).
        package_dirs: Directories whose children are scanned for manifests.
        max_parallel: Cap on concurrently running tasks, None for no cap.
        gates: Static gate commands by category.
        tests: Test task settings.
        coverage: Coverage settings.
        watch: Watch mode settings.
    """

    report_dir: str = "_errors"
    log_dir: str = "_logs"
    package_dirs: tuple[str, ...] = ("apps", "packages")
    max_parallel: int | None = None
    gates: Mapping[TaskCategory, GateConfig] = field(
        default_factory=lambda: DEFAULT_GATES
    )
    tests: TestsConfig = field(default_factory=TestsConfig)
    coverage: CoverageSettings = field(default_factory=CoverageSettings)
    watch: WatchSettings = field(default_factory=WatchSettings)

    def gate(self, category: TaskCategory) -> GateConfig:
        return self.gates.get(category, DEFAULT_GATES[category])
