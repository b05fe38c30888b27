"""Shared domain dataclasses for brain-monitor.

This module provides the types that flow between the registry, the runners,
the parsers and the reporters. They live in core so that no layer has to
import another layer just to name a result.

Types:
- TaskCategory: static gate kinds plus the test category
- ValidationTask: identity of one gate in a run
- TaskResult: outcome of executing one ValidationTask
- FailureClassification: closed enum of failure kinds
- Location / Failure: one structured defect parsed from tool output
- CoverageReport: four coverage percentages plus their mean
- Adjustment / RunAttempt / SuiteOutcome: adaptive retry bookkeeping
- TaskOutcome: a finished task with its parsed failures
- WatchStatus / WatchTaskState: per-task watch mode state
- PackageManifest / DiscoveryWarning / DiscoveryResult: test discovery input
- ChangeEvent: file-change notification for watch mode
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime
    from pathlib import Path


class TaskCategory(Enum):
    """Kind of validation gate."""

    TYPECHECK = "typecheck"
    LINT = "lint"
    FORMAT = "format"
    TEST = "test"

    @property
    def is_static(self) -> bool:
        return self is not TaskCategory.TEST

    @property
    def supports_auto_fix(self) -> bool:
        return self in (TaskCategory.LINT, TaskCategory.FORMAT)


@dataclass(frozen=True)
class ValidationTask:
    """Identity of one gate in a run.

    Attributes:
        name: Display name, unique within a run (e.g., "Unit Tests").
        command: Shell command that performs the check.
        category: Static gate kind or TEST.
        output_path: Where the task's report is written.
        test_type: Manifest script name for test tasks (e.g., "test:unit").
        fix_command: Optional auto-fix command run before the check.
        timeout_seconds: Per-task process timeout, None for no limit.
        sequential: Run after the parallel group, one at a time.
        emoji: Icon used in console and report output.
        slug: Short identifier used in artifact file names (defaults to the
            category value).
    """

    name: str
    command: str
    category: TaskCategory
    output_path: Path
    test_type: str | None = None
    fix_command: str | None = None
    timeout_seconds: float | None = None
    sequential: bool = False
    emoji: str = "•"
    slug: str = ""

    def __post_init__(self) -> None:
        if not self.slug:
            object.__setattr__(self, "slug", self.category.value)


@dataclass(frozen=True)
class TaskResult:
    """Outcome of executing one ValidationTask.

    Attributes:
        task: The originating task.
        success: True iff the check command exited with code 0.
        duration_ms: Wall-clock duration, never negative.
        issue_count: Issues attributed to this task.
        auto_fix_applied: Whether an auto-fix pass ran for this task.
        exit_code: Process exit code (None when the process never started).
        timed_out: Whether the process was killed for exceeding its timeout.
        message: Explanation for failures that produced no parsed output.
    """

    task: ValidationTask
    success: bool
    duration_ms: int
    issue_count: int = 0
    auto_fix_applied: bool = False
    exit_code: int | None = None
    timed_out: bool = False
    message: str | None = None

    def __post_init__(self) -> None:
        if self.duration_ms < 0:
            raise ValueError("duration_ms must be non-negative")
        if self.issue_count < 0:
            raise ValueError("issue_count must be non-negative")


class FailureClassification(Enum):
    """Closed set of failure kinds.

    Keyword precedence within one lookahead window is assertion > timeout >
    setup > runtime. BUILD is only assigned by explicit grammar rules.
    """

    ASSERTION = "assertion"
    TIMEOUT = "timeout"
    SETUP = "setup"
    BUILD = "build"
    RUNTIME = "runtime"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Location:
    """Line/column position inside a source file (1-based)."""

    line: int
    column: int | None = None

    def __str__(self) -> str:
        if self.column is None:
            return str(self.line)
        return f"{self.line}:{self.column}"


@dataclass(frozen=True)
class Failure:
    """One structured defect extracted from tool output.

    Attributes:
        package_id: Package the failure belongs to ("" when unknown).
        file_path: Source file reported by the tool ("unknown" when absent).
        classification: Always exactly one FailureClassification.
        message: Human-readable description.
        source_line_range: (first, last) 1-based output line numbers the
            record was built from.
        location: Optional line/column inside file_path.
        title: Test name or rule/code, when the grammar provides one.
        severity: "error" or "warning" for static gates.
    """

    package_id: str
    file_path: str
    classification: FailureClassification
    message: str
    source_line_range: tuple[int, int]
    location: Location | None = None
    title: str | None = None
    severity: str = "error"


@dataclass(frozen=True)
class CoverageReport:
    """Coverage percentages for a suite.

    ``average`` is derived and cannot be passed in.
    """

    statements: float
    branches: float
    functions: float
    lines: float
    average: float = field(init=False)

    def __post_init__(self) -> None:
        mean = (self.statements + self.branches + self.functions + self.lines) / 4
        object.__setattr__(self, "average", mean)

    def to_dict(self) -> dict[str, float]:
        return {
            "statements": self.statements,
            "branches": self.branches,
            "functions": self.functions,
            "lines": self.lines,
            "average": self.average,
        }


class Adjustment(Enum):
    """Execution parameter change applied between adaptive attempts."""

    TIMEOUT = "timeout"
    ISOLATE = "isolate"
    WORKERS = "workers"
    RETRY = "retry"


@dataclass(frozen=True)
class RunAttempt:
    """One execution of a suite by the adaptive runner.

    Attributes:
        attempt_number: 1-based, strictly increasing within a suite.
        applied_adjustments: Adjustments in effect for this attempt.
        result: TaskResult produced by the attempt.
        coverage: Coverage read after the attempt, None when absent.
        failures: Failures parsed from the attempt's output.
    """

    attempt_number: int
    applied_adjustments: frozenset[Adjustment]
    result: TaskResult
    coverage: CoverageReport | None = None
    failures: tuple[Failure, ...] = ()

    @property
    def timeout_related(self) -> bool:
        if self.result.timed_out:
            return True
        return any(
            f.classification is FailureClassification.TIMEOUT for f in self.failures
        )


class SuiteStatus(Enum):
    """Terminal state of an adaptive suite run."""

    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"
    INTERRUPTED = "interrupted"


@dataclass(frozen=True)
class SuiteOutcome:
    """All attempts of one adaptive suite run.

    Attributes:
        status: Terminal state.
        attempts: Attempts in order; never empty.
        target_coverage: Target the suite was held to, None when ungated.
    """

    status: SuiteStatus
    attempts: tuple[RunAttempt, ...]
    target_coverage: float | None = None

    def __post_init__(self) -> None:
        if not self.attempts:
            raise ValueError("SuiteOutcome needs at least one attempt")

    @property
    def final_attempt(self) -> RunAttempt:
        return self.attempts[-1]

    @property
    def coverage(self) -> CoverageReport | None:
        return self.final_attempt.coverage

    @property
    def adjustments(self) -> frozenset[Adjustment]:
        return self.final_attempt.applied_adjustments

    @property
    def coverage_delta(self) -> float | None:
        if self.coverage is None or self.target_coverage is None:
            return None
        return self.coverage.average - self.target_coverage


@dataclass(frozen=True)
class TaskOutcome:
    """A finished task: its result, parsed failures and adaptive history."""

    result: TaskResult
    failures: tuple[Failure, ...] = ()
    suite: SuiteOutcome | None = None

    @property
    def task(self) -> ValidationTask:
        return self.result.task


class WatchStatus(Enum):
    """Per-task watch mode status."""

    STOPPED = "stopped"
    RUNNING = "running"
    ERROR = "error"


@dataclass
class WatchTaskState:
    """Mutable watch state for one task; written only by the WatchController."""

    task: ValidationTask
    status: WatchStatus = WatchStatus.STOPPED
    last_run_at: datetime | None = None
    issue_count: int = 0
    last_duration_ms: int | None = None


@dataclass(frozen=True)
class PackageManifest:
    """Scripts declared by one package manifest.

    Attributes:
        name: Package name from the manifest (directory name when absent).
        path: Path to the manifest file.
        scripts: Script name to command mapping.
    """

    name: str
    path: Path
    scripts: dict[str, str] = field(default_factory=dict)

    @property
    def available_scripts(self) -> frozenset[str]:
        return frozenset(self.scripts)


@dataclass(frozen=True)
class DiscoveryWarning:
    """A package skipped during discovery (malformed or unreadable manifest)."""

    path: Path
    reason: str

    def __str__(self) -> str:
        return f"{self.path}: {self.reason}"


@dataclass(frozen=True)
class DiscoveryResult:
    """Manifests found under the package directories plus skipped entries."""

    manifests: tuple[PackageManifest, ...] = ()
    warnings: tuple[DiscoveryWarning, ...] = ()


@dataclass(frozen=True)
class ChangeEvent:
    """File-change notification with a best-effort affected path."""

    kind: str
    path: str | None = None

    @property
    def extension(self) -> str:
        if not self.path or "." not in self.path.rsplit("/", 1)[-1]:
            return ""
        return self.path.rsplit(".", 1)[-1].lower()
