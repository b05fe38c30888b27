"""Shared types for the orchestrator and its factory.

Design principles:
- OrchestratorConfig: scalar configuration (paths, CLI overrides)
- OrchestratorDependencies: protocol implementations (DI for testability)
- TaskSelection: which tasks a run covers
- RunResult: what a finished run reports back to the CLI
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path  # noqa: TC003 - needed at runtime for dataclass field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from brain_monitor.core.models import TaskCategory
    from brain_monitor.core.protocols import (
        ChangeSource,
        CommandRunnerPort,
        CoverageReader,
        ManifestReader,
        ValidationEventSink,
    )
    from brain_monitor.domain.aggregate import Summary
    from brain_monitor.domain.config import MonitorConfig
    from brain_monitor.infra.git_utils import GitInfo

# Exit codes shared with the CLI
EXIT_SUCCESS = 0
EXIT_FAILED = 1
EXIT_CONFIG_ERROR = 2
EXIT_REPORT_ERROR = 3
EXIT_INTERRUPTED = 130

GitInfoFn = Callable[[Path], Awaitable["GitInfo"]]


class SelectionKind(Enum):
    """Scope of a run."""

    ALL = "all"
    GATE = "gate"
    TEST = "test"


@dataclass(frozen=True)
class TaskSelection:
    """Which tasks a run covers.

    Attributes:
        kind: ALL for ``validate``, GATE for one static gate, TEST for one
            test type.
        category: Static gate category when kind is GATE.
        test_type: Test-type script (e.g. "test:unit") when kind is TEST.
    """

    kind: SelectionKind = SelectionKind.ALL
    category: TaskCategory | None = None
    test_type: str | None = None

    @classmethod
    def all(cls) -> TaskSelection:
        return cls()

    @classmethod
    def gate(cls, category: TaskCategory) -> TaskSelection:
        return cls(kind=SelectionKind.GATE, category=category)

    @classmethod
    def test(cls, test_type: str) -> TaskSelection:
        return cls(kind=SelectionKind.TEST, test_type=test_type)

    @property
    def writes_summary(self) -> bool:
        """Only full runs regenerate validation-summary.md."""
        return self.kind is SelectionKind.ALL


@dataclass
class OrchestratorConfig:
    """Configuration for ValidationOrchestrator.

    Attributes:
        repo_path: Repository root.
        monitor_config: Parsed brain-monitor.yaml; None loads it from repo_path.
        target_override: ``--target`` coverage override for test runs.
        max_retries_override: ``--max-retries`` override for test runs.
        max_parallel: Concurrency cap override, None uses the config value.
    """

    repo_path: Path
    monitor_config: MonitorConfig | None = None
    target_override: float | None = None
    max_retries_override: int | None = None
    max_parallel: int | None = None


@dataclass
class OrchestratorDependencies:
    """Protocol implementations; None fields get the real infrastructure.

    Attributes:
        command_runner: Spawns validation commands.
        manifest_reader: Discovers package manifests.
        coverage_reader: Reads coverage artifacts.
        event_sink: Presentation of run progress.
        change_source: Watch mode change notifications.
        git_info: Returns branch/commit for report headers.
        now: Wall clock for report timestamps.
        install_signal_handlers: Route SIGINT/SIGTERM to the interrupt event.
    """

    command_runner: CommandRunnerPort | None = None
    manifest_reader: ManifestReader | None = None
    coverage_reader: CoverageReader | None = None
    event_sink: ValidationEventSink | None = None
    change_source: ChangeSource | None = None
    git_info: GitInfoFn | None = None
    now: Callable[[], datetime] | None = None
    install_signal_handlers: bool = True


@dataclass(frozen=True)
class RunResult:
    """Outcome of one orchestrator run.

    Attributes:
        exit_code: Process exit code for the CLI.
        summary: Aggregated summary (None when nothing ran).
        summary_path: validation-summary.md when written.
    """

    exit_code: int
    summary: Summary | None = None
    summary_path: Path | None = None

    @property
    def interrupted(self) -> bool:
        return self.exit_code == EXIT_INTERRUPTED
