"""Protocol definitions for the orchestration seams.

This module defines Protocol classes that let the pipeline and the
orchestrator depend on behaviour rather than concrete infrastructure.
Each protocol is a boundary the orchestrator interacts with:

- CommandRunnerPort: spawning external commands with streamed output
- ManifestReader: package discovery for the task registry
- CoverageReader: reading a coverage artifact
- ChangeSource: file-change notifications for watch mode
- ValidationEventSink: presentation of run progress

Usage:
    These protocols enable:
    1. In-memory fakes for unit testing the orchestrator and runners
    2. Alternative implementations (e.g., a different change notifier)
    3. Clear contracts between the pipeline and its collaborators
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping, Sequence
    from pathlib import Path

    from brain_monitor.core.models import (
        ChangeEvent,
        CoverageReport,
        DiscoveryResult,
        DiscoveryWarning,
        RunAttempt,
        TaskResult,
        ValidationTask,
        WatchTaskState,
    )


# Streaming output callback: (stream name "stdout"/"stderr", line without newline)
LineCallback = Callable[[str, str], None]


# =============================================================================
# Command Runner Protocols
# =============================================================================


@runtime_checkable
class CommandResultProtocol(Protocol):
    """Protocol for command execution results.

    Matches the interface of brain_monitor.infra.tools.command_runner.CommandResult
    for structural typing without import-time dependencies.
    """

    ok: bool
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool
    duration_seconds: float

    def stdout_tail(self, max_chars: int = 800, max_lines: int = 20) -> str:
        """Get truncated stdout."""
        ...

    def stderr_tail(self, max_chars: int = 800, max_lines: int = 20) -> str:
        """Get truncated stderr."""
        ...


@runtime_checkable
class CommandRunnerPort(Protocol):
    """Protocol for abstracting command execution.

    The canonical implementation is CommandRunner in
    brain_monitor/infra/tools/command_runner.py.
    """

    async def run_async(
        self,
        cmd: list[str] | str,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
        use_process_group: bool | None = None,
        shell: bool = False,
        cwd: Path | None = None,
        on_line: LineCallback | None = None,
    ) -> CommandResultProtocol:
        """Run a command asynchronously.

        Args:
            cmd: Command to run. Can be a list of strings or a shell string.
            env: Environment variables to set (merged with os.environ).
            timeout: Timeout for command execution in seconds.
            use_process_group: Whether to use process group for termination.
            shell: If True, run command through shell.
            cwd: Override working directory for this command.
            on_line: Called with (stream, line) for each output line as it
                arrives.

        Returns:
            CommandResultProtocol with execution details.

        Raises:
            OSError: If the process could not be created.
        """
        ...


# =============================================================================
# Discovery / Coverage / Change ports
# =============================================================================


class ManifestReader(Protocol):
    """Discovers package manifests under a repository."""

    def discover(self, repo_path: Path, package_dirs: Sequence[str]) -> DiscoveryResult:
        """Return every readable manifest plus warnings for skipped packages.

        Must not raise for malformed manifests.
        """
        ...


class CoverageReader(Protocol):
    """Reads a coverage artifact."""

    def read(
        self, path: Path, not_before: float | None = None
    ) -> CoverageReport | None:
        """Return the report, or None when the artifact is absent.

        An artifact modified before not_before (epoch seconds) is absent.
        """
        ...


class ChangeSource(Protocol):
    """Source of file-change events for watch mode."""

    def events(self) -> AsyncIterator[ChangeEvent]:
        """Yield change events until the source ends or is closed."""
        ...

    async def close(self) -> None:
        """Stop the source and release any child process."""
        ...


# =============================================================================
# Event Sink
# =============================================================================


class ValidationEventSink(Protocol):
    """Protocol for receiving orchestration events.

    Implementations handle presentation (console, logging) while the
    orchestrator focuses on coordination. All methods are synchronous and
    are only invoked from the event loop thread.
    """

    # -------------------------------------------------------------------------
    # Run lifecycle
    # -------------------------------------------------------------------------

    def on_run_started(self, tasks: Sequence[ValidationTask]) -> None:
        """Called once the task list is built, before any task starts."""
        ...

    def on_discovery_warning(self, warning: DiscoveryWarning) -> None:
        """Called for each package skipped during discovery."""
        ...

    def on_run_completed(
        self,
        success: bool,
        total_issues: int,
        summary_path: Path | None,
    ) -> None:
        """Called after aggregation and report writing."""
        ...

    def on_run_interrupted(self) -> None:
        """Called when a shutdown signal stops the run."""
        ...

    # -------------------------------------------------------------------------
    # Task lifecycle
    # -------------------------------------------------------------------------

    def on_task_started(self, task: ValidationTask) -> None:
        """Called when a task's process is about to be spawned."""
        ...

    def on_task_output(self, task: ValidationTask, line: str) -> None:
        """Called for each output line of a running task."""
        ...

    def on_test_running(self, task: ValidationTask, test_name: str) -> None:
        """Called when a test suite announces the test it is running."""
        ...

    def on_task_completed(
        self, result: TaskResult, completed: int, total: int
    ) -> None:
        """Called in completion order as each task finishes.

        Args:
            result: The finished task's result.
            completed: Number of tasks finished so far.
            total: Number of tasks in the run.
        """
        ...

    def on_report_written(self, task: ValidationTask | None, path: Path) -> None:
        """Called after a report file is persisted (task None for the summary)."""
        ...

    # -------------------------------------------------------------------------
    # Adaptive runner
    # -------------------------------------------------------------------------

    def on_attempt_started(
        self, task: ValidationTask, attempt_number: int, max_attempts: int
    ) -> None:
        """Called before each adaptive attempt."""
        ...

    def on_attempt_completed(
        self, task: ValidationTask, attempt: RunAttempt, target: float | None
    ) -> None:
        """Called after each adaptive attempt with its coverage, if any."""
        ...

    def on_adjustment_applied(self, task: ValidationTask, adjustment: str) -> None:
        """Called when a new adjustment is added for the next attempt."""
        ...

    # -------------------------------------------------------------------------
    # Watch mode
    # -------------------------------------------------------------------------

    def on_watch_started(
        self, tasks: Sequence[ValidationTask], interval_seconds: float
    ) -> None:
        """Called when the watch controller starts."""
        ...

    def on_watch_task_dispatched(self, task: ValidationTask, reason: str) -> None:
        """Called when a watch dispatch request is accepted."""
        ...

    def on_watch_task_finished(self, state: WatchTaskState) -> None:
        """Called when a watched task finishes running."""
        ...

    def on_watch_stopped(self, summary_path: Path | None) -> None:
        """Called after the final watch summary is flushed."""
        ...

    # -------------------------------------------------------------------------
    # Diagnostics
    # -------------------------------------------------------------------------

    def on_warning(self, message: str) -> None:
        """Called for non-fatal conditions worth showing to the user."""
        ...
