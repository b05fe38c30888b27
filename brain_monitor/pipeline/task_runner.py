"""TaskRunner: execute one ValidationTask and parse its output.

This is the Process Runner stage. It receives explicit inputs (the task and
optional per-attempt overrides) and returns a TaskOutcome, so it can be
tested with a fake CommandRunnerPort and no subprocesses.

Per task:
1. Static gates with a fix_command run it first (auto-fix pass).
2. The check command runs with output streamed line by line into a fresh
   OutputParser and to the event sink.
3. The exit code, the parse result and any timeout become a TaskResult.

Spawn problems (OSError, shell exit 127) are scoped to the task: they give
a failed result with no issues and an explanatory message.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from brain_monitor.core.models import (
    Failure,
    FailureClassification,
    TaskCategory,
    TaskOutcome,
    TaskResult,
)
from brain_monitor.domain.parsing import clean_line, fix_applied, parser_for
from brain_monitor.domain.parsing.base import UNKNOWN_FILE, UNKNOWN_PACKAGE
from brain_monitor.domain.parsing.suite_output import TestOutputParser

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

    from brain_monitor.core.models import ValidationTask
    from brain_monitor.core.protocols import (
        CommandResultProtocol,
        CommandRunnerPort,
        ValidationEventSink,
    )
    from brain_monitor.domain.retry_policy import ExecutionParams

logger = logging.getLogger(__name__)

COMMAND_NOT_FOUND_EXIT_CODE = 127

# Forces non-interactive, non-watch output from test runners
TEST_ENV: Mapping[str, str] = {"CI": "true"}


@dataclass
class TaskRunner:
    """Runs validation tasks through an injected CommandRunnerPort.

    Attributes:
        command_runner: Spawns commands and streams their output.
        repo_path: Working directory for every command.
        event_sink: Receives per-line output events.
        clock: Monotonic clock in seconds (injectable for tests).
    """

    command_runner: CommandRunnerPort
    repo_path: Path
    event_sink: ValidationEventSink
    clock: Callable[[], float] = field(default=time.monotonic)

    async def run(
        self,
        task: ValidationTask,
        params: ExecutionParams | None = None,
    ) -> TaskOutcome:
        """Execute task and return its outcome.

        Args:
            task: Task to run.
            params: Command, extra environment and timeout for this
                execution (adaptive attempts); None runs the task as declared.

        Returns:
            TaskOutcome with the result and parsed failures. Never raises for
            spawn errors.
        """
        started = self.clock()
        effective_timeout = params.timeout if params else task.timeout_seconds
        run_env = dict(TEST_ENV) if task.category is TaskCategory.TEST else {}
        if params:
            run_env.update(params.env)

        auto_fixed = False
        if task.fix_command:
            auto_fixed = await self._run_fix(task, run_env, effective_timeout)

        check_command = params.command if params else task.command
        parser = parser_for(task.category)
        seen_lines: list[str] = []

        running: str | None = None

        def on_line(stream: str, raw: str) -> None:
            nonlocal running
            parser.feed(raw)
            line = clean_line(raw)
            seen_lines.append(line)
            self.event_sink.on_task_output(task, line)
            if isinstance(parser, TestOutputParser):
                name = parser.current_test
                if name is not None and name != running:
                    running = name
                    self.event_sink.on_test_running(task, name)

        try:
            result = await self.command_runner.run_async(
                check_command,
                env=run_env,
                timeout=effective_timeout,
                shell=True,
                cwd=self.repo_path,
                on_line=on_line,
            )
        except OSError as e:
            logger.warning("%s: failed to start %r: %s", task.name, check_command, e)
            return TaskOutcome(
                result=TaskResult(
                    task=task,
                    success=False,
                    duration_ms=self._elapsed_ms(started),
                    auto_fix_applied=auto_fixed,
                    message=f"Failed to start command: {e}",
                )
            )

        duration_ms = self._elapsed_ms(started)
        parsed = parser.finish()

        if result.returncode == COMMAND_NOT_FOUND_EXIT_CODE and not parsed.failures:
            logger.warning("%s: command not found: %s", task.name, check_command)
            return TaskOutcome(
                result=TaskResult(
                    task=task,
                    success=False,
                    duration_ms=duration_ms,
                    auto_fix_applied=auto_fixed,
                    exit_code=result.returncode,
                    message=f"Command not found: {_tail(result)}",
                )
            )

        if fix_applied(task.category, seen_lines):
            auto_fixed = True

        failures = parsed.failures
        issue_count = parsed.issue_count
        message: str | None = None
        if result.timed_out:
            timeout_failure = self._timeout_failure(
                task, effective_timeout, parser.line_number
            )
            failures = (*failures, timeout_failure)
            issue_count += 1
            message = f"Timed out after {effective_timeout:g}s"
        elif not result.ok and issue_count == 0:
            message = f"Exited with code {result.returncode}: {_tail(result)}"

        logger.info(
            "%s finished: exit=%s issues=%d duration=%dms",
            task.name,
            result.returncode,
            issue_count,
            duration_ms,
        )
        return TaskOutcome(
            result=TaskResult(
                task=task,
                success=result.ok and not result.timed_out,
                duration_ms=duration_ms,
                issue_count=issue_count,
                auto_fix_applied=auto_fixed,
                exit_code=result.returncode,
                timed_out=result.timed_out,
                message=message,
            ),
            failures=failures,
        )

    async def _run_fix(
        self,
        task: ValidationTask,
        env: Mapping[str, str],
        timeout: float | None,
    ) -> bool:
        """Run the auto-fix pass; True when it ran to completion."""
        assert task.fix_command is not None
        try:
            result = await self.command_runner.run_async(
                task.fix_command,
                env=env,
                timeout=timeout,
                shell=True,
                cwd=self.repo_path,
            )
        except OSError as e:
            logger.warning("%s: auto-fix failed to start: %s", task.name, e)
            return False
        if result.timed_out:
            logger.warning("%s: auto-fix timed out", task.name)
            return False
        lines = [clean_line(line) for line in result.stdout.splitlines()]
        applied = result.ok or fix_applied(task.category, lines)
        logger.debug(
            "%s: auto-fix exit=%s applied=%s", task.name, result.returncode, applied
        )
        return applied

    def _timeout_failure(
        self, task: ValidationTask, timeout: float | None, line_number: int
    ) -> Failure:
        limit = f"{timeout:g}s" if timeout is not None else "its limit"
        return Failure(
            package_id=UNKNOWN_PACKAGE,
            file_path=UNKNOWN_FILE,
            classification=FailureClassification.TIMEOUT,
            message=f"{task.name} exceeded {limit} and was terminated",
            source_line_range=(line_number, line_number),
            title=task.name,
        )

    def _elapsed_ms(self, started: float) -> int:
        return max(0, int((self.clock() - started) * 1000))


def _tail(result: CommandResultProtocol) -> str:
    text = result.stderr_tail(max_lines=5) or result.stdout_tail(max_lines=5)
    joined = " ".join(clean_line(line).strip() for line in text.splitlines())
    return joined.strip() or "(no output)"
