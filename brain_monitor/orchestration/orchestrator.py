"""ValidationOrchestrator: registry -> runners -> aggregation -> reports.

One run:
1. Select tasks (full plan from discovery, one static gate, or one suite).
2. Take the report directory lock and open the debug log.
3. Start the parallel group, report progress in completion order, then run
   the sequential tasks one at a time.
4. Write each task report as its task finishes, then aggregate in
   declaration order and write the summary.

Interrupts cancel in-flight tasks (killing their process groups); their
partial output is discarded and the summary shows them as not run.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import replace
from typing import TYPE_CHECKING

from brain_monitor.core.models import TaskCategory
from brain_monitor.domain.aggregate import aggregate
from brain_monitor.domain.registry import (
    build_static_task,
    build_tasks,
    build_test_task,
    normalize_test_type,
)
from brain_monitor.domain.reporting import (
    ReportHeader,
    render_summary,
    render_task_report,
    summary_data,
    task_report_data,
)
from brain_monitor.domain.retry_policy import resolve_policy
from brain_monitor.infra.git_utils import GitInfo
from brain_monitor.infra.io.log_output.debug_log import (
    cleanup_debug_logging,
    configure_debug_logging,
)
from brain_monitor.infra.io.report_writer import (
    RunLock,
    next_run_number,
    write_json_atomic,
    write_text_atomic,
)
from brain_monitor.infra.sigint_guard import (
    install_interrupt_handlers,
    remove_interrupt_handlers,
    run_until_interrupted,
)
from brain_monitor.infra.tools.env import (
    get_coverage_threshold_override,
    get_log_dir,
    get_report_dir,
)
from brain_monitor.orchestration.run_context import RunContext
from brain_monitor.orchestration.types import (
    EXIT_FAILED,
    EXIT_INTERRUPTED,
    EXIT_SUCCESS,
    RunResult,
    SelectionKind,
    TaskSelection,
)
from brain_monitor.pipeline.adaptive_runner import AdaptiveRunner
from brain_monitor.pipeline.task_runner import TaskRunner
from brain_monitor.pipeline.watch_controller import WatchController

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from datetime import datetime
    from pathlib import Path

    from brain_monitor.core.models import TaskOutcome, ValidationTask
    from brain_monitor.core.protocols import (
        ChangeSource,
        CommandRunnerPort,
        CoverageReader,
        ManifestReader,
        ValidationEventSink,
    )
    from brain_monitor.domain.config import MonitorConfig
    from brain_monitor.orchestration.types import GitInfoFn

logger = logging.getLogger(__name__)

SUMMARY_NAME = "validation-summary"
WATCH_DEFAULT_CATEGORIES = (TaskCategory.TYPECHECK, TaskCategory.LINT)


class ValidationOrchestrator:
    """Runs validation tasks and persists their reports.

    Construct through ``create_orchestrator`` unless every collaborator is
    supplied explicitly (tests).
    """

    def __init__(
        self,
        *,
        repo_path: Path,
        config: MonitorConfig,
        command_runner: CommandRunnerPort,
        manifest_reader: ManifestReader,
        coverage_reader: CoverageReader,
        event_sink: ValidationEventSink,
        git_info: GitInfoFn,
        now: Callable[[], datetime],
        change_source: ChangeSource | None = None,
        target_override: float | None = None,
        max_retries_override: int | None = None,
        max_parallel: int | None = None,
        install_signal_handlers: bool = True,
    ) -> None:
        self.repo_path = repo_path
        self.config = config
        self.command_runner = command_runner
        self.manifest_reader = manifest_reader
        self.coverage_reader = coverage_reader
        self.event_sink = event_sink
        self.change_source = change_source
        self.target_override = target_override
        self.max_retries_override = max_retries_override
        self.max_parallel = max_parallel if max_parallel is not None else config.max_parallel
        self._git_info = git_info
        self._now = now
        self._install_signal_handlers = install_signal_handlers
        self.report_dir = get_report_dir(repo_path, config.report_dir)
        self.log_dir = get_log_dir(repo_path, config.log_dir)
        self.interrupt_event: asyncio.Event | None = None
        self._git = GitInfo()

        self.task_runner = TaskRunner(
            command_runner=command_runner,
            repo_path=repo_path,
            event_sink=event_sink,
        )

    # ------------------------------------------------------------------
    # Task selection
    # ------------------------------------------------------------------

    def select_tasks(self, selection: TaskSelection) -> list[ValidationTask]:
        """Tasks for selection in declaration order.

        Only full runs scan the package manifests; a single gate or suite
        is built directly.
        """
        if selection.kind is SelectionKind.GATE:
            assert selection.category is not None
            return [build_static_task(selection.category, self.config, self.report_dir)]
        if selection.kind is SelectionKind.TEST:
            assert selection.test_type is not None
            script = normalize_test_type(selection.test_type)
            return [build_test_task(script, self.config, self.report_dir)]

        plan = build_tasks(
            self.repo_path, self.config, self.report_dir, self.manifest_reader
        )
        for warning in plan.warnings:
            logger.warning("Skipped package %s", warning)
            self.event_sink.on_discovery_warning(warning)
        return list(plan.tasks)

    def watch_tasks(self, all_tasks: bool) -> list[ValidationTask]:
        if all_tasks:
            return self.select_tasks(TaskSelection.all())
        return [
            build_static_task(category, self.config, self.report_dir)
            for category in WATCH_DEFAULT_CATEGORIES
        ]

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def _new_context(self, tasks: Sequence[ValidationTask]) -> RunContext:
        return RunContext(
            run_id=uuid.uuid4().hex[:12],
            repo_path=self.repo_path,
            config=self.config,
            report_dir=self.report_dir,
            log_dir=self.log_dir,
            started_at=self._now(),
            tasks=tuple(tasks),
        )

    def _adaptive_runner(self) -> AdaptiveRunner:
        return AdaptiveRunner(
            task_runner=self.task_runner,
            coverage_reader=self.coverage_reader,
            repo_path=self.repo_path,
            event_sink=self.event_sink,
            write_json=write_json_atomic,
            report_dir=self.report_dir,
            interrupt_event=self.interrupt_event,
            now=self._now,
        )

    async def run(self, selection: TaskSelection | None = None) -> RunResult:
        """Run the selected tasks and write their reports.

        Returns:
            RunResult with exit code 0 (all passed), 1 (failures) or 130
            (interrupted).

        Raises:
            RunLockError: If another run holds the report directory.
            ReportWriteError: If a report cannot be written.
        """
        selection = selection or TaskSelection.all()
        tasks = self.select_tasks(selection)
        ctx = self._new_context(tasks)

        with RunLock(self.report_dir):
            debug_log = configure_debug_logging(self.log_dir, ctx.run_id)
            if debug_log is not None:
                logger.debug("Debug log at %s", debug_log)
            loop = asyncio.get_running_loop()
            self.interrupt_event = asyncio.Event()
            handlers = self._install_signal_handlers and install_interrupt_handlers(
                loop, self.interrupt_event
            )
            try:
                self._git = ctx.git = await self._git_info(self.repo_path)
                self.event_sink.on_run_started(tasks)
                await self._execute(ctx)
                return self._finish(ctx, selection)
            finally:
                if handlers:
                    remove_interrupt_handlers(loop)
                cleanup_debug_logging(ctx.run_id)

    async def _execute(self, ctx: RunContext) -> None:
        parallel = [t for t in ctx.tasks if not t.sequential]
        sequential = [t for t in ctx.tasks if t.sequential]

        _, interrupted = await run_until_interrupted(
            self._run_group(parallel, ctx), self.interrupt_event
        )
        for task in sequential:
            if interrupted:
                break
            _, interrupted = await run_until_interrupted(
                self._run_group([task], ctx), self.interrupt_event
            )
        ctx.interrupted = interrupted

    async def _run_group(self, tasks: Sequence[ValidationTask], ctx: RunContext) -> None:
        semaphore = asyncio.Semaphore(self.max_parallel) if self.max_parallel else None

        async def guarded(task: ValidationTask) -> TaskOutcome:
            if semaphore is None:
                return await self.run_task(task)
            async with semaphore:
                return await self.run_task(task)

        running = [asyncio.create_task(guarded(task)) for task in tasks]
        try:
            for next_done in asyncio.as_completed(running):
                outcome = await next_done
                completed = ctx.record(outcome)
                self.event_sink.on_task_completed(
                    outcome.result, completed, len(ctx.tasks)
                )
        finally:
            for pending in running:
                pending.cancel()
            await asyncio.gather(*running, return_exceptions=True)

    async def run_task(self, task: ValidationTask) -> TaskOutcome:
        """Run one task through the right runner and write its report."""
        self.event_sink.on_task_started(task)
        if task.category is TaskCategory.TEST:
            policy = resolve_policy(
                task,
                self.config,
                target_override=self.target_override,
                max_retries_override=self.max_retries_override,
                env_threshold=get_coverage_threshold_override(),
            )
            outcome = await self._adaptive_runner().run(task, policy)
        else:
            outcome = await self.task_runner.run(task)
        await self._write_task_report(outcome)
        return outcome

    async def _write_task_report(self, outcome: TaskOutcome) -> None:
        task = outcome.task
        header = ReportHeader(
            generated_at=self._now(),
            run_number=next_run_number(self.report_dir, task.slug),
            branch=self._git.branch,
            commit=self._git.commit,
        )
        write_text_atomic(task.output_path, render_task_report(outcome, header))
        write_json_atomic(
            task.output_path.with_suffix(".json"), task_report_data(outcome, header)
        )
        self.event_sink.on_report_written(task, task.output_path)

    def _finish(self, ctx: RunContext, selection: TaskSelection) -> RunResult:
        summary = aggregate(ctx.tasks, ctx.ordered_outcomes(), interrupted=ctx.interrupted)
        summary_path: Path | None = None
        if selection.writes_summary:
            finished_at = self._now()
            duration_ms = max(
                0, int((finished_at - ctx.started_at).total_seconds() * 1000)
            )
            header = ReportHeader(
                generated_at=finished_at,
                branch=ctx.git.branch,
                commit=ctx.git.commit,
            )
            summary_path = self.report_dir / f"{SUMMARY_NAME}.md"
            write_text_atomic(
                summary_path,
                render_summary(
                    summary, header, duration_ms=duration_ms, report_dir=self.report_dir
                ),
            )
            write_json_atomic(
                summary_path.with_suffix(".json"),
                summary_data(
                    summary, header, duration_ms=duration_ms, report_dir=self.report_dir
                ),
            )
            self.event_sink.on_report_written(None, summary_path)

        if ctx.interrupted:
            logger.info("Run interrupted after %d tasks", ctx.completed)
            self.event_sink.on_run_interrupted()
            return RunResult(EXIT_INTERRUPTED, summary, summary_path)

        logger.info(
            "Run finished: success=%s issues=%d", summary.success, summary.total_issues
        )
        self.event_sink.on_run_completed(
            summary.success, summary.total_issues, summary_path
        )
        exit_code = EXIT_SUCCESS if summary.success else EXIT_FAILED
        return RunResult(exit_code, summary, summary_path)

    # ------------------------------------------------------------------
    # Watch
    # ------------------------------------------------------------------

    async def watch(self, *, all_tasks: bool = False, interval: float | None = None) -> int:
        """Watch until interrupted; returns the exit code (130).

        Raises:
            RunLockError: If another run holds the report directory.
            ReportWriteError: If a report or the watch summary cannot be written.
        """
        tasks = self.watch_tasks(all_tasks)
        settings = self.config.watch
        if interval is not None:
            settings = replace(settings, interval=interval)
        run_id = uuid.uuid4().hex[:12]

        with RunLock(self.report_dir):
            configure_debug_logging(self.log_dir, run_id)
            loop = asyncio.get_running_loop()
            self.interrupt_event = asyncio.Event()
            handlers = self._install_signal_handlers and install_interrupt_handlers(
                loop, self.interrupt_event
            )
            try:
                self._git = await self._git_info(self.repo_path)
                controller = WatchController(
                    tasks=tasks,
                    run_task=self.run_task,
                    event_sink=self.event_sink,
                    settings=settings,
                    report_dir=self.report_dir,
                    all_tasks=all_tasks,
                    change_source=self.change_source,
                    interrupt_event=self.interrupt_event,
                    now=self._now,
                )
                await controller.run()
            finally:
                if handlers:
                    remove_interrupt_handlers(loop)
                cleanup_debug_logging(run_id)
        return EXIT_INTERRUPTED

    # ------------------------------------------------------------------
    # Sync wrappers
    # ------------------------------------------------------------------

    def run_sync(self, selection: TaskSelection | None = None) -> RunResult:
        """Synchronous wrapper for run()."""
        return asyncio.run(self.run(selection))

    def watch_sync(self, *, all_tasks: bool = False, interval: float | None = None) -> int:
        """Synchronous wrapper for watch()."""
        return asyncio.run(self.watch(all_tasks=all_tasks, interval=interval))
