"""WatchController: re-run validations on file changes and on a timer.

Per task the state machine is

    stopped -> running -> {stopped, error} -> running -> ...

Dispatch requests come from three places: the initial run, the change
source and the poll timer. A request is dropped (never queued) while the
task is running or when the last dispatch was less than ``interval``
seconds ago.

The live summary is rewritten every ``summary_interval`` seconds when a
state changed. On interrupt the controller cancels in-flight runs (which
kills their process groups), closes the change source, marks every task
stopped and only then writes the final summary.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from brain_monitor.core.models import TaskCategory, WatchStatus, WatchTaskState
from brain_monitor.domain.reporting import render_watch_summary
from brain_monitor.infra.io.report_writer import write_text_atomic
from brain_monitor.infra.sigint_guard import await_interruptible

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from brain_monitor.core.models import ChangeEvent, TaskOutcome, ValidationTask
    from brain_monitor.core.protocols import ChangeSource, ValidationEventSink
    from brain_monitor.domain.config import WatchSettings

logger = logging.getLogger(__name__)

WATCH_SUMMARY_NAME = "watch-summary.md"

TYPECHECK_EXTENSIONS = frozenset({"ts", "tsx", "mts", "cts", "py", "pyi"})
LINT_EXTENSIONS = frozenset({"ts", "tsx", "mts", "cts", "js", "jsx", "mjs", "cjs", "py"})
FORMAT_EXTENSIONS = LINT_EXTENSIONS | {"json", "md", "css", "scss", "yaml", "yml"}

TaskRunFn = Callable[["ValidationTask"], Awaitable["TaskOutcome"]]
TextWriter = Callable[["Path", str], object]
SleepFn = Callable[[float, "asyncio.Event | None"], Awaitable[bool]]


def is_test_file(path: str) -> bool:
    name = path.replace("\\", "/").rsplit("/", 1)[-1]
    stem, _, _ = name.rpartition(".")
    return (
        stem.endswith((".test", ".spec"))
        or (name.endswith(".py") and (name.startswith("test_") or stem.endswith("_test")))
    )


def tasks_for_change(
    event: ChangeEvent, tasks: Sequence[ValidationTask]
) -> list[ValidationTask]:
    """Tasks a change should re-run, in declaration order.

    Type checking follows TypeScript/Python sources, lint follows script
    sources, format follows anything it formats, and test suites follow
    test files only. An event without a path routes nowhere; the poll
    timer covers it.
    """
    if not event.path:
        return []
    extension = event.extension
    selected = []
    for task in tasks:
        if task.category is TaskCategory.TYPECHECK:
            wanted = extension in TYPECHECK_EXTENSIONS
        elif task.category is TaskCategory.LINT:
            wanted = extension in LINT_EXTENSIONS
        elif task.category is TaskCategory.FORMAT:
            wanted = extension in FORMAT_EXTENSIONS
        else:
            wanted = is_test_file(event.path)
        if wanted:
            selected.append(task)
    return selected


def _local_now() -> datetime:
    return datetime.now().astimezone()


@dataclass
class WatchController:
    """Drives watched tasks until interrupted.

    Attributes:
        tasks: Watched tasks in declaration order.
        run_task: Runs one task to completion (and writes its report).
        event_sink: Receives watch events.
        settings: Throttle, poll and summary cadences.
        report_dir: Directory holding watch-summary.md.
        all_tasks: Whether the full validation set is watched (summary mode).
        change_source: Optional change notifications; None is polling-only.
        interrupt_event: Set on SIGINT/SIGTERM; ends the watch loop.
        write_text: Persists the summary (atomic writer by default).
        clock: Monotonic clock in seconds, used for throttling.
        now: Wall clock for display timestamps.
        sleep_fn: Interruptible sleep, returns True if interrupted.
    """

    tasks: Sequence[ValidationTask]
    run_task: TaskRunFn
    event_sink: ValidationEventSink
    settings: WatchSettings
    report_dir: Path
    all_tasks: bool = False
    change_source: ChangeSource | None = None
    interrupt_event: asyncio.Event | None = None
    write_text: TextWriter = field(default=write_text_atomic)
    clock: Callable[[], float] = field(default=time.monotonic)
    now: Callable[[], datetime] = field(default=_local_now)
    sleep_fn: SleepFn = field(default=await_interruptible)

    _states: dict[str, WatchTaskState] = field(init=False, default_factory=dict)
    _last_dispatch: dict[str, float] = field(init=False, default_factory=dict)
    _in_flight: dict[str, asyncio.Task[None]] = field(
        init=False, default_factory=dict
    )
    _dirty: bool = field(init=False, default=False)
    _fatal: BaseException | None = field(init=False, default=None)

    def __post_init__(self) -> None:
        self._states = {task.slug: WatchTaskState(task=task) for task in self.tasks}

    @property
    def states(self) -> list[WatchTaskState]:
        return [self._states[task.slug] for task in self.tasks]

    @property
    def summary_path(self) -> Path:
        return self.report_dir / WATCH_SUMMARY_NAME

    def request(self, task: ValidationTask, reason: str) -> bool:
        """Dispatch task unless it is running or inside its throttle window.

        Returns:
            True if the task was started, False if the request was dropped.
        """
        state = self._states[task.slug]
        if state.status is WatchStatus.RUNNING:
            logger.debug("Dropped %s (%s): already running", task.name, reason)
            return False
        current = self.clock()
        last = self._last_dispatch.get(task.slug)
        if last is not None and current - last < self.settings.interval:
            logger.debug(
                "Dropped %s (%s): %.1fs since last run", task.name, reason, current - last
            )
            return False

        self._last_dispatch[task.slug] = current
        state.status = WatchStatus.RUNNING
        state.last_run_at = self.now()
        self._dirty = True
        self.event_sink.on_watch_task_dispatched(task, reason)
        self._in_flight[task.slug] = asyncio.create_task(self._execute(task))
        return True

    def handle_change(self, event: ChangeEvent) -> list[ValidationTask]:
        """Route a change event; returns the tasks actually dispatched."""
        reason = f"{event.kind} {event.path}" if event.path else event.kind
        return [
            task
            for task in tasks_for_change(event, self.tasks)
            if self.request(task, reason)
        ]

    async def drain(self) -> None:
        """Wait for every in-flight run to finish."""
        while self._in_flight:
            await asyncio.gather(*self._in_flight.values(), return_exceptions=True)

    async def _execute(self, task: ValidationTask) -> None:
        state = self._states[task.slug]
        try:
            outcome = await self.run_task(task)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # Report write failures are fatal; stop the loop and re-raise from run()
            logger.exception("Watch run of %s failed", task.name)
            state.status = WatchStatus.ERROR
            if self._fatal is None:
                self._fatal = e
            if self.interrupt_event is not None:
                self.interrupt_event.set()
            return
        finally:
            self._in_flight.pop(task.slug, None)
            self._dirty = True

        result = outcome.result
        state.status = WatchStatus.STOPPED if result.success else WatchStatus.ERROR
        state.issue_count = result.issue_count
        state.last_duration_ms = result.duration_ms
        self.event_sink.on_watch_task_finished(state)

    async def _consume_changes(self) -> None:
        assert self.change_source is not None
        async for event in self.change_source.events():
            logger.debug("Change: %s %s", event.kind, event.path)
            self.handle_change(event)
        logger.info("Change source ended; polling only")

    def _write_summary(self, *, stopped: bool = False) -> Path:
        content = render_watch_summary(
            self.states,
            generated_at=self.now(),
            all_tasks=self.all_tasks,
            interval_seconds=self.settings.interval,
            report_dir=self.report_dir,
            stopped=stopped,
        )
        self.write_text(self.summary_path, content)
        self._dirty = False
        return self.summary_path

    async def run(self) -> Path:
        """Watch until interrupted; returns the final summary path.

        Raises:
            ReportWriteError: If a report or the summary cannot be written.
        """
        self.event_sink.on_watch_started(self.tasks, self.settings.interval)
        for task in self.tasks:
            self.request(task, "initial run")

        change_task: asyncio.Task[None] | None = None
        try:
            self._write_summary()
            if self.change_source is not None:
                change_task = asyncio.create_task(self._consume_changes())
            last_poll = self.clock()
            while self._fatal is None:
                if await self.sleep_fn(
                    self.settings.summary_interval, self.interrupt_event
                ):
                    break
                if self.clock() - last_poll >= self.settings.poll_interval:
                    last_poll = self.clock()
                    for task in self.tasks:
                        self.request(task, "poll")
                if self._dirty:
                    self._write_summary()
        finally:
            await self._stop_everything(change_task)

        path = self._write_summary(stopped=True)
        self.event_sink.on_watch_stopped(path)
        if self._fatal is not None:
            raise self._fatal
        return path

    async def _stop_everything(self, change_task: asyncio.Task[None] | None) -> None:
        running = list(self._in_flight.values())
        for run in running:
            run.cancel()
        if running:
            await asyncio.gather(*running, return_exceptions=True)
        self._in_flight.clear()

        if change_task is not None:
            change_task.cancel()
            await asyncio.gather(change_task, return_exceptions=True)
        if self.change_source is not None:
            await self.change_source.close()

        for state in self._states.values():
            state.status = WatchStatus.STOPPED
        logger.info("Watch stopped: %d tasks", len(self._states))
