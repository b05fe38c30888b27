"""Tests for WatchController: throttling, routing, summaries and shutdown."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from pathlib import Path

import pytest

from brain_monitor.core.models import (
    ChangeEvent,
    TaskCategory,
    TaskOutcome,
    ValidationTask,
    WatchStatus,
)
from brain_monitor.domain.config import WatchSettings
from brain_monitor.infra.io.report_writer import ReportWriteError
from brain_monitor.pipeline.watch_controller import (
    WatchController,
    is_test_file,
    tasks_for_change,
)
from tests.factories import REPORT_DIR, make_outcome, make_task, make_test_task
from tests.fakes import FakeChangeSource, FakeClock, FakeEventSink, FakeSleep

NOW = datetime(2026, 3, 1, 9, 30, tzinfo=UTC)

TYPECHECK = make_task(TaskCategory.TYPECHECK, name="Type Checking")
LINT = make_task(TaskCategory.LINT, name="Linting")
FORMAT = make_task(TaskCategory.FORMAT, name="Formatting")
UNIT = make_test_task("test:unit")


class FakeTaskRun:
    """run_task stand-in: records calls, optionally blocks until released."""

    def __init__(self, *, issues: dict[str, int] | None = None) -> None:
        self.calls: list[str] = []
        self.cancelled: list[str] = []
        self.gate: asyncio.Event | None = None
        self.error: Exception | None = None
        self.issues = issues or {}

    async def __call__(self, task: ValidationTask) -> TaskOutcome:
        self.calls.append(task.slug)
        if self.error is not None:
            raise self.error
        if self.gate is not None:
            try:
                await self.gate.wait()
            except asyncio.CancelledError:
                self.cancelled.append(task.slug)
                raise
        issues = self.issues.get(task.slug, 0)
        return make_outcome(task, success=issues == 0, issue_count=issues)


class Harness:
    def __init__(
        self,
        tasks: list[ValidationTask],
        *,
        settings: WatchSettings | None = None,
        sleep: FakeSleep | None = None,
        change_source: FakeChangeSource | None = None,
        interrupt_event: asyncio.Event | None = None,
        run_task: FakeTaskRun | None = None,
    ) -> None:
        self.clock = FakeClock()
        self.sink = FakeEventSink()
        self.run_task = run_task or FakeTaskRun()
        self.written: list[tuple[Path, str]] = []
        self.sleep = sleep or FakeSleep(clock=self.clock, interrupt_after=1)
        self.controller = WatchController(
            tasks=tasks,
            run_task=self.run_task,
            event_sink=self.sink,
            settings=settings or WatchSettings(interval=30.0),
            report_dir=REPORT_DIR,
            change_source=change_source,
            interrupt_event=interrupt_event,
            write_text=self._write_text,
            clock=self.clock,
            now=lambda: NOW,
            sleep_fn=self.sleep,
        )

    def _write_text(self, path: Path, content: str) -> None:
        self.written.append((path, content))


class TestThrottle:
    @pytest.mark.asyncio
    async def test_second_request_inside_interval_is_dropped(self) -> None:
        harness = Harness([TYPECHECK])
        controller = harness.controller

        assert controller.request(TYPECHECK, "first")
        await controller.drain()
        harness.clock.advance(5)
        assert not controller.request(TYPECHECK, "second")
        harness.clock.advance(25)
        assert controller.request(TYPECHECK, "third")
        await controller.drain()

        assert harness.run_task.calls == ["typecheck", "typecheck"]

    @pytest.mark.asyncio
    async def test_request_while_running_is_dropped(self) -> None:
        run_task = FakeTaskRun()
        run_task.gate = asyncio.Event()
        harness = Harness(
            [TYPECHECK], settings=WatchSettings(interval=0.0), run_task=run_task
        )
        controller = harness.controller

        assert controller.request(TYPECHECK, "first")
        await asyncio.sleep(0)
        harness.clock.advance(100)
        assert not controller.request(TYPECHECK, "second")
        assert controller.states[0].status is WatchStatus.RUNNING

        run_task.gate.set()
        await controller.drain()
        assert run_task.calls == ["typecheck"]
        assert controller.states[0].status is WatchStatus.STOPPED

    @pytest.mark.asyncio
    async def test_tasks_are_throttled_independently(self) -> None:
        harness = Harness([TYPECHECK, LINT])
        controller = harness.controller

        assert controller.request(TYPECHECK, "a")
        assert controller.request(LINT, "b")
        await controller.drain()

        assert sorted(harness.run_task.calls) == ["lint", "typecheck"]


class TestFinishedState:
    @pytest.mark.asyncio
    async def test_issues_mark_task_error(self) -> None:
        harness = Harness([TYPECHECK, LINT], run_task=FakeTaskRun(issues={"lint": 4}))
        controller = harness.controller

        controller.request(TYPECHECK, "initial run")
        controller.request(LINT, "initial run")
        await controller.drain()

        typecheck, lint = controller.states
        assert typecheck.status is WatchStatus.STOPPED
        assert lint.status is WatchStatus.ERROR
        assert lint.issue_count == 4
        assert lint.last_run_at == NOW
        assert lint.last_duration_ms == 1200
        finished = harness.sink.get_events("watch_task_finished")
        assert {e.kwargs["status"] for e in finished} == {
            WatchStatus.STOPPED,
            WatchStatus.ERROR,
        }


class TestRouting:
    def test_typescript_source_routes_to_static_gates(self) -> None:
        event = ChangeEvent("changed", "packages/web/src/app.ts")
        assert tasks_for_change(event, [TYPECHECK, LINT, FORMAT, UNIT]) == [
            TYPECHECK,
            LINT,
            FORMAT,
        ]

    def test_test_file_also_routes_to_suites(self) -> None:
        event = ChangeEvent("changed", "src/app.test.tsx")
        assert UNIT in tasks_for_change(event, [TYPECHECK, UNIT])

    def test_markdown_routes_to_format_only(self) -> None:
        event = ChangeEvent("changed", "README.md")
        assert tasks_for_change(event, [TYPECHECK, LINT, FORMAT]) == [FORMAT]

    def test_event_without_path_routes_nowhere(self) -> None:
        assert tasks_for_change(ChangeEvent("changed"), [TYPECHECK, LINT]) == []

    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("src/a.test.ts", True),
            ("src/a.spec.js", True),
            ("tests/test_api.py", True),
            ("pkg/api_test.py", True),
            ("src/a.ts", False),
            ("src/testing.py", False),
        ],
    )
    def test_is_test_file(self, path: str, expected: bool) -> None:
        assert is_test_file(path) is expected

    @pytest.mark.asyncio
    async def test_handle_change_dispatches_matching_tasks(self) -> None:
        harness = Harness([TYPECHECK, LINT, UNIT])

        dispatched = harness.controller.handle_change(ChangeEvent("changed", "src/a.ts"))
        await harness.controller.drain()

        assert dispatched == [TYPECHECK, LINT]
        reasons = [e.kwargs["reason"] for e in harness.sink.get_events("watch_task_dispatched")]
        assert reasons == ["changed src/a.ts", "changed src/a.ts"]


class TestRunLoop:
    @pytest.mark.asyncio
    async def test_initial_run_and_stopped_summary(self) -> None:
        harness = Harness([TYPECHECK, LINT])

        path = await harness.controller.run()

        assert path == REPORT_DIR / "watch-summary.md"
        assert sorted(harness.run_task.calls) == ["lint", "typecheck"]
        first_path, first = harness.written[0]
        assert first_path == path
        assert first.startswith("# 👁️ Watch Mode Active")
        final_path, final = harness.written[-1]
        assert final_path == path
        assert final.startswith("# 👁️ Watch Mode Stopped")
        assert all(s.status is WatchStatus.STOPPED for s in harness.controller.states)
        names = harness.sink.names()
        assert names[0] == "watch_started"
        assert names[-1] == "watch_stopped"

    @pytest.mark.asyncio
    async def test_poll_reruns_after_poll_interval(self) -> None:
        settings = WatchSettings(interval=1.0, poll_interval=4.0, summary_interval=2.0)
        harness = Harness([TYPECHECK], settings=settings)
        harness.sleep = FakeSleep(clock=harness.clock, interrupt_after=3)
        harness.controller.sleep_fn = harness.sleep

        await harness.controller.run()

        assert harness.run_task.calls == ["typecheck", "typecheck"]
        reasons = [e.kwargs["reason"] for e in harness.sink.get_events("watch_task_dispatched")]
        assert reasons == ["initial run", "poll"]

    @pytest.mark.asyncio
    async def test_change_events_dispatch_runs(self) -> None:
        source = FakeChangeSource()
        settings = WatchSettings(interval=1.0, poll_interval=600.0, summary_interval=2.0)
        harness = Harness([TYPECHECK], settings=settings, change_source=source)

        def on_sleep(call: int) -> None:
            if call == 1:
                source.push(ChangeEvent("changed", "src/a.ts"))

        harness.sleep = FakeSleep(clock=harness.clock, interrupt_after=2, on_sleep=on_sleep)
        harness.controller.sleep_fn = harness.sleep

        await harness.controller.run()

        assert harness.run_task.calls == ["typecheck", "typecheck"]
        assert source.closed

    @pytest.mark.asyncio
    async def test_interrupt_cancels_in_flight_runs(self) -> None:
        run_task = FakeTaskRun()
        run_task.gate = asyncio.Event()
        harness = Harness([TYPECHECK, LINT], run_task=run_task)

        await harness.controller.run()

        assert sorted(run_task.cancelled) == ["lint", "typecheck"]
        assert all(s.status is WatchStatus.STOPPED for s in harness.controller.states)
        _, final = harness.written[-1]
        assert "Watch Mode Stopped" in final

    @pytest.mark.asyncio
    async def test_fatal_report_error_is_reraised(self) -> None:
        run_task = FakeTaskRun()
        run_task.error = ReportWriteError(
            REPORT_DIR / "reports" / "errors.lint-failures.md",
            OSError("disk full"),
        )
        event = asyncio.Event()
        harness = Harness(
            [LINT],
            run_task=run_task,
            interrupt_event=event,
            sleep=FakeSleep(),
        )

        with pytest.raises(ReportWriteError):
            await harness.controller.run()

        assert event.is_set()
        _, final = harness.written[-1]
        assert final.startswith("# 👁️ Watch Mode Stopped")
        assert harness.sink.has_event("watch_stopped")
