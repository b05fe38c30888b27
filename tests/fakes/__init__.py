"""In-memory fake implementations for testing.

Fakes are preferred over mocks because they:

1. Implement real protocol contracts, catching interface mismatches at test time
2. Provide deterministic, predictable behavior without call-order dependencies
3. Enable behavior-based testing (assert outputs/state) over interaction testing

Available fakes:
- FakeCommandRunner: scripted command execution with fail-closed semantics
- FakeEventSink: event capture with completeness verification
- FakeManifestReader / FakeCoverageReader: fixed discovery and coverage data
- FakeClock / FakeWallClock / FakeSleep: deterministic time
- FakeChangeSource: watch mode change events pushed by the test

Usage:
    from tests.fakes import FakeCommandRunner, FakeResponse

    runner = FakeCommandRunner()
    runner.add("pnpm turbo run typecheck", FakeResponse(returncode=1, stdout=...))
"""

from tests.fakes.change_source import FakeChangeSource
from tests.fakes.clock import FakeClock, FakeSleep, FakeWallClock
from tests.fakes.command_runner import FakeCall, FakeCommandRunner, FakeResponse
from tests.fakes.event_sink import FakeEventSink, RecordedEvent
from tests.fakes.readers import FakeCoverageReader, FakeManifestReader

__all__ = [
    "FakeCall",
    "FakeChangeSource",
    "FakeClock",
    "FakeCommandRunner",
    "FakeCoverageReader",
    "FakeEventSink",
    "FakeManifestReader",
    "FakeResponse",
    "FakeSleep",
    "FakeWallClock",
    "RecordedEvent",
]
