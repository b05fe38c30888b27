"""Grammar for test runner output (vitest, jest, pytest).

Failure markers open a lookahead window of at most ``lookahead_limit``
non-blank lines:

- vitest/jest list markers: ``× Suite > test name 12ms`` / ``✕ test name (5 ms)``
- vitest detail header:     ``FAIL  src/a.test.ts > Suite > test name``
- jest detail header:       ``● Suite › test name``

The window closes early at the next marker (pass, fail or skip), a
``describe(``/``it(``/``test(`` line, the run summary, or a turbo prefix
naming another package. Inside the window, ``→`` lines, ``Error:`` lines and
lines with a classification keyword start capturing; the message is the
first three captured lines. A failure listed twice (vitest lists each one
before printing its details) is recorded once, with the details.

Single-line records (no lookahead):
- TypeScript compile errors in test output become ``build`` failures.
- pytest ``FAILED path::test - msg`` / ``ERROR path::test - msg`` lines.
- An unresolvable shared test config becomes one ``setup`` failure per package.
- ``ELIFECYCLE ... failed`` for a package with no other failure becomes a
  ``build`` failure, so a package that died before reporting still shows up.

File context comes from ``❯ file.test.ts`` and ``FAIL file`` lines, suite
context from ``describe(``/``it(``/``test(`` lines.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from brain_monitor.core.models import FailureClassification, Location, TaskCategory
from brain_monitor.domain.parsing.base import (
    NO_DETAILS_MESSAGE,
    UNKNOWN_FILE,
    OutputParser,
    match_families,
    pick_classification,
)

if TYPE_CHECKING:
    from brain_monitor.core.models import Failure
    from brain_monitor.domain.parsing.base import PendingFailure

_TEST_FILE = r"\S+\.(?:test|spec)\.[cm]?[jt]sx?"

_TSC_ERROR_RE = re.compile(
    r"^(?P<file>.+?\.[cm]?tsx?)\((?P<line>\d+),(?P<col>\d+)\):\s*error\s+"
    r"(?P<code>TS\d+):\s*(?P<msg>.+)$"
)
_FILE_MARKER_RE = re.compile(rf"^\s*❯\s*(?P<file>{_TEST_FILE})")
_FAIL_HEADER_RE = re.compile(
    r"^\s*FAIL\s+(?:\|[^|]+\|\s+)?(?P<file>\S+)(?:\s+>\s+(?P<rest>.+?)|\s+\(.*\))?\s*$"
)
# vitest prints "RUN  v1.6.0 /repo" as its banner
_RUNNING_RE = re.compile(r"^\s*RUNS?\s+(?!v\d)(?P<name>.+)$")
_SUITE_RE = re.compile(r"""^\s*(?:describe|it|test)\s*\(\s*['"`](?P<name>.+?)['"`]""")
_LIST_FAIL_RE = re.compile(
    r"^\s*(?:✕|×)\s+(?P<name>.+?)(?:\s+\[.*\])?(?:\s+\(?\d+(?:\.\d+)?\s*m?s\)?)?$"
)
_JEST_DETAIL_RE = re.compile(r"^\s*●\s+(?P<name>.+)$")
_PYTEST_RE = re.compile(
    r"^(?P<kind>FAILED|ERROR)\s+(?P<file>[^\s:]+)(?:::(?P<name>\S+))?(?:\s+-\s+(?P<msg>.*))?$"
)
_CONFIG_RESOLVE_RE = re.compile(
    r"Could not resolve\s+[\"']?(?P<target>[^\"'\s]*(?:vitest|jest|testing)[^\"'\s]*)"
)
_ELIFECYCLE_RE = re.compile(r"ELIFECYCLE\s+(?:Command|Test) failed")

_STOP_RE = re.compile(
    r"^\s*(?:✓|✔|✕|×|↓|●)\s|^\s*(?:describe|it|test)\s*\(|^\s*FAIL\s|^(?:FAILED|ERROR)\s"
    r"|^\s*(?:Test Files|Tests:?)\s+\d"
)
_ARROW_RE = re.compile(r"^\s*→\s*")
_ERROR_LINE_RE = re.compile(r"\b\w*Error:|error TS\d+")

_SUITE_FAILED_TO_RUN = "Test suite failed to run"


def _split_title(name: str) -> tuple[str | None, str]:
    """Split "Suite > nested > test" (jest uses "›") into (suite, test)."""
    for separator in (" > ", " › "):
        if separator in name:
            suite, test = name.rsplit(separator, 1)
            return suite.strip(), test.strip()
    return None, name.strip()


class TestOutputParser(OutputParser):
    """Streaming parser for test output."""

    __test__ = False  # not a pytest class

    category = TaskCategory.TEST

    def __init__(self) -> None:
        super().__init__()
        self._current_file: str | None = None
        self._current_suite: str | None = None
        self._current_test: str | None = None
        self._seen: set[tuple[str, str, str]] = set()

    @property
    def current_file(self) -> str | None:
        return self._current_file

    @property
    def current_suite(self) -> str | None:
        return self._current_suite

    @property
    def current_test(self) -> str | None:
        """Last test the runner announced as running."""
        return self._current_test

    def _is_stop_line(self, line: str) -> bool:
        return bool(_STOP_RE.match(line) or _ELIFECYCLE_RE.search(line))

    def _parse_line(self, line: str) -> None:
        match = _TSC_ERROR_RE.match(line)
        if match is not None:
            self._emit(
                file_path=match.group("file"),
                classification=FailureClassification.BUILD,
                message=match.group("msg"),
                location=Location(int(match.group("line")), int(match.group("col"))),
                title="TypeScript Compilation",
            )
            return

        match = _CONFIG_RESOLVE_RE.search(line)
        if match is not None:
            self._record_config_failure(match.group("target"))
            return

        if _ELIFECYCLE_RE.search(line):
            self._record_lifecycle_failure()
            return

        match = _PYTEST_RE.match(line)
        if match is not None:
            self._record_pytest(match)
            return

        match = _FAIL_HEADER_RE.match(line)
        if match is not None:
            self._current_file = match.group("file")
            rest = match.group("rest")
            if rest:
                self._open(rest)
            return

        match = _LIST_FAIL_RE.match(line)
        if match is not None:
            self._open(match.group("name"))
            return

        match = _JEST_DETAIL_RE.match(line)
        if match is not None:
            name = match.group("name").strip()
            if name == _SUITE_FAILED_TO_RUN:
                self._open(name, default=FailureClassification.SETUP, dedupe=False)
            else:
                self._open(name)
            return

        match = _FILE_MARKER_RE.match(line)
        if match is not None:
            self._current_file = match.group("file")
            return

        match = _SUITE_RE.match(line)
        if match is not None:
            self._current_suite = match.group("name")
            return

        match = _RUNNING_RE.match(line)
        if match is not None:
            self._current_test = match.group("name").strip()

    def _observe_detail(self, pending: PendingFailure, line: str) -> None:
        text = line.strip()
        if not text:
            return
        families = match_families(text)
        pending.families |= families
        is_arrow = bool(_ARROW_RE.match(text))
        if is_arrow or families or _ERROR_LINE_RE.search(text):
            pending.capturing = True
        # stack frames point back at the file; they are not part of the message
        if pending.capturing and "❯" not in text:
            pending.detail_lines.append(_ARROW_RE.sub("", text) if is_arrow else text)

    def _open(
        self,
        name: str,
        default: FailureClassification = FailureClassification.UNKNOWN,
        *,
        dedupe: bool = True,
    ) -> None:
        suite, test = _split_title(name)
        file_path = self._current_file
        if file_path is None and (".test." in test or ".spec." in test):
            file_path = test
        key = (self.current_package, file_path or "", name.strip())
        if dedupe:
            if key in self._seen:
                # vitest repeats every listed failure in its detail section; the
                # repeat replaces the list entry only when that captured nothing
                placeholder = self._undetailed(file_path, test)
                if placeholder is None:
                    return
                self._failures.remove(placeholder)
            self._seen.add(key)
        if suite is not None:
            self._current_suite = suite
        self._capture(
            file_path=file_path,
            title=test,
            default_classification=default,
        )

    def _record_pytest(self, match: re.Match[str]) -> None:
        message = match.group("msg") or ""
        default = (
            FailureClassification.SETUP
            if match.group("kind") == "ERROR"
            else FailureClassification.UNKNOWN
        )
        self._emit(
            file_path=match.group("file"),
            classification=pick_classification(match_families(message), default),
            message=message,
            title=match.group("name") or match.group("file"),
        )

    def _record_config_failure(self, target: str) -> None:
        package = self.current_package
        if self._has_classified(package, FailureClassification.SETUP):
            return
        self._emit(
            file_path="vitest.config.ts",
            classification=FailureClassification.SETUP,
            message=f"Could not resolve {target}",
            title="Test configuration",
        )

    def _record_lifecycle_failure(self) -> None:
        package = self.current_package
        # a package that already reported failures exited non-zero because of them
        if self._has_failure_for_package(package):
            return
        self._emit(
            file_path="package.json",
            classification=FailureClassification.BUILD,
            message="Test command failed before reporting results",
            title="Build",
        )

    def _undetailed(self, file_path: str | None, title: str) -> Failure | None:
        for failure in self._failures:
            if (
                failure.package_id == self.current_package
                and failure.file_path == (file_path or UNKNOWN_FILE)
                and failure.title == title
                and failure.message == NO_DETAILS_MESSAGE
            ):
                return failure
        return None

    def _has_classified(
        self, package_id: str, classification: FailureClassification
    ) -> bool:
        return any(
            f.package_id == package_id and f.classification is classification
            for f in self._failures
        )
