"""Line-oriented output parser base.

Every tool grammar shares the same skeleton, modelled as an explicit state
machine fed one line at a time:

    IDLE --marker--> FAILURE_CAPTURED --next line--> LOOKING_AHEAD
    LOOKING_AHEAD --stop marker / context switch / window full--> IDLE

Before any pattern matching a line has its terminal control sequences
removed and its turbo ``pkg:task:`` prefix split off; the prefix sets the
current package context. Lines that match nothing are dropped.

Subclasses implement ``_parse_line`` (IDLE handling) and, when they capture
multi-line failures, ``_is_stop_line``. Everything else (line numbering,
lookahead bounds, classification precedence, summary counts) lives here so
that it can be tested without any process I/O.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, ClassVar

from brain_monitor.core.models import Failure, FailureClassification, Location
from brain_monitor.domain.parsing.summary import SummaryCounter

if TYPE_CHECKING:
    from collections.abc import Iterable

    from brain_monitor.core.models import TaskCategory

logger = logging.getLogger(__name__)

UNKNOWN_PACKAGE = "unknown"
UNKNOWN_FILE = "unknown"
NO_DETAILS_MESSAGE = "(no error output captured)"

# CSI sequences (colours, cursor moves), OSC sequences, and bare "[31m" remnants
_ANSI_RE = re.compile(
    r"\x1b\[[0-?]*[ -/]*[@-~]|\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)|\x1b[@-Z\\-_]|\[\d+(?:;\d+)*m"
)

# turbo prefixes every line with "<package>:<task>: "
_TURBO_PREFIX_RE = re.compile(
    r"^(?P<package>@?[\w.-]+(?:/[\w.-]+)?):(?P<task>[A-Za-z][\w:-]*?):(?:\s+(?P<rest>.*)|)$"
)

# Keyword families in precedence order: first family matched wins
KEYWORD_FAMILIES: tuple[tuple[FailureClassification, tuple[str, ...]], ...] = (
    (
        FailureClassification.ASSERTION,
        ("AssertionError", "expect", "Expected", "to equal", "to be", "to have"),
    ),
    (FailureClassification.TIMEOUT, ("timeout", "Timeout", "timed out")),
    (
        FailureClassification.SETUP,
        ("beforeAll", "beforeEach", "afterAll", "afterEach", "setup"),
    ),
    (
        FailureClassification.RUNTIME,
        ("is not iterable", "undefined", "null", "TypeError", "ReferenceError"),
    ),
)


def strip_ansi(text: str) -> str:
    """Remove terminal control/formatting sequences."""
    return _ANSI_RE.sub("", text)


def split_turbo_prefix(line: str) -> tuple[str | None, str]:
    """Split ``@scope/pkg:task: rest`` into (package, rest).

    Returns:
        (None, line) when the line carries no prefix.
    """
    match = _TURBO_PREFIX_RE.match(line)
    if match is None:
        return None, line
    return match.group("package"), match.group("rest") or ""


def match_families(text: str) -> set[FailureClassification]:
    """All keyword families present in text."""
    return {
        classification
        for classification, keywords in KEYWORD_FAMILIES
        if any(keyword in text for keyword in keywords)
    }


def pick_classification(
    families: Iterable[FailureClassification],
    default: FailureClassification = FailureClassification.UNKNOWN,
) -> FailureClassification:
    """Highest-precedence family, or default when none matched."""
    found = set(families)
    for classification, _ in KEYWORD_FAMILIES:
        if classification in found:
            return classification
    return default


class ParserState(Enum):
    IDLE = "idle"
    FAILURE_CAPTURED = "failure_captured"
    LOOKING_AHEAD = "looking_ahead"


@dataclass
class PendingFailure:
    """A failure marker awaiting its lookahead details."""

    package_id: str
    file_path: str
    title: str | None
    start_line: int
    end_line: int
    location: Location | None = None
    default_classification: FailureClassification = FailureClassification.UNKNOWN
    families: set[FailureClassification] = field(default_factory=set)
    detail_lines: list[str] = field(default_factory=list)
    capturing: bool = False
    lookahead_used: int = 0


@dataclass(frozen=True)
class ParseResult:
    """Structured output of one parse.

    Attributes:
        failures: Failures in source-line encounter order.
        summary_count: Issue count reported by the tool's own summary line,
            None when the output had none.
    """

    failures: tuple[Failure, ...] = ()
    summary_count: int | None = None

    @property
    def issue_count(self) -> int:
        """Summary count when present, else the structural count."""
        if self.summary_count is not None:
            return self.summary_count
        return len(self.failures)

    @property
    def count_mismatch(self) -> bool:
        return self.summary_count is not None and self.summary_count != len(
            self.failures
        )

    def by_classification(self) -> dict[FailureClassification, list[Failure]]:
        grouped: dict[FailureClassification, list[Failure]] = {}
        for failure in self.failures:
            grouped.setdefault(failure.classification, []).append(failure)
        return grouped

    def by_package(self) -> dict[str, list[Failure]]:
        grouped: dict[str, list[Failure]] = {}
        for failure in self.failures:
            grouped.setdefault(failure.package_id, []).append(failure)
        return grouped


class OutputParser:
    """Streaming parser base class; one instance per task execution."""

    category: ClassVar[TaskCategory]
    lookahead_limit: ClassVar[int] = 10
    message_lines: ClassVar[int] = 3

    def __init__(self) -> None:
        self._state = ParserState.IDLE
        self._pending: PendingFailure | None = None
        self._failures: list[Failure] = []
        self._line_number = 0
        self._package: str | None = None
        self._summary = SummaryCounter(self.category)
        self._finished = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def state(self) -> ParserState:
        return self._state

    @property
    def failures(self) -> tuple[Failure, ...]:
        return tuple(self._failures)

    @property
    def current_package(self) -> str:
        return self._package or UNKNOWN_PACKAGE

    @property
    def line_number(self) -> int:
        return self._line_number

    def feed(self, raw_line: str) -> list[Failure]:
        """Consume one output line.

        Returns:
            Failures finalized by this line (possibly empty).
        """
        if self._finished:
            raise RuntimeError("feed() called after finish()")
        self._line_number += 1
        emitted_before = len(self._failures)

        line = strip_ansi(raw_line).rstrip("\r\n")
        package, line = split_turbo_prefix(line)
        if package is not None:
            if self._pending is not None and package != self._pending.package_id:
                self._flush_pending()
            self._package = package

        self._summary.observe(line)

        if self._pending is not None:
            if self._is_stop_line(line):
                self._flush_pending()
            else:
                self._look_ahead(line)
                return self._failures[emitted_before:]

        self._parse_line(line)
        return self._failures[emitted_before:]

    def feed_many(self, lines: Iterable[str]) -> None:
        for line in lines:
            self.feed(line)

    def finish(self) -> ParseResult:
        """Flush any pending failure and return the result (idempotent)."""
        if not self._finished:
            self._flush_pending()
            self._finished = True
        result = ParseResult(
            failures=tuple(self._failures), summary_count=self._summary.count
        )
        if result.count_mismatch:
            logger.warning(
                "%s summary reports %d issues but %d were parsed",
                self.category.value,
                result.summary_count,
                len(result.failures),
            )
        return result

    # ------------------------------------------------------------------
    # Subclass hooks
    # ------------------------------------------------------------------

    def _parse_line(self, line: str) -> None:
        """Handle one line in IDLE state."""
        raise NotImplementedError

    def _is_stop_line(self, line: str) -> bool:
        """Whether line ends the current lookahead window."""
        return False

    def _observe_detail(self, pending: PendingFailure, line: str) -> None:
        """Record one lookahead line; default captures every non-empty line."""
        text = line.strip()
        if text:
            pending.families |= match_families(text)
            pending.detail_lines.append(text)

    # ------------------------------------------------------------------
    # Helpers for subclasses
    # ------------------------------------------------------------------

    def _emit(
        self,
        *,
        file_path: str | None,
        classification: FailureClassification,
        message: str,
        location: Location | None = None,
        title: str | None = None,
        severity: str = "error",
        package_id: str | None = None,
    ) -> Failure:
        failure = Failure(
            package_id=package_id or self.current_package,
            file_path=file_path or UNKNOWN_FILE,
            classification=classification,
            message=message.strip() or NO_DETAILS_MESSAGE,
            source_line_range=(self._line_number, self._line_number),
            location=location,
            title=title,
            severity=severity,
        )
        self._failures.append(failure)
        return failure

    def _capture(
        self,
        *,
        file_path: str | None,
        title: str | None,
        location: Location | None = None,
        default_classification: FailureClassification = FailureClassification.UNKNOWN,
    ) -> None:
        """Open a pending failure; IDLE -> FAILURE_CAPTURED."""
        self._flush_pending()
        self._pending = PendingFailure(
            package_id=self.current_package,
            file_path=file_path or UNKNOWN_FILE,
            title=title,
            start_line=self._line_number,
            end_line=self._line_number,
            location=location,
            default_classification=default_classification,
        )
        self._state = ParserState.FAILURE_CAPTURED

    def _has_failure_for_package(self, package_id: str) -> bool:
        return any(f.package_id == package_id for f in self._failures)

    # ------------------------------------------------------------------
    # State machine internals
    # ------------------------------------------------------------------

    def _look_ahead(self, line: str) -> None:
        pending = self._pending
        assert pending is not None
        self._state = ParserState.LOOKING_AHEAD
        if not line.strip():
            return
        pending.lookahead_used += 1
        pending.end_line = self._line_number
        self._observe_detail(pending, line)
        if pending.lookahead_used >= self.lookahead_limit:
            self._flush_pending()

    def _flush_pending(self) -> None:
        pending = self._pending
        if pending is None:
            return
        self._pending = None
        self._state = ParserState.IDLE
        message = " ".join(pending.detail_lines[: self.message_lines])
        self._failures.append(
            Failure(
                package_id=pending.package_id,
                file_path=pending.file_path,
                classification=pick_classification(
                    pending.families, pending.default_classification
                ),
                message=message or NO_DETAILS_MESSAGE,
                source_line_range=(pending.start_line, pending.end_line),
                location=pending.location,
                title=pending.title,
            )
        )


def clean_line(raw_line: str) -> str:
    """Control sequences and turbo prefix removed, trailing newline dropped."""
    _, line = split_turbo_prefix(strip_ansi(raw_line).rstrip("\r\n"))
    return line
