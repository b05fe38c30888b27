"""Output parsers: raw tool output to structured Failure records."""

from __future__ import annotations

from brain_monitor.core.models import TaskCategory
from brain_monitor.domain.parsing.base import (
    OutputParser,
    ParseResult,
    ParserState,
    clean_line,
    split_turbo_prefix,
    strip_ansi,
)
from brain_monitor.domain.parsing.static_gates import (
    FormatParser,
    LintParser,
    TypecheckParser,
)
from brain_monitor.domain.parsing.suite_output import TestOutputParser
from brain_monitor.domain.parsing.summary import fix_applied, summary_count

_PARSERS: dict[TaskCategory, type[OutputParser]] = {
    TaskCategory.TYPECHECK: TypecheckParser,
    TaskCategory.LINT: LintParser,
    TaskCategory.FORMAT: FormatParser,
    TaskCategory.TEST: TestOutputParser,
}


def parser_for(category: TaskCategory) -> OutputParser:
    """Fresh parser instance for one task execution."""
    return _PARSERS[category]()


def parse_output(category: TaskCategory, text: str) -> ParseResult:
    """Parse a complete captured output in one call."""
    parser = parser_for(category)
    parser.feed_many(text.splitlines())
    return parser.finish()


__all__ = [
    "FormatParser",
    "LintParser",
    "OutputParser",
    "ParseResult",
    "ParserState",
    "TestOutputParser",
    "TypecheckParser",
    "clean_line",
    "fix_applied",
    "parse_output",
    "parser_for",
    "split_turbo_prefix",
    "strip_ansi",
    "summary_count",
]
