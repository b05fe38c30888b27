"""Grammars for static gates: type checking, linting and formatting.

All static findings are single-line records classified ``build``; none of
these grammars opens a lookahead window.

Type checking:
- tsc:        ``src/a.ts(12,5): error TS2322: Type 'x' is not ...``
- tsc pretty: ``src/a.ts:12:5 - error TS2322: Type 'x' is not ...``
- mypy:       ``app/x.py:12: error: Incompatible types  [assignment]``

Linting:
- ruff:           ``app/x.py:1:5: F401 [*] `os` imported but unused``
- eslint (unix):  ``src/a.ts:3:7  error  Unexpected any  @typescript-eslint/no-explicit-any``
- eslint stylish: a bare file path line followed by indented
  ``  3:7  error  Unexpected any  no-explicit-any`` rows

Formatting:
- prettier --check: ``[warn] src/a.ts``
- black / ruff format --check: ``would reformat app/x.py`` / ``Would reformat: app/x.py``
"""

from __future__ import annotations

import re

from brain_monitor.core.models import FailureClassification, Location, TaskCategory
from brain_monitor.domain.parsing.base import OutputParser

_TSC_RE = re.compile(
    r"^(?P<file>.+?\.[cm]?[jt]sx?)\((?P<line>\d+),(?P<col>\d+)\):\s*"
    r"(?P<severity>error|warning)\s+(?P<code>TS\d+):\s*(?P<msg>.+)$"
)
_TSC_PRETTY_RE = re.compile(
    r"^(?P<file>.+?\.[cm]?[jt]sx?):(?P<line>\d+):(?P<col>\d+)\s+-\s+"
    r"(?P<severity>error|warning)\s+(?P<code>TS\d+):\s*(?P<msg>.+)$"
)
_MYPY_RE = re.compile(
    r"^(?P<file>[^\s:]+\.pyi?):(?P<line>\d+):(?:(?P<col>\d+):)?\s*"
    r"(?P<severity>error|warning|note):\s*(?P<msg>.+?)(?:\s+\[(?P<code>[\w-]+)\])?$"
)

_RUFF_RE = re.compile(
    r"^(?P<file>[^\s:]+):(?P<line>\d+):(?P<col>\d+):\s+(?P<code>[A-Z]+\d+)\s+"
    r"(?:\[\*\]\s+)?(?P<msg>.+)$"
)
_ESLINT_LINE_RE = re.compile(
    r"^(?P<file>[^\s:]+):(?P<line>\d+):(?P<col>\d+)\s+(?P<severity>error|warning)\s+"
    r"(?P<msg>.+?)\s+(?P<code>@?[\w/-]+)$"
)
_STYLISH_ROW_RE = re.compile(
    r"^\s+(?P<line>\d+):(?P<col>\d+)\s+(?P<severity>error|warning)\s+"
    r"(?P<msg>.+?)\s{2,}(?P<code>@?[\w/-]+)$"
)
_STYLISH_FILE_RE = re.compile(
    r"^(?P<file>(?:[A-Za-z]:)?[\w@./\\-]+\.(?:[cm]?[jt]sx?|vue|svelte|astro|json|md))$"
)

_PRETTIER_RE = re.compile(r"^\[warn\]\s+(?P<file>\S.*)$")
_REFORMAT_RE = re.compile(r"^[Ww]ould reformat:?\s+(?P<file>\S.*)$")


def _location(match: re.Match[str]) -> Location:
    col = match.group("col")
    return Location(line=int(match.group("line")), column=int(col) if col else None)


class TypecheckParser(OutputParser):
    category = TaskCategory.TYPECHECK

    def _parse_line(self, line: str) -> None:
        match = (
            _TSC_RE.match(line) or _TSC_PRETTY_RE.match(line) or _MYPY_RE.match(line)
        )
        if match is None:
            return
        severity = match.group("severity")
        if severity == "note":
            return
        code = match.group("code")
        self._emit(
            file_path=match.group("file"),
            classification=FailureClassification.BUILD,
            message=match.group("msg"),
            location=_location(match),
            title=code,
            severity=severity,
        )


class LintParser(OutputParser):
    category = TaskCategory.LINT

    def __init__(self) -> None:
        super().__init__()
        self._stylish_file: str | None = None

    def _parse_line(self, line: str) -> None:
        match = _RUFF_RE.match(line)
        if match is not None:
            self._emit_lint(match, match.group("file"), "error")
            return

        match = _ESLINT_LINE_RE.match(line)
        if match is not None:
            self._emit_lint(match, match.group("file"), match.group("severity"))
            return

        match = _STYLISH_ROW_RE.match(line)
        if match is not None:
            self._emit_lint(match, self._stylish_file, match.group("severity"))
            return

        match = _STYLISH_FILE_RE.match(line.strip())
        if match is not None and not line.startswith((" ", "\t")):
            self._stylish_file = match.group("file")
        elif not line.strip():
            # stylish separates files with a blank line
            self._stylish_file = None

    def _emit_lint(
        self, match: re.Match[str], file_path: str | None, severity: str
    ) -> None:
        self._emit(
            file_path=file_path,
            classification=FailureClassification.BUILD,
            message=match.group("msg"),
            location=_location(match),
            title=match.group("code"),
            severity=severity,
        )


class FormatParser(OutputParser):
    category = TaskCategory.FORMAT

    def _parse_line(self, line: str) -> None:
        match = _PRETTIER_RE.match(line) or _REFORMAT_RE.match(line)
        if match is None:
            return
        file_path = match.group("file").strip()
        if file_path.startswith("Code style issues"):
            return
        self._emit(
            file_path=file_path,
            classification=FailureClassification.BUILD,
            message="File is not formatted",
            title=_extension(file_path),
        )


def _extension(file_path: str) -> str:
    name = file_path.rsplit("/", 1)[-1]
    if "." not in name:
        return "other"
    return name.rsplit(".", 1)[-1].lower()
