"""Tool summary lines and auto-fix markers.

Most tools end with a line such as "Found 3 errors in 2 files." or
"Tests  2 failed | 10 passed". Those counts are preferred over the number of
structured failures because they also cover findings the grammars do not
recognize. Turbo runs one tool per package, so per-package summaries are
summed; a repository-wide summary ("14 errors in 3 packages") overrides.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from brain_monitor.core.models import TaskCategory

if TYPE_CHECKING:
    from collections.abc import Iterable

# (pattern, groups to add, overrides) per category
_Pattern = tuple[re.Pattern[str], tuple[str, ...], bool]

_SUMMARY_PATTERNS: dict[TaskCategory, tuple[_Pattern, ...]] = {
    TaskCategory.TYPECHECK: (
        (re.compile(r"\b(?P<n>\d+) errors? in \d+ packages?\b"), ("n",), True),
        (re.compile(r"\bFound (?P<n>\d+) errors?\b"), ("n",), False),
    ),
    TaskCategory.LINT: (
        (re.compile(r"^\s*Errors:\s*(?P<n>\d+)\b"), ("n",), True),
        (
            re.compile(r"✖ (?P<n>\d+) problems? \(\d+ errors?, \d+ warnings?\)"),
            ("n",),
            False,
        ),
        (re.compile(r"^Found (?P<n>\d+) errors?\b"), ("n",), False),
    ),
    TaskCategory.FORMAT: (
        (re.compile(r"^\s*Unformatted files:\s*(?P<n>\d+)\b"), ("n",), True),
        (re.compile(r"Code style issues found in (?P<n>\d+) files?"), ("n",), False),
        (
            re.compile(r"Code style issues found in the above file"),
            (),
            False,
        ),
        (re.compile(r"^(?P<n>\d+) files? would be reformatted\b"), ("n",), False),
    ),
    TaskCategory.TEST: (
        (re.compile(r"^\s*Test failures:\s*(?P<n>\d+)\b"), ("n",), True),
        # vitest: "      Tests  2 failed | 10 passed (12)"
        (re.compile(r"^\s*Tests\s+(?P<n>\d+) failed\b"), ("n",), False),
        # jest: "Tests:       1 failed, 5 passed, 6 total"
        (re.compile(r"^\s*Tests:\s+(?P<n>\d+) failed\b"), ("n",), False),
        # pytest: "==== 1 failed, 2 passed, 1 error in 0.12s ===="
        (
            re.compile(
                r"^=+ (?:.*?\b(?P<n>\d+) failed)?(?:.*?\b(?P<e>\d+) errors?)?.* in [\d.]+s"
            ),
            ("n", "e"),
            False,
        ),
    ),
}

# Lines that show an auto-fix pass actually changed files
_FIX_APPLIED_PATTERNS: dict[TaskCategory, tuple[re.Pattern[str], ...]] = {
    TaskCategory.LINT: (
        re.compile(r"\bFixed \d+ errors?\b"),
        re.compile(r"\b[1-9]\d* fixed\b"),
    ),
    TaskCategory.FORMAT: (
        re.compile(r"^\S+\.\w+ \d+m?s$"),
        re.compile(r"\b\d+ files? (?:re)?formatted\b"),
        re.compile(r"^reformatted "),
    ),
}

_APPLIED_MARKER_RE = re.compile(r"\bAuto-(?:fix|format): Applied\b")
_UNCHANGED_RE = re.compile(r"\(unchanged\)|\b0 files? (?:re)?formatted\b")


class SummaryCounter:
    """Accumulates summary counts from a stream of cleaned lines."""

    def __init__(self, category: TaskCategory) -> None:
        self._patterns = _SUMMARY_PATTERNS.get(category, ())
        self._sum: int | None = None
        self._override: int | None = None

    def observe(self, line: str) -> None:
        for pattern, groups, overrides in self._patterns:
            match = pattern.search(line)
            if match is None:
                continue
            values = [match.group(g) for g in groups]
            if groups and all(v is None for v in values):
                continue
            # Groupless patterns ("in the above file") count one
            total = sum(int(v) for v in values if v is not None) if groups else 1
            if overrides:
                self._override = total
            else:
                self._sum = (self._sum or 0) + total
            return

    @property
    def count(self) -> int | None:
        if self._override is not None:
            return self._override
        return self._sum


def summary_count(category: TaskCategory, lines: Iterable[str]) -> int | None:
    """Summary count for already-cleaned lines, None when no summary was seen."""
    counter = SummaryCounter(category)
    for line in lines:
        counter.observe(line)
    return counter.count


def fix_applied(category: TaskCategory, lines: Iterable[str]) -> bool:
    """Whether cleaned auto-fix output shows at least one changed file."""
    for line in lines:
        stripped = line.strip()
        if not stripped or _UNCHANGED_RE.search(stripped):
            continue
        if _APPLIED_MARKER_RE.search(stripped):
            return True
        if any(p.search(stripped) for p in _FIX_APPLIED_PATTERNS.get(category, ())):
            return True
    return False
