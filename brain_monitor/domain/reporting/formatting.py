"""Shared formatting helpers for markdown reports."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING

from tabulate import tabulate

from brain_monitor.core.models import FailureClassification

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime
    from pathlib import Path

    from brain_monitor.core.models import Failure

CLASSIFICATION_EMOJI = {
    FailureClassification.ASSERTION: "🎯",
    FailureClassification.TIMEOUT: "⏱️",
    FailureClassification.SETUP: "🔧",
    FailureClassification.BUILD: "🏗️",
    FailureClassification.RUNTIME: "💥",
    FailureClassification.UNKNOWN: "❓",
}

CLASSIFICATION_HINT = {
    FailureClassification.ASSERTION: "Expected values not matching actual",
    FailureClassification.TIMEOUT: "Tests taking too long to complete",
    FailureClassification.SETUP: "Test setup/initialization failing",
    FailureClassification.BUILD: "Compilation errors preventing tests from running",
    FailureClassification.RUNTIME: "Runtime errors (null/undefined/type errors)",
    FailureClassification.UNKNOWN: "Various test issues",
}


@dataclass(frozen=True)
class ReportHeader:
    """Per-report metadata supplied by the caller.

    The generation time is passed in rather than read from the clock so that
    rendering the same inputs twice produces identical bytes.
    """

    generated_at: datetime
    run_number: int | None = None
    branch: str = "unknown"
    commit: str = "unknown"


def format_timestamp(moment: datetime) -> str:
    return moment.strftime("%A, %B %d, %Y at %I:%M:%S %p")


def format_seconds(duration_ms: int) -> str:
    return f"{duration_ms / 1000:.1f}s"


def format_percent(value: float | None) -> str:
    return "n/a" if value is None else f"{value:.2f}%"


def format_delta(value: float | None) -> str:
    if value is None:
        return "n/a"
    return f"{value:+.2f}"


def markdown_table(headers: Sequence[str], rows: Sequence[Sequence[object]]) -> str:
    return tabulate(rows, headers=list(headers), tablefmt="github", disable_numparse=True)


def relative_link(target: Path, base_dir: Path) -> str:
    """Link text for target as seen from a file inside base_dir."""
    try:
        return target.relative_to(base_dir).as_posix()
    except ValueError:
        return os.path.relpath(target, base_dir).replace(os.sep, "/")


def format_location(failure: Failure) -> str:
    if failure.location is None:
        return failure.file_path
    return f"{failure.file_path}:{failure.location}"


def classification_label(classification: FailureClassification) -> str:
    return classification.value.capitalize()
