"""Pytest configuration for brain-monitor tests."""

import os

import pytest


def pytest_configure(config: pytest.Config) -> None:
    """Configure test environment before collection.

    - Disable the debug log file so runs never write into a real _logs dir
    - Drop user-level overrides that would change report/coverage defaults
    """
    os.environ["BRAIN_MONITOR_DISABLE_DEBUG_LOG"] = "1"
    for name in ("BRAIN_MONITOR_REPORT_DIR", "BRAIN_MONITOR_LOG_DIR", "COVERAGE_THRESHOLD"):
        os.environ.pop(name, None)


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Default unmarked tests to unit category."""
    for item in items:
        if any(marker in item.keywords for marker in ("unit", "integration", "e2e")):
            continue
        item.add_marker(pytest.mark.unit)
