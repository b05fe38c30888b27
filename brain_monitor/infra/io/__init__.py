"""I/O utilities for brain-monitor.

This package contains:
- base_sink / console_sink: ValidationEventSink implementations
- manifests: package.json discovery
- coverage_reader: istanbul coverage-summary.json reader
- change_source: watcher-command change notifications
- report_writer: atomic report writes, run counters and the run lock
- log_output/: console helpers and the debug log file
"""

from brain_monitor.infra.io.base_sink import BaseEventSink, NullEventSink
from brain_monitor.infra.io.change_source import CommandChangeSource
from brain_monitor.infra.io.console_sink import ConsoleEventSink
from brain_monitor.infra.io.coverage_reader import CoverageSummaryReader
from brain_monitor.infra.io.manifests import PackageJsonReader
from brain_monitor.infra.io.report_writer import (
    ReportWriteError,
    RunLock,
    RunLockError,
)

__all__ = [
    "BaseEventSink",
    "CommandChangeSource",
    "ConsoleEventSink",
    "CoverageSummaryReader",
    "NullEventSink",
    "PackageJsonReader",
    "ReportWriteError",
    "RunLock",
    "RunLockError",
]
