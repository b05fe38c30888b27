"""Report rendering: task reports, run summary and watch summary.

Renderers are pure: they take the data plus a ReportHeader carrying the
generation time and return text or JSON-ready dicts. Writing is done by
infra.io.report_writer.
"""

from brain_monitor.domain.reporting.formatting import ReportHeader
from brain_monitor.domain.reporting.summary_report import render_summary, summary_data
from brain_monitor.domain.reporting.task_report import (
    render_task_report,
    task_report_data,
)
from brain_monitor.domain.reporting.watch_report import render_watch_summary

__all__ = [
    "ReportHeader",
    "render_summary",
    "render_task_report",
    "render_watch_summary",
    "summary_data",
    "task_report_data",
]
