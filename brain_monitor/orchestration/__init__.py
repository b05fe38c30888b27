"""Run orchestration: task selection, runners, aggregation and reports."""
