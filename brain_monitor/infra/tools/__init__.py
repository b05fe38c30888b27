"""Tools package: command execution and environment utilities."""

from brain_monitor.infra.tools.command_runner import CommandResult, CommandRunner
from brain_monitor.infra.tools.env import get_log_dir, get_report_dir, load_user_env

__all__ = [
    "CommandResult",
    "CommandRunner",
    "get_log_dir",
    "get_report_dir",
    "load_user_env",
]
