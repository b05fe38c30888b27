"""Git utility functions for brain-monitor.

Provides best-effort repository information for report headers.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from brain_monitor.infra.tools.command_runner import run_command_async

logger = logging.getLogger(__name__)

# Default timeout for git commands (seconds)
DEFAULT_GIT_TIMEOUT = 5.0

UNKNOWN = "unknown"


@dataclass(frozen=True)
class GitInfo:
    """Branch and short commit for report headers."""

    branch: str = UNKNOWN
    commit: str = UNKNOWN


async def _git_output(args: list[str], cwd: Path, timeout: float) -> str:
    try:
        result = await run_command_async(
            ["git", *args], cwd=cwd, timeout_seconds=timeout
        )
    except OSError as e:
        logger.debug("git %s failed to start: %s", " ".join(args), e)
        return ""
    if result.ok:
        return result.stdout.strip()
    return ""


async def get_git_commit_async(cwd: Path, timeout: float = DEFAULT_GIT_TIMEOUT) -> str:
    """Get the current git commit hash (short) - async version."""
    return await _git_output(["rev-parse", "--short", "HEAD"], cwd, timeout)


async def get_git_branch_async(cwd: Path, timeout: float = DEFAULT_GIT_TIMEOUT) -> str:
    """Get the current git branch name - async version."""
    return await _git_output(["rev-parse", "--abbrev-ref", "HEAD"], cwd, timeout)


async def get_git_info_async(cwd: Path, timeout: float = DEFAULT_GIT_TIMEOUT) -> GitInfo:
    """Branch and commit, each "unknown" when git is unavailable."""
    branch, commit = await asyncio.gather(
        get_git_branch_async(cwd, timeout), get_git_commit_async(cwd, timeout)
    )
    return GitInfo(branch=branch or UNKNOWN, commit=commit or UNKNOWN)
