"""Environment configuration and loading for brain-monitor.

Centralizes config paths and dotenv loading. The CLI calls load_user_env()
at bootstrap so that the directory getters below see values from the
user-level .env file.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# User config directory (stores .env)
USER_CONFIG_DIR = Path.home() / ".config" / "brain-monitor"

DEFAULT_REPORT_DIR = "_errors"
DEFAULT_LOG_DIR = "_logs"


def load_user_env() -> None:
    """Load environment from ${USER_CONFIG_DIR}/.env (never overrides)."""
    load_dotenv(dotenv_path=USER_CONFIG_DIR / ".env")


def get_report_dir(repo_path: Path, configured: str | None = None) -> Path:
    """Resolve the report directory, respecting BRAIN_MONITOR_REPORT_DIR.

    Evaluated at call time. Relative values are resolved against repo_path.

    Args:
        repo_path: Repository root.
        configured: Value from brain-monitor.yaml, if any.

    Returns:
        Absolute report directory path.
    """
    raw = os.environ.get("BRAIN_MONITOR_REPORT_DIR") or configured or DEFAULT_REPORT_DIR
    path = Path(raw).expanduser()
    return path if path.is_absolute() else repo_path / path


def get_log_dir(repo_path: Path, configured: str | None = None) -> Path:
    """Resolve the debug log directory, respecting BRAIN_MONITOR_LOG_DIR."""
    raw = os.environ.get("BRAIN_MONITOR_LOG_DIR") or configured or DEFAULT_LOG_DIR
    path = Path(raw).expanduser()
    return path if path.is_absolute() else repo_path / path


def get_coverage_threshold_override() -> float | None:
    """Return COVERAGE_THRESHOLD as a float, or None when unset or invalid."""
    raw = os.environ.get("COVERAGE_THRESHOLD")
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def debug_log_disabled() -> bool:
    return os.environ.get("BRAIN_MONITOR_DISABLE_DEBUG_LOG") == "1"
