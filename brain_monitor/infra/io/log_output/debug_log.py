"""Per-run debug log file for the brain_monitor logger namespace."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from brain_monitor.infra.tools.env import debug_log_disabled

if TYPE_CHECKING:
    from pathlib import Path

DEBUG_LOG_NAME = "brain-monitor.debug.log"
_HANDLER_PREFIX = "brain_monitor_debug_"
_NAMESPACE = "brain_monitor"


def configure_debug_logging(log_dir: Path, run_id: str) -> Path | None:
    """Configure Python logging to write debug logs to a file.

    All loggers in the 'brain_monitor' namespace write DEBUG+ messages to
    ``<log_dir>/brain-monitor.debug.log``. The file is rewritten per run.

    This function is best-effort: if the log directory cannot be created or
    the log file cannot be opened, it returns None and the run continues
    without debug logging.

    Set BRAIN_MONITOR_DISABLE_DEBUG_LOG=1 to disable debug logging entirely.

    Args:
        log_dir: Directory for the debug log.
        run_id: Run ID used to tag the handler.

    Returns:
        Path to the debug log file, or None if logging could not be configured
        or is disabled via environment variable.
    """
    if debug_log_disabled():
        return None

    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        log_path = log_dir / DEBUG_LOG_NAME

        handler = logging.FileHandler(log_path, mode="w")
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s %(levelname)s %(name)s: %(message)s",
                datefmt="%H:%M:%S",
            )
        )
        handler.set_name(f"{_HANDLER_PREFIX}{run_id}")

        pkg_logger = logging.getLogger(_NAMESPACE)
        pkg_logger.setLevel(logging.DEBUG)

        # Remove any previous debug handlers to avoid duplicates/leaks
        for existing in pkg_logger.handlers[:]:
            if (getattr(existing, "name", "") or "").startswith(_HANDLER_PREFIX):
                existing.close()
                pkg_logger.removeHandler(existing)

        pkg_logger.addHandler(handler)
        pkg_logger.debug(
            "Debug log opened for run %s at %s",
            run_id,
            datetime.now(UTC).isoformat(timespec="seconds"),
        )
        return log_path
    except OSError:
        # Best-effort: read-only filesystems, permission denied, disk full
        return None


def cleanup_debug_logging(run_id: str) -> bool:
    """Remove and close the FileHandler associated with run_id.

    Returns:
        True if a handler was found and cleaned up, False otherwise.
    """
    pkg_logger = logging.getLogger(_NAMESPACE)
    handler_name = f"{_HANDLER_PREFIX}{run_id}"

    for handler in pkg_logger.handlers[:]:
        if getattr(handler, "name", "") == handler_name:
            handler.close()
            pkg_logger.removeHandler(handler)
            return True

    return False
