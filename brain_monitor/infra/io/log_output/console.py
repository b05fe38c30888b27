"""Console logging helpers for brain-monitor.

Timestamped, ANSI-coloured lines with per-task colour identification.
Only the console event sink calls into this module, which keeps terminal
output behind a single writer.
"""

from datetime import datetime

# Global verbose setting (can be modified at runtime)
_verbose_enabled: bool = False


def set_verbose(enabled: bool) -> None:
    """Enable or disable verbose output globally."""
    global _verbose_enabled
    _verbose_enabled = enabled


def truncate_text(text: str, max_length: int) -> str:
    """Truncate text to max_length, adding ellipsis if truncated.

    Respects global verbose setting. If verbose is enabled,
    returns the original text unchanged.
    """
    if _verbose_enabled:
        return text
    if len(text) > max_length:
        return text[:max_length] + "..."
    return text


class Colors:
    """ANSI color codes for terminal output (bright variants)."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    BLUE = "\033[94m"
    MAGENTA = "\033[95m"
    CYAN = "\033[96m"
    RED = "\033[91m"
    GRAY = "\033[90m"
    WHITE = "\033[97m"
    MUTED = "\033[90m"


# Palette for telling concurrently running tasks apart
TASK_COLORS = [
    "\033[96m",  # Bright Cyan
    "\033[93m",  # Bright Yellow
    "\033[95m",  # Bright Magenta
    "\033[92m",  # Bright Green
    "\033[94m",  # Bright Blue
    "\033[97m",  # Bright White
]

_task_color_map: dict[str, str] = {}
_task_color_index = 0


def get_task_color(task_name: str) -> str:
    """Get a consistent color for a task based on its name."""
    global _task_color_index
    if task_name not in _task_color_map:
        _task_color_map[task_name] = TASK_COLORS[_task_color_index % len(TASK_COLORS)]
        _task_color_index += 1
    return _task_color_map[task_name]


def log(
    icon: str,
    message: str,
    color: str = Colors.RESET,
    dim: bool = False,
    task_name: str | None = None,
) -> None:
    """Timestamped console line with optional task colour prefix."""
    style = Colors.MUTED if dim else ""
    timestamp = datetime.now().strftime("%H:%M:%S")

    if task_name:
        prefix = f"{get_task_color(task_name)}[{task_name}]{Colors.RESET} "
    else:
        prefix = ""

    print(
        f"{Colors.GRAY}{timestamp}{Colors.RESET} {prefix}{style}{color}{icon} {message}{Colors.RESET}"
    )


def log_verbose(icon: str, message: str, task_name: str | None = None) -> None:
    """Muted log line shown only in verbose mode."""
    if _verbose_enabled:
        log(icon, message, dim=True, task_name=task_name)


def progress_bar(completed: int, total: int, width: int = 30) -> str:
    """Render a text progress bar like ``[████░░░░] 2/5``."""
    if total <= 0:
        return f"[{'░' * width}] 0/0"
    filled = round(width * completed / total)
    return f"[{'█' * filled}{'░' * (width - filled)}] {completed}/{total}"


def format_duration(duration_ms: int) -> str:
    """Human-friendly duration: ``850ms``, ``12.3s``, ``2m 05s``."""
    if duration_ms < 1000:
        return f"{duration_ms}ms"
    seconds = duration_ms / 1000
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, rem = divmod(int(seconds), 60)
    return f"{minutes}m {rem:02d}s"
