"""brain-monitor: quality-gate validation orchestration for multi-package repos."""

__version__ = "0.1.0"
