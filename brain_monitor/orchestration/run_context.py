"""RunContext: per-invocation state threaded through one orchestrator run.

Everything a run accumulates lives here rather than on the orchestrator or
at module level, so two runs in the same process never share results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from brain_monitor.infra.git_utils import GitInfo

if TYPE_CHECKING:
    from datetime import datetime
    from pathlib import Path

    from brain_monitor.core.models import TaskOutcome, ValidationTask
    from brain_monitor.domain.config import MonitorConfig


@dataclass
class RunContext:
    """State owned by one run.

    Attributes:
        run_id: Identifier used for the debug log handler.
        repo_path: Repository root.
        config: Effective configuration.
        report_dir: Absolute report directory.
        log_dir: Absolute debug log directory.
        started_at: Wall-clock start of the run.
        tasks: Tasks of this run in declaration order.
        outcomes: Finished task outcomes keyed by task slug, completion order.
        interrupted: Set when a shutdown signal stopped the run.
        git: Branch/commit for report headers.
    """

    run_id: str
    repo_path: Path
    config: MonitorConfig
    report_dir: Path
    log_dir: Path
    started_at: datetime
    tasks: tuple[ValidationTask, ...] = ()
    outcomes: dict[str, TaskOutcome] = field(default_factory=dict)
    interrupted: bool = False
    git: GitInfo = field(default_factory=GitInfo)

    @property
    def completed(self) -> int:
        return len(self.outcomes)

    def record(self, outcome: TaskOutcome) -> int:
        """Store a finished outcome; returns the number completed so far."""
        slug = outcome.task.slug
        if slug in self.outcomes:
            raise ValueError(f"{outcome.task.name} already finished in this run")
        self.outcomes[slug] = outcome
        return self.completed

    def ordered_outcomes(self) -> list[TaskOutcome]:
        """Outcomes in task declaration order."""
        return [self.outcomes[t.slug] for t in self.tasks if t.slug in self.outcomes]
