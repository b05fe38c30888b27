"""Factory function for ValidationOrchestrator initialization.

Usage:
    # Real infrastructure, config loaded from the repository
    orchestrator = create_orchestrator(OrchestratorConfig(repo_path=Path(".")))

    # With fakes for testing
    deps = OrchestratorDependencies(
        command_runner=fake_runner,
        manifest_reader=fake_reader,
        event_sink=NullEventSink(),
    )
    orchestrator = create_orchestrator(config, deps=deps)
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from brain_monitor.domain.config_loader import load_config
from brain_monitor.infra.git_utils import get_git_info_async
from brain_monitor.infra.io.base_sink import NullEventSink
from brain_monitor.infra.io.change_source import CommandChangeSource
from brain_monitor.infra.io.coverage_reader import CoverageSummaryReader
from brain_monitor.infra.io.manifests import PackageJsonReader
from brain_monitor.infra.tools.command_runner import CommandRunner
from brain_monitor.orchestration.orchestrator import ValidationOrchestrator
from brain_monitor.orchestration.types import (
    OrchestratorConfig,
    OrchestratorDependencies,
)

if TYPE_CHECKING:
    from brain_monitor.core.protocols import ChangeSource
    from brain_monitor.domain.config import MonitorConfig

__all__ = [
    "OrchestratorConfig",
    "OrchestratorDependencies",
    "create_orchestrator",
]


def _local_now() -> datetime:
    return datetime.now().astimezone()


def _change_source(config: OrchestratorConfig, monitor: MonitorConfig) -> ChangeSource | None:
    command = monitor.watch.change_command
    if not command:
        return None
    return CommandChangeSource(command, cwd=config.repo_path)


def create_orchestrator(
    config: OrchestratorConfig,
    *,
    deps: OrchestratorDependencies | None = None,
) -> ValidationOrchestrator:
    """Create a ValidationOrchestrator, filling unset dependencies.

    Args:
        config: Scalar configuration and CLI overrides.
        deps: Optional protocol implementations; None fields get defaults.

    Returns:
        Configured ValidationOrchestrator.

    Raises:
        ConfigError: If brain-monitor.yaml is invalid.
    """
    deps = deps or OrchestratorDependencies()
    monitor = config.monitor_config or load_config(config.repo_path)
    return ValidationOrchestrator(
        repo_path=config.repo_path,
        config=monitor,
        command_runner=deps.command_runner or CommandRunner(cwd=config.repo_path),
        manifest_reader=deps.manifest_reader or PackageJsonReader(),
        coverage_reader=deps.coverage_reader or CoverageSummaryReader(),
        event_sink=deps.event_sink or NullEventSink(),
        git_info=deps.git_info or get_git_info_async,
        now=deps.now or _local_now,
        change_source=deps.change_source or _change_source(config, monitor),
        target_override=config.target_override,
        max_retries_override=config.max_retries_override,
        max_parallel=config.max_parallel,
        install_signal_handlers=deps.install_signal_handlers,
    )
