"""
brain-monitor CLI: validation orchestration for pnpm/turbo monorepos.

Usage:
    brain-monitor validate
    brain-monitor typecheck | lint | format
    brain-monitor test TYPE [--target N] [--max-retries N]
    brain-monitor detect
    brain-monitor watch [--all] [--interval N]

Exit codes: 0 success, 1 validation failed, 2 invalid config or arguments,
3 report/lock error, 130 interrupted.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Never

import typer
from tabulate import tabulate

from brain_monitor.core.models import TaskCategory
from brain_monitor.domain.config import ConfigError
from brain_monitor.domain.config_loader import load_config
from brain_monitor.domain.registry import (
    discover_test_types,
    get_test_type,
    package_test_types,
)
from brain_monitor.infra.io.console_sink import ConsoleEventSink
from brain_monitor.infra.io.log_output.console import Colors, log, set_verbose
from brain_monitor.infra.io.manifests import PackageJsonReader
from brain_monitor.infra.io.report_writer import ReportWriteError, RunLockError
from brain_monitor.infra.tools.env import load_user_env
from brain_monitor.orchestration.factory import (
    OrchestratorConfig,
    OrchestratorDependencies,
    create_orchestrator,
)
from brain_monitor.orchestration.orchestrator import ValidationOrchestrator
from brain_monitor.orchestration.types import (
    EXIT_CONFIG_ERROR,
    EXIT_REPORT_ERROR,
    TaskSelection,
)

# Bootstrap state: tracks whether bootstrap() has been called
_bootstrapped = False


def bootstrap() -> None:
    """Load ~/.config/brain-monitor/.env once, before any command runs."""
    global _bootstrapped

    if _bootstrapped:
        return
    load_user_env()
    _bootstrapped = True


@dataclass
class CliState:
    """Global options shared by every command."""

    repo_path: Path = Path(".")
    verbose: bool = False


app = typer.Typer(
    name="brain-monitor",
    help="Run type checking, lint, format and test validations with reports",
    add_completion=False,
)


@app.callback()
def main(
    ctx: typer.Context,
    repo: Annotated[
        Path,
        typer.Option(
            "--repo",
            help="Repository root (default: current directory)",
            file_okay=False,
        ),
    ] = Path("."),
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Show live test names and per-attempt adjustment details",
        ),
    ] = False,
) -> None:
    bootstrap()
    set_verbose(verbose)
    ctx.obj = CliState(repo_path=repo.resolve(), verbose=verbose)


def _state(ctx: typer.Context) -> CliState:
    state = ctx.obj
    if not isinstance(state, CliState):
        state = CliState(repo_path=Path(".").resolve())
    return state


def _fail(message: str, code: int) -> Never:
    log("✗", message, Colors.RED)
    raise typer.Exit(code)


def _orchestrator(
    state: CliState,
    *,
    target: float | None = None,
    max_retries: int | None = None,
) -> ValidationOrchestrator:
    try:
        return create_orchestrator(
            OrchestratorConfig(
                repo_path=state.repo_path,
                target_override=target,
                max_retries_override=max_retries,
            ),
            deps=OrchestratorDependencies(event_sink=ConsoleEventSink()),
        )
    except ConfigError as e:
        _fail(f"Invalid configuration: {e}", EXIT_CONFIG_ERROR)


def _guarded(action: Callable[[], int]) -> Never:
    """Run action and exit with its code, mapping fatal errors to exit codes."""
    try:
        code = action()
    except ConfigError as e:
        _fail(f"Invalid configuration: {e}", EXIT_CONFIG_ERROR)
    except (RunLockError, ReportWriteError) as e:
        _fail(str(e), EXIT_REPORT_ERROR)
    raise typer.Exit(code)


def _run_selection(
    state: CliState,
    selection: TaskSelection,
    *,
    target: float | None = None,
    max_retries: int | None = None,
) -> Never:
    orchestrator = _orchestrator(state, target=target, max_retries=max_retries)
    _guarded(lambda: orchestrator.run_sync(selection).exit_code)


@app.command()
def validate(ctx: typer.Context) -> Never:
    """Run every static gate and every discovered test category."""
    _run_selection(_state(ctx), TaskSelection.all())


@app.command()
def typecheck(ctx: typer.Context) -> Never:
    """Run type checking and write its report."""
    _run_selection(_state(ctx), TaskSelection.gate(TaskCategory.TYPECHECK))


@app.command()
def lint(ctx: typer.Context) -> Never:
    """Run lint (auto-fix first) and write its report."""
    _run_selection(_state(ctx), TaskSelection.gate(TaskCategory.LINT))


@app.command(name="format")
def format_(ctx: typer.Context) -> Never:
    """Run the format check (auto-format first) and write its report."""
    _run_selection(_state(ctx), TaskSelection.gate(TaskCategory.FORMAT))


@app.command()
def test(
    ctx: typer.Context,
    test_type: Annotated[
        str,
        typer.Argument(help="Test category, e.g. unit, integration, test:e2e"),
    ],
    target: Annotated[
        float | None,
        typer.Option("--target", help="Coverage target percentage (0-100)"),
    ] = None,
    max_retries: Annotated[
        int | None,
        typer.Option("--max-retries", help="Retries after the first attempt"),
    ] = None,
) -> Never:
    """Run one test category through the adaptive runner."""
    if target is not None and not 0 <= target <= 100:
        _fail("--target must be between 0 and 100", EXIT_CONFIG_ERROR)
    if max_retries is not None and max_retries < 0:
        _fail("--max-retries must be at least 0", EXIT_CONFIG_ERROR)
    if not test_type.strip():
        _fail("Test type cannot be empty", EXIT_CONFIG_ERROR)
    _run_selection(
        _state(ctx),
        TaskSelection.test(test_type.strip()),
        target=target,
        max_retries=max_retries,
    )


@app.command()
def detect(ctx: typer.Context) -> None:
    """List discovered test types per package and a summary by type."""
    state = _state(ctx)
    try:
        config = load_config(state.repo_path)
    except ConfigError as e:
        _fail(f"Invalid configuration: {e}", EXIT_CONFIG_ERROR)

    discovery = PackageJsonReader().discover(state.repo_path, config.package_dirs)
    for warning in discovery.warnings:
        log("⚠", f"Skipped package {warning}", Colors.YELLOW)
    if not discovery.manifests:
        log("○", "No packages found", Colors.GRAY)
        return

    rows = []
    for manifest in discovery.manifests:
        found = package_test_types(manifest)
        rows.append([manifest.name, ", ".join(found) or "-"])
    print(tabulate(rows, headers=["Package", "Test types"], tablefmt="simple"))
    print()

    summary_rows = []
    for script in discover_test_types(discovery.manifests):
        count = sum(
            1 for manifest in discovery.manifests if script in package_test_types(manifest)
        )
        summary_rows.append([script, get_test_type(script).display_name, count])
    if summary_rows:
        print(
            tabulate(
                summary_rows,
                headers=["Test type", "Validation", "Packages"],
                tablefmt="simple",
            )
        )
    else:
        log("○", "No test scripts found", Colors.GRAY)


@app.command()
def watch(
    ctx: typer.Context,
    all_: Annotated[
        bool,
        typer.Option("--all", help="Watch every validation, not just typecheck + lint"),
    ] = False,
    interval: Annotated[
        float | None,
        typer.Option(
            "--interval",
            "-i",
            help="Minimum seconds between runs of one validation",
        ),
    ] = None,
) -> Never:
    """Re-run validations on file changes until Ctrl+C."""
    if interval is not None and interval <= 0:
        _fail("--interval must be positive", EXIT_CONFIG_ERROR)
    orchestrator = _orchestrator(_state(ctx))
    _guarded(lambda: orchestrator.watch_sync(all_tasks=all_, interval=interval))
