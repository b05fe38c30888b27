"""Task registry: static gates plus discovered test categories.

Task building is split in two phases:

- discovery (I/O): a ManifestReader returns every package manifest, and
  ``discover_test_types`` reduces them to the distinct test-type scripts
  found across packages, skipping placeholder scripts.
- planning (pure): ``plan_tasks`` turns the discovered test types and the
  configuration into the ordered ValidationTask list.

Task order is the declaration order used by every report: the static gates
(typecheck, lint, format) first, then test types in canonical order, then
any other ``test:*`` scripts alphabetically.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from brain_monitor.core.models import (
    Adjustment,
    DiscoveryWarning,
    PackageManifest,
    TaskCategory,
    ValidationTask,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from pathlib import Path

    from brain_monitor.core.protocols import ManifestReader
    from brain_monitor.domain.config import MonitorConfig

logger = logging.getLogger(__name__)

REPORTS_SUBDIR = "reports"
TEST_SCRIPT_PREFIX = "test:"

# Script bodies that mark a test type as intentionally absent in a package
PLACEHOLDER_MARKERS = ("echo 'n/a'", 'echo "n/a"')


@dataclass(frozen=True)
class TestType:
    """A known test category.

    Attributes:
        script: Manifest script name (e.g. "test:unit").
        display_name: Task name shown in reports.
        file_name: Short name used in report file names.
        default_adjustments: Adjustments the adaptive runner may apply.
    """

    __test__ = False  # not a pytest class

    script: str
    display_name: str
    file_name: str
    default_adjustments: frozenset[Adjustment]


_UNIT_ADJUSTMENTS = frozenset({Adjustment.TIMEOUT, Adjustment.ISOLATE, Adjustment.WORKERS})
_SERVICE_ADJUSTMENTS = frozenset({Adjustment.TIMEOUT, Adjustment.RETRY})
_STORYBOOK_ADJUSTMENTS = frozenset({Adjustment.TIMEOUT, Adjustment.ISOLATE})
_BROWSER_ADJUSTMENTS = frozenset(
    {Adjustment.TIMEOUT, Adjustment.RETRY, Adjustment.WORKERS}
)

TEST_TYPES: tuple[TestType, ...] = (
    TestType("test:unit", "Unit Tests", "unit", _UNIT_ADJUSTMENTS),
    TestType("test:integration", "Integration Tests", "integration", _SERVICE_ADJUSTMENTS),
    TestType("test:e2e", "E2E Tests", "e2e", _SERVICE_ADJUSTMENTS),
    TestType("test:e2e:browser", "Browser E2E Tests", "browser-e2e", _BROWSER_ADJUSTMENTS),
    TestType("test:storybook", "Storybook Tests", "storybook", _STORYBOOK_ADJUSTMENTS),
    TestType(
        "test:storybook:interaction",
        "Storybook Interaction Tests",
        "storybook-interaction",
        _STORYBOOK_ADJUSTMENTS,
    ),
    TestType(
        "test:storybook:e2e",
        "Storybook E2E Tests",
        "storybook-e2e",
        _BROWSER_ADJUSTMENTS,
    ),
)

_TEST_TYPES_BY_SCRIPT = {t.script: t for t in TEST_TYPES}

_STATIC_GATES: tuple[tuple[TaskCategory, str, str], ...] = (
    (TaskCategory.TYPECHECK, "Type Checking", "🔍"),
    (TaskCategory.LINT, "Linting", "📋"),
    (TaskCategory.FORMAT, "Formatting", "🎨"),
)


def get_test_type(script: str) -> TestType:
    """Return the known TestType for script, or a generated one for custom scripts."""
    known = _TEST_TYPES_BY_SCRIPT.get(script)
    if known is not None:
        return known
    suffix = script.removeprefix(TEST_SCRIPT_PREFIX)
    words = suffix.replace("-", " ").replace(":", " ").split()
    display = " ".join(w if w.isupper() else w.capitalize() for w in words)
    return TestType(
        script=script,
        display_name=f"{display} Tests",
        file_name=suffix.replace(":", "-"),
        default_adjustments=frozenset({Adjustment.TIMEOUT, Adjustment.RETRY}),
    )


def normalize_test_type(name: str) -> str:
    """Accept "unit", "test:unit" or a report file name like "browser-e2e"."""
    if name.startswith(TEST_SCRIPT_PREFIX):
        return name
    for test_type in TEST_TYPES:
        if name == test_type.file_name:
            return test_type.script
    return TEST_SCRIPT_PREFIX + name


def is_test_script(name: str) -> bool:
    return name.startswith(TEST_SCRIPT_PREFIX) and len(name) > len(TEST_SCRIPT_PREFIX)


def is_placeholder_script(command: str) -> bool:
    return any(marker in command for marker in PLACEHOLDER_MARKERS)


def package_test_types(manifest: PackageManifest) -> list[str]:
    """Real test-type scripts declared by one package, in canonical order."""
    found = [
        name
        for name, command in manifest.scripts.items()
        if is_test_script(name) and not is_placeholder_script(command)
    ]
    return order_test_types(found)


def order_test_types(scripts: Iterable[str]) -> list[str]:
    """Deduplicate and order: known types first, then the rest alphabetically."""
    unique = set(scripts)
    known = [t.script for t in TEST_TYPES if t.script in unique]
    custom = sorted(unique - set(known))
    return known + custom


def discover_test_types(manifests: Sequence[PackageManifest]) -> list[str]:
    """Distinct test types across all packages, in declaration order."""
    found: list[str] = []
    for manifest in manifests:
        found.extend(package_test_types(manifest))
    return order_test_types(found)


def report_path(report_dir: Path, slug: str) -> Path:
    return report_dir / REPORTS_SUBDIR / f"errors.{slug}.md"


def build_static_task(
    category: TaskCategory, config: MonitorConfig, report_dir: Path
) -> ValidationTask:
    """Build the ValidationTask for one static gate."""
    for gate_category, name, emoji in _STATIC_GATES:
        if gate_category is category:
            gate = config.gate(category)
            return ValidationTask(
                name=name,
                command=gate.command,
                category=category,
                output_path=report_path(report_dir, f"{category.value}-failures"),
                fix_command=gate.fix_command,
                timeout_seconds=gate.timeout,
                emoji=emoji,
                slug=category.value,
            )
    raise ValueError(f"{category} is not a static gate")


def build_test_task(script: str, config: MonitorConfig, report_dir: Path) -> ValidationTask:
    """Build the ValidationTask for one test type."""
    test_type = get_test_type(script)
    return ValidationTask(
        name=test_type.display_name,
        command=config.tests.command_for(script),
        category=TaskCategory.TEST,
        output_path=report_path(report_dir, f"test-failures-{test_type.file_name}"),
        test_type=script,
        timeout_seconds=config.tests.timeout,
        sequential=script in config.tests.sequential,
        emoji="🧪",
        slug=f"test-{test_type.file_name}",
    )


def plan_tasks(
    discovered_test_types: Sequence[str],
    config: MonitorConfig,
    report_dir: Path,
) -> list[ValidationTask]:
    """Pure planning step: static gates always, then one task per test type.

    Args:
        discovered_test_types: Test-type scripts from discovery.
        config: Effective configuration.
        report_dir: Report directory for task output paths.

    Returns:
        Tasks in declaration order. Deterministic for the same inputs.
    """
    tasks = [build_static_task(category, config, report_dir) for category, _, _ in _STATIC_GATES]
    tasks.extend(
        build_test_task(script, config, report_dir)
        for script in order_test_types(discovered_test_types)
    )
    return tasks


@dataclass(frozen=True)
class TaskPlan:
    """Result of build_tasks: the tasks plus what discovery saw."""

    tasks: tuple[ValidationTask, ...]
    manifests: tuple[PackageManifest, ...] = ()
    warnings: tuple[DiscoveryWarning, ...] = ()


def build_tasks(
    repo_path: Path,
    config: MonitorConfig,
    report_dir: Path,
    reader: ManifestReader,
) -> TaskPlan:
    """Discover test types under repo_path and plan the full task list.

    Malformed manifests are skipped and reported as warnings; this never
    raises for discovery problems.
    """
    discovery = reader.discover(repo_path, config.package_dirs)
    test_types = discover_test_types(discovery.manifests)
    logger.info(
        "Discovered %d packages, test types: %s",
        len(discovery.manifests),
        ", ".join(test_types) or "none",
    )
    return TaskPlan(
        tasks=tuple(plan_tasks(test_types, config, report_dir)),
        manifests=discovery.manifests,
        warnings=discovery.warnings,
    )
