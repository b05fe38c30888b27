"""Fake manifest and coverage readers."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from brain_monitor.core.models import (
    CoverageReport,
    DiscoveryResult,
    DiscoveryWarning,
    PackageManifest,
)

if TYPE_CHECKING:
    from collections.abc import Sequence


@dataclass
class FakeManifestReader:
    """ManifestReader returning a fixed discovery result."""

    manifests: list[PackageManifest] = field(default_factory=list)
    warnings: list[DiscoveryWarning] = field(default_factory=list)
    calls: int = 0

    def add_package(self, name: str, **scripts: str) -> None:
        """Register a package; keyword names use ``__`` for ``:``."""
        self.manifests.append(
            PackageManifest(
                name=name,
                path=Path(f"packages/{name}/package.json"),
                scripts={k.replace("__", ":"): v for k, v in scripts.items()},
            )
        )

    def discover(self, repo_path: Path, package_dirs: Sequence[str]) -> DiscoveryResult:
        self.calls += 1
        return DiscoveryResult(
            manifests=tuple(self.manifests), warnings=tuple(self.warnings)
        )


@dataclass
class FakeCoverageReader:
    """CoverageReader returning queued reports, one per read.

    The last queued value repeats; an empty queue means "absent".
    """

    reports: list[CoverageReport | None] = field(default_factory=list)
    paths: list[Path] = field(default_factory=list)
    cutoffs: list[float | None] = field(default_factory=list)

    @classmethod
    def averaging(cls, *averages: float | None) -> FakeCoverageReader:
        """Reader whose successive reports have the given averages."""
        return cls(
            reports=[
                None if a is None else CoverageReport(a, a, a, a) for a in averages
            ]
        )

    def read(
        self, path: Path, not_before: float | None = None
    ) -> CoverageReport | None:
        self.paths.append(path)
        self.cutoffs.append(not_before)
        if not self.reports:
            return None
        return self.reports.pop(0) if len(self.reports) > 1 else self.reports[0]
