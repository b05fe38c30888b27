"""Coverage math: artifact decoding, threshold checks and delta records.

Reading the artifact from disk lives in infra (CoverageSummaryReader); this
module only interprets already-loaded data.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from brain_monitor.core.models import CoverageReport

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime

    from brain_monitor.core.models import Adjustment

# Values that display equal (85.0 vs 84.9999999997) must compare equal
COVERAGE_EPSILON = 1e-9

_METRICS = ("statements", "branches", "functions", "lines")


def coverage_from_summary(data: Any) -> CoverageReport:
    """Decode an istanbul ``coverage-summary.json`` document.

    Raises:
        ValueError: If ``total.<metric>.pct`` is missing or not numeric.
    """
    if not isinstance(data, dict) or not isinstance(data.get("total"), dict):
        raise ValueError("coverage summary has no 'total' object")
    total = data["total"]
    values: dict[str, float] = {}
    for metric in _METRICS:
        entry = total.get(metric)
        pct = entry.get("pct") if isinstance(entry, dict) else None
        # istanbul writes "Unknown" when a metric has no instrumented items
        if pct == "Unknown":
            pct = 100
        if isinstance(pct, bool) or not isinstance(pct, (int, float)):
            raise ValueError(f"coverage summary total.{metric}.pct is not a number")
        values[metric] = float(pct)
    return CoverageReport(**values)


def meets_target(coverage: CoverageReport, target: float) -> bool:
    return coverage.average + COVERAGE_EPSILON >= target


def coverage_delta(coverage: CoverageReport, target: float) -> float:
    """Signed distance from target; non-negative means the target is met."""
    delta = coverage.average - target
    if abs(delta) < COVERAGE_EPSILON:
        return 0.0
    return delta


def delta_file_name(suite: str) -> str:
    return f"coverage-delta-{suite}.json"


def build_delta_record(
    *,
    suite: str,
    coverage: CoverageReport,
    target: float,
    duration_ms: int,
    attempts: int,
    adjustments: Iterable[Adjustment],
    timestamp: datetime,
) -> dict[str, Any]:
    """JSON-ready coverage delta document for one finished suite."""
    delta = coverage_delta(coverage, target)
    return {
        "suite": suite,
        "coverage": coverage.to_dict(),
        "targetCoverage": target,
        "delta": round(delta, 4),
        "status": "PASS" if delta >= 0 else "FAIL",
        "duration": duration_ms,
        "attempts": attempts,
        "adjustments": sorted(a.value for a in adjustments),
        "timestamp": timestamp.isoformat(),
    }
