"""Tests for CoverageSummaryReader."""

from __future__ import annotations

import json
import os
import time
from typing import TYPE_CHECKING

import pytest

from brain_monitor.infra.io.coverage_reader import CoverageSummaryReader

if TYPE_CHECKING:
    from pathlib import Path


def _summary(**pcts: object) -> dict[str, object]:
    return {"total": {metric: {"pct": pct} for metric, pct in pcts.items()}}


@pytest.fixture
def artifact(tmp_path: Path) -> Path:
    path = tmp_path / "coverage" / "coverage-summary.json"
    path.parent.mkdir()
    return path


class TestCoverageSummaryReader:
    def test_reads_istanbul_summary(self, artifact: Path) -> None:
        artifact.write_text(
            json.dumps(
                _summary(statements=90, branches=80, functions=85.5, lines=92.5)
            ),
            encoding="utf-8",
        )

        report = CoverageSummaryReader().read(artifact)

        assert report is not None
        assert report.functions == 85.5
        assert report.average == pytest.approx(87.0)

    def test_missing_file_is_absent(self, artifact: Path) -> None:
        assert CoverageSummaryReader().read(artifact) is None

    def test_invalid_json_is_absent(
        self, artifact: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        artifact.write_text("{", encoding="utf-8")

        assert CoverageSummaryReader().read(artifact) is None
        assert "not valid JSON" in caplog.text

    def test_missing_metric_is_absent(
        self, artifact: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        artifact.write_text(
            json.dumps(_summary(statements=90, branches=80, functions=85)),
            encoding="utf-8",
        )

        assert CoverageSummaryReader().read(artifact) is None
        assert "malformed" in caplog.text


class TestStaleArtifacts:
    def _write(self, artifact: Path, pct: float) -> None:
        artifact.write_text(
            json.dumps(_summary(statements=pct, branches=pct, functions=pct, lines=pct)),
            encoding="utf-8",
        )

    def test_artifact_from_before_attempt_is_ignored(
        self, artifact: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        self._write(artifact, 50)
        started = time.time()
        os.utime(artifact, (started - 600, started - 600))

        assert CoverageSummaryReader().read(artifact, not_before=started) is None
        assert "stale coverage artifact" in caplog.text

    def test_artifact_written_during_attempt_is_read(self, artifact: Path) -> None:
        started = time.time()
        self._write(artifact, 86)

        report = CoverageSummaryReader().read(artifact, not_before=started)

        assert report is not None
        assert report.average == 86

    def test_no_cutoff_reads_any_age(self, artifact: Path) -> None:
        self._write(artifact, 70)
        os.utime(artifact, (0, 0))

        report = CoverageSummaryReader().read(artifact)

        assert report is not None
        assert report.average == 70
