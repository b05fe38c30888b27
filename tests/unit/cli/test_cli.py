"""CLI tests: argument validation, detect and exit-code mapping.

Nothing here spawns a validation command; runs that do live in
tests/integration/cli.
"""

from __future__ import annotations

import json
import os
from typing import TYPE_CHECKING

import pytest
from typer.testing import CliRunner

from brain_monitor.cli.cli import app
from brain_monitor.domain.config_loader import CONFIG_FILE_NAME
from brain_monitor.infra.io.report_writer import LOCK_DIR_NAME
from brain_monitor.orchestration.types import EXIT_CONFIG_ERROR, EXIT_REPORT_ERROR

if TYPE_CHECKING:
    from pathlib import Path

    from click.testing import Result

runner = CliRunner()


def _package(repo: Path, name: str, scripts: dict[str, str]) -> None:
    package_dir = repo / "packages" / name
    package_dir.mkdir(parents=True)
    (package_dir / "package.json").write_text(
        json.dumps({"name": f"@app/{name}", "scripts": scripts}), encoding="utf-8"
    )


def _invoke(repo: Path, *args: str) -> Result:
    return runner.invoke(app, ["--repo", str(repo), *args])


class TestHelp:
    def test_lists_commands(self) -> None:
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        for command in ("validate", "typecheck", "lint", "format", "test", "detect", "watch"):
            assert command in result.output


class TestArgumentValidation:
    @pytest.mark.parametrize("target", ["-1", "101"])
    def test_target_out_of_range(self, tmp_path: Path, target: str) -> None:
        result = _invoke(tmp_path, "test", "unit", "--target", target)

        assert result.exit_code == EXIT_CONFIG_ERROR
        assert "--target must be between 0 and 100" in result.output

    def test_negative_max_retries(self, tmp_path: Path) -> None:
        result = _invoke(tmp_path, "test", "unit", "--max-retries", "-1")

        assert result.exit_code == EXIT_CONFIG_ERROR
        assert "--max-retries must be at least 0" in result.output

    def test_blank_test_type(self, tmp_path: Path) -> None:
        result = _invoke(tmp_path, "test", "  ")

        assert result.exit_code == EXIT_CONFIG_ERROR

    def test_non_positive_watch_interval(self, tmp_path: Path) -> None:
        result = _invoke(tmp_path, "watch", "--interval", "0")

        assert result.exit_code == EXIT_CONFIG_ERROR
        assert "--interval must be positive" in result.output

    def test_no_report_directory_created_on_bad_arguments(self, tmp_path: Path) -> None:
        _invoke(tmp_path, "test", "unit", "--target", "500")

        assert not (tmp_path / "_errors").exists()


class TestConfigErrors:
    def test_invalid_config_exits_two(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILE_NAME).write_text("max_parallel: 0\n", encoding="utf-8")

        result = _invoke(tmp_path, "typecheck")

        assert result.exit_code == EXIT_CONFIG_ERROR
        assert "Invalid configuration" in result.output
        assert "max_parallel must be at least 1" in result.output

    def test_detect_reports_invalid_config(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILE_NAME).write_text("gates: [1]\n", encoding="utf-8")

        result = _invoke(tmp_path, "detect")

        assert result.exit_code == EXIT_CONFIG_ERROR


class TestReportErrors:
    def test_held_lock_exits_three(self, tmp_path: Path) -> None:
        lock = tmp_path / "_errors" / LOCK_DIR_NAME
        lock.mkdir(parents=True)
        (lock / "pid").write_text(str(os.getpid()), encoding="utf-8")

        result = _invoke(tmp_path, "lint")

        assert result.exit_code == EXIT_REPORT_ERROR
        assert "Another brain-monitor run" in result.output
        assert lock.exists()


class TestDetect:
    def test_lists_packages_and_test_types(self, tmp_path: Path) -> None:
        _package(tmp_path, "web", {"test:unit": "vitest run", "test:e2e": "playwright test"})
        _package(tmp_path, "api", {"test:unit": "vitest run", "test:integration": "echo 'n/a'"})

        result = _invoke(tmp_path, "detect")

        assert result.exit_code == 0
        assert "@app/web" in result.output
        assert "@app/api" in result.output
        lines = result.output.splitlines()
        unit_row = next(line for line in lines if line.startswith("test:unit "))
        assert unit_row.split()[-1] == "2"
        assert not any(line.startswith("test:integration ") for line in lines)

    def test_no_packages(self, tmp_path: Path) -> None:
        result = _invoke(tmp_path, "detect")

        assert result.exit_code == 0
        assert "No packages found" in result.output

    def test_invalid_manifest_is_skipped_with_warning(self, tmp_path: Path) -> None:
        _package(tmp_path, "web", {"test:unit": "vitest run"})
        broken = tmp_path / "packages" / "broken"
        broken.mkdir()
        (broken / "package.json").write_text("{not json", encoding="utf-8")

        result = _invoke(tmp_path, "detect")

        assert result.exit_code == 0
        assert "Skipped package" in result.output
        assert "@app/web" in result.output
