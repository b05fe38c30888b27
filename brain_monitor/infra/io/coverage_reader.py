"""Coverage artifact reader.

A missing artifact means "absent", not an error: suites without coverage
instrumentation simply skip the coverage gate. An artifact last written
before the attempt started is treated as absent too, since it reports an
earlier run.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from brain_monitor.domain.coverage import coverage_from_summary

if TYPE_CHECKING:
    from pathlib import Path

    from brain_monitor.core.models import CoverageReport

logger = logging.getLogger(__name__)

# Filesystems with coarse timestamps can round an mtime down by up to 1s
MTIME_SLACK_SECONDS = 1.0


class CoverageSummaryReader:
    """CoverageReader for istanbul ``coverage-summary.json`` files."""

    def read(
        self, path: Path, not_before: float | None = None
    ) -> CoverageReport | None:
        try:
            mtime = path.stat().st_mtime
        except FileNotFoundError:
            logger.debug("No coverage artifact at %s", path)
            return None
        except OSError as e:
            logger.warning("Cannot read coverage artifact %s: %s", path, e)
            return None
        if not_before is not None and mtime < not_before - MTIME_SLACK_SECONDS:
            logger.warning(
                "Ignoring stale coverage artifact %s (written before this attempt)",
                path,
            )
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return coverage_from_summary(data)
        except OSError as e:
            logger.warning("Cannot read coverage artifact %s: %s", path, e)
        except json.JSONDecodeError as e:
            logger.warning("Coverage artifact %s is not valid JSON: %s", path, e.msg)
        except ValueError as e:
            logger.warning("Coverage artifact %s is malformed: %s", path, e)
        return None
