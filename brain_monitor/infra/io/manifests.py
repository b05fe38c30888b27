"""package.json discovery for the task registry.

Scans ``<repo>/<package_dir>/*/package.json`` for each configured package
directory. Unreadable or malformed manifests never raise: they become
DiscoveryWarning records and the package contributes nothing.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from brain_monitor.core.models import (
    DiscoveryResult,
    DiscoveryWarning,
    PackageManifest,
)

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

logger = logging.getLogger(__name__)

MANIFEST_NAME = "package.json"


class PackageJsonReader:
    """ManifestReader implementation for npm-style package.json files."""

    def discover(self, repo_path: Path, package_dirs: Sequence[str]) -> DiscoveryResult:
        manifests: list[PackageManifest] = []
        warnings: list[DiscoveryWarning] = []
        for package_dir in package_dirs:
            root = repo_path / package_dir
            if not root.is_dir():
                logger.debug("Package directory %s does not exist", root)
                continue
            for child in sorted(root.iterdir()):
                manifest_path = child / MANIFEST_NAME
                if not child.is_dir() or not manifest_path.is_file():
                    continue
                manifest, warning = self.read(manifest_path)
                if manifest is not None:
                    manifests.append(manifest)
                if warning is not None:
                    logger.warning("Skipping package: %s", warning)
                    warnings.append(warning)
        return DiscoveryResult(manifests=tuple(manifests), warnings=tuple(warnings))

    def read(
        self, manifest_path: Path
    ) -> tuple[PackageManifest | None, DiscoveryWarning | None]:
        """Parse one manifest.

        Returns:
            (manifest, None) on success, (None, warning) when the package must
            be skipped.
        """
        try:
            data = json.loads(manifest_path.read_text(encoding="utf-8"))
        except OSError as e:
            return None, DiscoveryWarning(manifest_path, f"unreadable: {e}")
        except json.JSONDecodeError as e:
            return None, DiscoveryWarning(manifest_path, f"invalid JSON: {e.msg}")

        if not isinstance(data, dict):
            return None, DiscoveryWarning(manifest_path, "manifest is not an object")

        scripts = data.get("scripts") or {}
        if not isinstance(scripts, dict):
            return None, DiscoveryWarning(manifest_path, "'scripts' is not an object")

        name = data.get("name")
        if not isinstance(name, str) or not name:
            name = manifest_path.parent.name
        return (
            PackageManifest(
                name=name,
                path=manifest_path,
                scripts={k: v for k, v in scripts.items() if isinstance(v, str)},
            ),
            None,
        )
