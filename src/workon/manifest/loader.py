"""Manifest discovery and loading utilities."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

import yaml
from pydantic import ValidationError

from .models import Manifest

logger = logging.getLogger(__name__)

MANIFEST_NAME = "workon.yaml"
_PROJECT_NAME = re.compile(r"^[A-Za-z0-9_-]+$")


class ManifestError(RuntimeError):
    """Raised when a manifest cannot be located, parsed or validated."""


@dataclass(slots=True)
class Project:
    """A located manifest together with the directory it governs."""

    root: Path
    manifest_path: Path
    manifest: Manifest


class ManifestLoader:
    """Locates ``workon.yaml`` files and parses them into manifests."""

    def __init__(self, search_paths: Iterable[Path] | None = None) -> None:
        self._search_paths: list[Path] = [Path(path) for path in (search_paths or [])]

    @property
    def search_paths(self) -> list[Path]:
        return list(self._search_paths)

    def find(self, target: str | Path | None = None) -> Path:
        """Locate the manifest for ``target``.

        An existing file or directory is walked upwards until a manifest is
        found. Anything else is treated as a project name and looked up under
        the configured search paths.
        """

        target = Path.cwd() if target is None else target
        candidate = Path(target).expanduser()
        if candidate.exists():
            found = self._walk_up(candidate)
            if found is None:
                raise ManifestError(f"No {MANIFEST_NAME} found in {candidate} or parent directories")
            return found

        name = str(target)
        if not _PROJECT_NAME.match(name):
            raise ManifestError(
                f"Invalid project name: '{name}'. Project names must contain only "
                "alphanumeric characters, hyphens, and underscores."
            )

        for base in self._search_paths:
            if not base.is_dir():
                continue
            manifest = base / name / MANIFEST_NAME
            if manifest.is_file():
                return Path(os.path.realpath(manifest))

        raise ManifestError(f"Project '{name}' not found in configured project paths")

    @staticmethod
    def _walk_up(start: Path) -> Path | None:
        current = Path(os.path.realpath(start))
        if current.is_file():
            if current.name == MANIFEST_NAME:
                return current
            current = current.parent

        for directory in (current, *current.parents):
            if directory == directory.parent:
                break
            manifest = directory / MANIFEST_NAME
            if manifest.is_file():
                return manifest
        return None

    def load(self, path: Path) -> Manifest:
        """Parse and validate a manifest file."""

        try:
            document = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
        except OSError as exc:
            raise ManifestError(f"Cannot read {path}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise ManifestError(f"Failed to parse {path} (check YAML syntax)") from exc

        if not isinstance(document, dict) or "resources" not in document:
            raise ManifestError("Invalid manifest: missing 'resources' section")

        try:
            manifest = Manifest.model_validate(document)
        except ValidationError as exc:
            messages = "; ".join(error["msg"].removeprefix("Value error, ") for error in exc.errors())
            raise ManifestError(f"Invalid manifest {path}: {messages}") from exc

        logger.debug(
            "Loaded manifest",
            extra={"path": str(path), "resources": len(manifest.resources)},
        )
        return manifest

    def load_project(self, target: str | Path | None = None) -> Project:
        """Locate and load the manifest for ``target``."""

        manifest_path = self.find(target)
        manifest = self.load(manifest_path)
        return Project(root=manifest_path.parent, manifest_path=manifest_path, manifest=manifest)


__all__ = ["MANIFEST_NAME", "ManifestError", "ManifestLoader", "Project"]
