"""Release directory layout and allocation."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

import structlog

from release_deployer.core.exceptions import StagingError

# 2026-10-19T12-00-00-123456Z
TIMESTAMP_FORMAT = "%Y-%m-%dT%H-%M-%S-%fZ"
RELEASE_DIR_PATTERN = re.compile(r"^(?P<tag>.+)-(?P<ts>\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}-\d{6}Z)$")
_SAFE_TAG = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._+@-]*$")


def release_timestamp(now: Optional[datetime] = None) -> str:
    """UTC ISO-8601 timestamp with ':' and '.' replaced so it is path safe."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def release_dir_name(tag: str, timestamp: str) -> str:
    return f"{tag}-{timestamp}"


def release_sort_key(name: str):
    """Chronological sort key for a release directory name."""
    match = RELEASE_DIR_PATTERN.match(name)
    if not match:
        return ("", name)
    return (match.group("ts"), name)


def is_release_dir_name(name: str) -> bool:
    return RELEASE_DIR_PATTERN.match(name) is not None


@dataclass(frozen=True)
class ReleasePaths:
    """Filesystem layout for one project under the base directory."""

    base_dir: Path
    project: str

    @property
    def releases_dir(self) -> Path:
        return self.base_dir / "releases" / self.project

    @property
    def current_dir(self) -> Path:
        return self.base_dir / "current"

    @property
    def current_link(self) -> Path:
        return self.current_dir / self.project

    @property
    def downloads_dir(self) -> Path:
        return self.base_dir / "downloads" / self.project

    def archive_for(self, release_dir: Path) -> Path:
        return self.downloads_dir / f"{release_dir.name}.zip"


class Stager:
    """Allocates uniquely named release directories."""

    def __init__(self, paths: ReleasePaths, clock: Callable[[], datetime] = None, logger=None):
        self.paths = paths
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.logger = (logger or structlog.get_logger()).bind(component="Stager")

    def stage(self, tag: str) -> Path:
        """Create ``releases/<project>/<tag>-<timestamp>`` and return it."""
        if not _SAFE_TAG.match(tag):
            raise StagingError(f"Release tag is not usable as a directory name: {tag!r}")

        release_dir = self.paths.releases_dir / release_dir_name(tag, release_timestamp(self.clock()))
        try:
            self.paths.releases_dir.mkdir(parents=True, exist_ok=True)
            self.paths.current_dir.mkdir(parents=True, exist_ok=True)
            release_dir.mkdir(exist_ok=False)
        except FileExistsError:
            raise StagingError(f"Release directory already exists: {release_dir}")
        except OSError as e:
            raise StagingError(f"Failed to create release directory {release_dir}: {e}")

        self.logger.info("Staged release directory", release_dir=str(release_dir))
        return release_dir
