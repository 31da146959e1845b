"""Pruning of old release directories."""

from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import List, Optional

import structlog

from release_deployer.core.exceptions import RetentionError
from release_deployer.deploy.stager import ReleasePaths, is_release_dir_name, release_sort_key


class RetentionManager:
    """Keeps the newest ``keep`` releases of a project."""

    def __init__(self, paths: ReleasePaths, logger=None):
        self.paths = paths
        self.logger = (logger or structlog.get_logger()).bind(component="RetentionManager")

    def list_releases(self) -> List[Path]:
        """Release directories, oldest first."""
        releases_dir = self.paths.releases_dir
        if not releases_dir.is_dir():
            return []
        names = [
            entry.name
            for entry in os.scandir(releases_dir)
            if entry.is_dir(follow_symlinks=False) and is_release_dir_name(entry.name)
        ]
        return [releases_dir / name for name in sorted(names, key=release_sort_key)]

    def prune(self, keep: int, protected: Optional[Path] = None) -> List[Path]:
        """Delete releases beyond the newest ``keep``; never ``protected``."""
        if keep < 1:
            raise RetentionError(f"keep_releases must be at least 1, got {keep}")

        releases = self.list_releases()
        self.logger.info("Starting cleanup", total_releases=len(releases), keep_releases=keep)
        if len(releases) <= keep:
            return []

        protected_real = os.path.realpath(protected) if protected else None
        removed: List[Path] = []
        for release in releases[: len(releases) - keep]:
            if protected_real and os.path.realpath(release) == protected_real:
                self.logger.info("Keeping release referenced by current pointer", release_path=str(release))
                continue
            try:
                shutil.rmtree(release)
            except OSError as e:
                raise RetentionError(f"Failed to remove old release {release}: {e}")
            removed.append(release)
            self.logger.info("Removed old release", release_path=str(release))
        return removed
