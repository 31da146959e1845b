"""Current pointer swap and serving directory mirroring."""

from __future__ import annotations

import os
import shutil
import uuid
from pathlib import Path
from typing import List, Optional

import structlog

from release_deployer.core.exceptions import ServingSyncError, SymlinkSwapError
from release_deployer.core.models import SyncMode
from release_deployer.deploy.stager import ReleasePaths


def read_pointer(link: Path) -> Optional[Path]:
    """Resolved target of ``link``, or None when there is no live release."""
    if not link.is_symlink() and not link.exists():
        return None
    target = Path(os.path.realpath(link))
    if not target.is_dir():
        return None
    return target


class Activator:
    """Moves the ``current`` pointer and mirrors releases into the web root."""

    def __init__(
        self,
        paths: ReleasePaths,
        web_root: Optional[str] = None,
        sync_mode: SyncMode = SyncMode.BEST_EFFORT,
        logger=None,
    ):
        self.paths = paths
        self.web_root = Path(web_root) if web_root else None
        self.sync_mode = sync_mode
        self.logger = (logger or structlog.get_logger()).bind(component="Activator")

    def current_target(self) -> Optional[Path]:
        return read_pointer(self.paths.current_link)

    def swap_pointer(self, target: Path) -> None:
        """Point ``current/<project>`` at ``target`` with a single rename."""
        link = self.paths.current_link
        tmp_link = link.with_name(f".{link.name}.{uuid.uuid4().hex}.tmp")
        target = Path(os.path.abspath(target))

        self.logger.debug("Creating symlink", target=str(target), link=str(link))
        try:
            link.parent.mkdir(parents=True, exist_ok=True)
            if link.is_dir() and not link.is_symlink():
                self.logger.warning("Replacing real directory at current pointer", link=str(link))
                shutil.rmtree(link)
            os.symlink(target, tmp_link, target_is_directory=True)
            os.replace(tmp_link, link)
        except OSError as e:
            if tmp_link.is_symlink():
                tmp_link.unlink()
            self.logger.error("Failed to create symlink", target=str(target), link=str(link), error=str(e))
            raise SymlinkSwapError(f"Failed to create symlink: {e}")
        self.logger.info("Current pointer updated", target=str(target))

    def sync_serving_dir(self, source: Path) -> List[ServingSyncError]:
        """Replace the web root contents with a copy of ``source``.

        Returns per-entry failures in best-effort mode. Strict mode raises the
        first failure instead. A failure to prepare the web root itself always
        raises.
        """
        if self.web_root is None:
            return []

        try:
            self.web_root.mkdir(parents=True, exist_ok=True)
            for entry in list(self.web_root.iterdir()):
                if entry.is_dir() and not entry.is_symlink():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
        except OSError as e:
            raise ServingSyncError(f"Failed to update web root: {e}", path=str(self.web_root))

        failures: List[ServingSyncError] = []
        self._copy_tree(source, self.web_root, failures)
        if failures:
            self.logger.warning("Web root updated with errors", web_root=str(self.web_root), failures=len(failures))
        else:
            self.logger.info("Updated web root contents", web_root=str(self.web_root))
        return failures

    def _copy_tree(self, src: Path, dst: Path, failures: List[ServingSyncError]) -> None:
        try:
            dst.mkdir(parents=True, exist_ok=True)
            entries = sorted(os.scandir(src), key=lambda e: e.name)
        except OSError as e:
            self._record_failure(failures, src, e)
            return

        for entry in entries:
            src_entry = Path(entry.path)
            dst_entry = dst / entry.name
            try:
                if entry.is_symlink():
                    os.symlink(os.readlink(src_entry), dst_entry)
                elif entry.is_dir():
                    self._copy_tree(src_entry, dst_entry, failures)
                else:
                    shutil.copy2(src_entry, dst_entry)
            except OSError as e:
                self._record_failure(failures, src_entry, e)

    def _record_failure(self, failures: List[ServingSyncError], path: Path, error: OSError) -> None:
        failure = ServingSyncError(f"Error copying {path}: {error}", path=str(path))
        if self.sync_mode == SyncMode.STRICT:
            raise failure
        self.logger.error("Error copying entry", path=str(path), error=str(error))
        failures.append(failure)

    def activate(self, release_dir: Path) -> List[ServingSyncError]:
        """Swap the pointer, then mirror into the web root."""
        self.swap_pointer(release_dir)
        return self.sync_serving_dir(release_dir)
