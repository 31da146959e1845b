"""Per-project serialization of deployments."""

from __future__ import annotations

import fcntl
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Optional

from release_deployer.core.exceptions import DeploymentInProgressError

LOCK_POLL_INTERVAL = 0.05


class ProjectLocks:
    """One lock per project name, created on first use.

    With ``lock_dir`` set, holding a project also takes an exclusive ``flock``
    on ``<lock_dir>/<project>.lock`` so that several server processes sharing
    one base directory are serialized as well.
    """

    def __init__(self, lock_dir: Optional[Path] = None):
        self.lock_dir = Path(lock_dir) if lock_dir is not None else None
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def get(self, project: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(project)
            if lock is None:
                lock = self._locks[project] = threading.Lock()
            return lock

    def is_locked(self, project: str) -> bool:
        return self.get(project).locked()

    def lock_path(self, project: str) -> Optional[Path]:
        if self.lock_dir is None:
            return None
        return self.lock_dir / f"{project}.lock"

    @contextmanager
    def hold(self, project: str, timeout: Optional[float] = None) -> Iterator[None]:
        """Hold the project lock, waiting at most ``timeout`` seconds."""
        deadline = None if timeout is None else time.monotonic() + timeout
        lock = self.get(project)
        acquired = lock.acquire(timeout=-1 if timeout is None else timeout)
        if not acquired:
            raise DeploymentInProgressError(f"A deployment of {project} is already in progress")
        try:
            path = self.lock_path(project)
            if path is None:
                yield
                return
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("a+", encoding="utf-8") as handle:
                self._flock(handle.fileno(), project, deadline)
                try:
                    yield
                finally:
                    fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        finally:
            lock.release()

    @staticmethod
    def _flock(fd: int, project: str, deadline: Optional[float]) -> None:
        if deadline is None:
            fcntl.flock(fd, fcntl.LOCK_EX)
            return
        while True:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                return
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    raise DeploymentInProgressError(
                        f"A deployment of {project} is already in progress in another process"
                    )
                time.sleep(LOCK_POLL_INTERVAL)
