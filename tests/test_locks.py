"""Tests for per-project deployment locks."""

import threading
from pathlib import Path

import pytest

from release_deployer.core.exceptions import DeploymentInProgressError
from release_deployer.deploy.locks import ProjectLocks


def test_hold_without_lock_dir_only_uses_thread_lock():
    locks = ProjectLocks()
    with locks.hold("site"):
        assert locks.is_locked("site")
        assert locks.lock_path("site") is None
    assert not locks.is_locked("site")


def test_hold_creates_lock_file(tmp_path: Path):
    locks = ProjectLocks(tmp_path / "locks")
    with locks.hold("site"):
        assert (tmp_path / "locks" / "site.lock").exists()


def test_file_lock_blocks_other_holders(tmp_path: Path):
    # Two instances stand in for two server processes sharing one base directory
    first = ProjectLocks(tmp_path / "locks")
    second = ProjectLocks(tmp_path / "locks")

    with first.hold("site"):
        with pytest.raises(DeploymentInProgressError, match="another process"):
            with second.hold("site", timeout=0.1):
                pass
        assert not second.is_locked("site")

    with second.hold("site", timeout=0.1):
        pass


def test_file_lock_is_per_project(tmp_path: Path):
    first = ProjectLocks(tmp_path / "locks")
    second = ProjectLocks(tmp_path / "locks")

    with first.hold("site"):
        with second.hold("docs", timeout=0.1):
            assert (tmp_path / "locks" / "docs.lock").exists()


def test_waiting_holder_proceeds_once_released(tmp_path: Path):
    first = ProjectLocks(tmp_path / "locks")
    second = ProjectLocks(tmp_path / "locks")
    held = threading.Event()
    release = threading.Event()

    def hold_first():
        with first.hold("site"):
            held.set()
            release.wait(5)

    worker = threading.Thread(target=hold_first)
    worker.start()
    held.wait(5)
    timer = threading.Timer(0.1, release.set)
    timer.start()
    try:
        with second.hold("site", timeout=5):
            assert release.is_set()
    finally:
        release.set()
        worker.join()
        timer.cancel()
