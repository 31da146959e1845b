"""Tests for restoring the previous release."""

from pathlib import Path

from conftest import make_project
from release_deployer.deploy.activator import Activator, read_pointer
from release_deployer.deploy.commands import CommandRunner
from release_deployer.deploy.rollback import RollbackCoordinator
from release_deployer.deploy.stager import ReleasePaths


def setup_releases(tmp_path: Path, web_root: Path):
    paths = ReleasePaths(tmp_path / "base", "site")
    previous = paths.releases_dir / "v1.0.0-2026-10-19T10-00-00-000000Z"
    broken = paths.releases_dir / "v2.0.0-2026-10-19T11-00-00-000000Z"
    for d, text in ((previous, "v1"), (broken, "v2")):
        d.mkdir(parents=True)
        (d / "index.html").write_text(text)
    activator = Activator(paths, str(web_root))
    activator.activate(broken)
    return paths, activator, previous


def test_no_previous_release_is_a_no_op(tmp_path: Path):
    paths = ReleasePaths(tmp_path, "site")
    coordinator = RollbackCoordinator(make_project(), Activator(paths), CommandRunner())

    assert coordinator.rollback(None) is None
    assert not paths.current_link.exists()


def test_restores_pointer_and_web_root(tmp_path: Path):
    web_root = tmp_path / "www"
    paths, activator, previous = setup_releases(tmp_path, web_root)
    coordinator = RollbackCoordinator(make_project(web_root), activator, CommandRunner())

    assert coordinator.rollback(previous) is None

    assert read_pointer(paths.current_link) == previous.resolve()
    assert (web_root / "index.html").read_text() == "v1"


def test_pre_rollback_hooks_run_in_web_root_first(tmp_path: Path):
    web_root = tmp_path / "www"
    paths, activator, previous = setup_releases(tmp_path, web_root)
    marker = tmp_path / "hook.log"
    project = make_project(
        web_root,
        preRollback=[f"cat index.html > {marker}", f"echo {{{{releasePath}}}} >> {marker}"],
    )

    RollbackCoordinator(project, activator, CommandRunner()).rollback(previous)

    lines = marker.read_text().splitlines()
    assert lines[0] == "v2"  # web root still held the failed release
    assert lines[1] == str(previous)


def test_failing_pre_rollback_hook_still_restores_pointer(tmp_path: Path):
    web_root = tmp_path / "www"
    paths, activator, previous = setup_releases(tmp_path, web_root)
    project = make_project(web_root, preRollback=["exit 7"])

    error = RollbackCoordinator(project, activator, CommandRunner()).rollback(previous)

    assert error is not None
    assert "exit code 7" in str(error)
    assert read_pointer(paths.current_link) == previous.resolve()
    assert (web_root / "index.html").read_text() == "v1"
