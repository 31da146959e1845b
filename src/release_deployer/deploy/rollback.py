"""Restoring the previously active release after a failed deployment."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import structlog

from release_deployer.core.exceptions import (
    CommandExecutionError,
    DeployerError,
    RollbackError,
    ServingSyncError,
)
from release_deployer.core.models import ProjectDescriptor
from release_deployer.deploy.activator import Activator
from release_deployer.deploy.commands import CommandRunner, render_command


class RollbackCoordinator:
    """Runs pre-rollback hooks and puts the previous release back in place.

    Rollback is best-effort and never raises: problems are logged and returned
    as a single RollbackError so the caller can report them next to the
    original failure.
    """

    def __init__(self, project: ProjectDescriptor, activator: Activator, runner: CommandRunner, logger=None):
        self.project = project
        self.activator = activator
        self.runner = runner
        self.logger = (logger or structlog.get_logger()).bind(component="RollbackCoordinator")

    def rollback(self, previous: Optional[Path]) -> Optional[RollbackError]:
        if previous is None:
            self.logger.warning("No previous release found for rollback")
            return None

        self.logger.info("Starting rollback procedure", previous_release=str(previous))
        problems: List[str] = []

        if self.project.pre_rollback:
            web_root = self.project.web_root or str(previous)
            commands = [render_command(cmd, previous, web_root) for cmd in self.project.pre_rollback]
            self.logger.info("Executing pre-rollback commands", count=len(commands))
            try:
                self.runner.run(commands, cwd=web_root)
            except CommandExecutionError as e:
                # The pointer is still restored below
                problems.append(f"pre-rollback hook failed: {e}")

        try:
            self.activator.swap_pointer(previous)
        except DeployerError as e:
            problems.append(str(e))
            return self._failed(problems)

        try:
            failures = self.activator.sync_serving_dir(previous)
        except ServingSyncError as e:
            problems.append(str(e))
        else:
            problems.extend(str(f) for f in failures)

        if problems:
            return self._failed(problems)

        self.logger.info("Rollback completed", previous_release=str(previous))
        return None

    def _failed(self, problems: List[str]) -> RollbackError:
        error = RollbackError("Rollback incomplete: " + "; ".join(problems))
        self.logger.error("Rollback failed", problems=problems)
        return error
