"""Hook command execution."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Iterable, List, Optional, Union

import structlog

from release_deployer.core.exceptions import CommandExecutionError

RELEASE_PATH_TOKEN = "{{releasePath}}"
WEB_ROOT_TOKEN = "{{webRoot}}"


def render_command(template: str, release_path: Union[str, Path], web_root: Union[str, Path]) -> str:
    """Substitute the release path and serving directory placeholders."""
    return template.replace(RELEASE_PATH_TOKEN, str(release_path)).replace(WEB_ROOT_TOKEN, str(web_root))


class CommandRunner:
    """Runs operator hook commands one after another through the shell."""

    def __init__(self, timeout_seconds: Optional[float] = None, logger=None):
        self.timeout_seconds = timeout_seconds
        self.logger = (logger or structlog.get_logger()).bind(component="CommandRunner")

    def run(self, commands: Iterable[str], cwd: Optional[Union[str, Path]] = None) -> List[str]:
        """Run ``commands`` in order, stopping at the first failure.

        Returns the commands that completed. Raises CommandExecutionError with
        the failing command, its exit code (None on timeout) and stderr.
        """
        completed: List[str] = []
        for command in commands:
            self.logger.info("Executing command", command=command, cwd=str(cwd) if cwd else None)
            try:
                result = subprocess.run(
                    command,
                    shell=True,
                    cwd=str(cwd) if cwd else None,
                    capture_output=True,
                    encoding="utf-8",
                    errors="replace",
                    timeout=self.timeout_seconds,
                )
            except subprocess.TimeoutExpired as e:
                stderr = e.stderr.decode(errors="replace") if isinstance(e.stderr, bytes) else (e.stderr or "")
                self.logger.error("Command timed out", command=command, timeout=self.timeout_seconds)
                raise CommandExecutionError(command, None, stderr.strip())
            except OSError as e:
                # Bad working directory or missing shell
                self.logger.error("Command could not start", command=command, error=str(e))
                raise CommandExecutionError(command, 127, str(e))

            if result.returncode != 0:
                self.logger.error(
                    "Command failed",
                    command=command,
                    returncode=result.returncode,
                    stderr=result.stderr,
                )
                raise CommandExecutionError(command, result.returncode, result.stderr.strip())

            completed.append(command)
        return completed
