"""Deployment orchestration: fetch, stage, activate, hook, prune, roll back."""

from __future__ import annotations

import shutil
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import httpx
import structlog
from prometheus_client import Counter, Histogram

from release_deployer.core.config import DeployerConfig, Settings
from release_deployer.core.exceptions import (
    AssetResolutionError,
    DeployerError,
    DeploymentError,
    DownloadError,
    ExtractionError,
    RetentionError,
    SymlinkSwapError,
)
from release_deployer.core.models import ProjectDescriptor, ReleaseRequest
from release_deployer.deploy.activator import Activator, read_pointer
from release_deployer.deploy.commands import CommandRunner, render_command
from release_deployer.deploy.fetch import ReleaseFetcher
from release_deployer.deploy.locks import ProjectLocks
from release_deployer.deploy.models import DeploymentRecord, DeploymentState, StageResult
from release_deployer.deploy.resolver import AssetResolver
from release_deployer.deploy.retention import RetentionManager
from release_deployer.deploy.rollback import RollbackCoordinator
from release_deployer.deploy.stager import ReleasePaths, Stager

DEPLOYMENTS_TOTAL = Counter(
    "release_deployer_deployments_total",
    "Deployment attempts by outcome",
    ["project", "outcome"],
)

DEPLOYMENT_DURATION = Histogram(
    "release_deployer_deployment_duration_seconds",
    "Deployment attempt duration",
    ["project"],
)

# Error type used when a stage fails with a bare OSError
_STAGE_ERRORS = {
    DeploymentState.RESOLVING: AssetResolutionError,
    DeploymentState.DOWNLOADING: DownloadError,
    DeploymentState.EXTRACTING: ExtractionError,
    DeploymentState.ACTIVATING: SymlinkSwapError,
    DeploymentState.RETAINING: RetentionError,
}


class DeploymentOrchestrator:
    """Runs release deployments for configured projects, one at a time per project."""

    def __init__(
        self,
        config: DeployerConfig,
        settings: Settings,
        *,
        http_client: Optional[httpx.Client] = None,
        locks: Optional[ProjectLocks] = None,
        runner: Optional[CommandRunner] = None,
        clock: Optional[Callable[[], datetime]] = None,
        logger=None,
    ):
        self.config = config
        self.settings = settings
        self.base_dir = Path(config.base_dir)
        self.logger = (logger or structlog.get_logger()).bind(component="DeploymentOrchestrator")
        self.clock = clock

        self._owns_client = http_client is None
        self.client = http_client or httpx.Client(timeout=settings.request_timeout_seconds)
        self.locks = locks or ProjectLocks(self.base_dir / "locks")
        self.runner = runner or CommandRunner(settings.hook_timeout_seconds, logger=self.logger)
        self.resolver = AssetResolver(
            self.client,
            api_url=settings.github_api_url,
            token=config.github_token,
            timeout_seconds=settings.request_timeout_seconds,
            logger=self.logger,
        )
        self.fetcher = ReleaseFetcher(
            self.client,
            token=config.github_token,
            max_size_bytes=settings.max_asset_size_bytes,
            total_timeout_sec=settings.download_timeout_seconds,
            max_retries=settings.download_max_retries,
            backoff_base=settings.download_backoff_base,
            logger=self.logger,
        )

        self.deployments: "OrderedDict[str, DeploymentRecord]" = OrderedDict()
        self._records_lock = threading.Lock()

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def paths(self, project_name: str) -> ReleasePaths:
        return ReleasePaths(self.base_dir, project_name)

    def current_release(self, project_name: str) -> Optional[Path]:
        return read_pointer(self.paths(project_name).current_link)

    def find_project(self, repository: str) -> Optional[ProjectDescriptor]:
        return self.config.find_project(repository)

    def list(self) -> Dict[str, DeploymentRecord]:
        with self._records_lock:
            return dict(self.deployments)

    def get(self, deployment_id: str) -> Optional[DeploymentRecord]:
        with self._records_lock:
            return self.deployments.get(deployment_id)

    def deploy_tag(self, project: ProjectDescriptor, tag: str) -> DeploymentRecord:
        """Deploy ``tag`` without a webhook, looking the release up first."""
        data = self.resolver.fetch_release(project.github_repo, tag)
        release = ReleaseRequest(
            tag_name=tag,
            zip_url=data.get("zipball_url"),
            is_draft=bool(data.get("draft", False)),
            is_prerelease=bool(data.get("prerelease", False)),
            repository_name=project.github_repo,
            target_commitish=data.get("target_commitish"),
        )
        return self.deploy(project, release)

    def deploy(self, project: ProjectDescriptor, release: ReleaseRequest) -> DeploymentRecord:
        """Run one deployment attempt and return its record.

        Pipeline failures do not raise; they are reported on the returned
        record. DeploymentInProgressError is raised when the project lock
        cannot be taken within ``lock_timeout_seconds``.
        """
        with self.locks.hold(project.name, self.settings.lock_timeout_seconds):
            record = DeploymentRecord(project=project.name, tag=release.tag_name)
            with self._records_lock:
                self.deployments[record.deploymentId] = record
                while len(self.deployments) > self.settings.max_deployment_records:
                    self.deployments.popitem(last=False)

            log = self.logger.bind(project=project.name, deploymentId=record.deploymentId, tag=release.tag_name)
            log.info("Starting deployment", repository=release.repository_name)

            start = time.time()
            self._execute(project, release, record, log)
            DEPLOYMENT_DURATION.labels(project=project.name).observe(time.time() - start)

        if record.succeeded:
            outcome = "success"
        elif record.rolled_back:
            outcome = "rolled_back"
        else:
            outcome = "failed"
        DEPLOYMENTS_TOTAL.labels(project=project.name, outcome=outcome).inc()
        return record

    def _run_stage(self, record: DeploymentRecord, state: DeploymentState, func: Callable, *args) -> StageResult:
        record.transition(state)
        try:
            return StageResult.success(state, func(*args))
        except DeployerError as e:
            return StageResult.failure(state, e)
        except OSError as e:
            error_cls = _STAGE_ERRORS.get(state, DeploymentError)
            return StageResult.failure(state, error_cls(str(e)))
        except Exception as e:
            self.logger.exception("Unexpected error in deployment stage", state=state.value)
            error_cls = _STAGE_ERRORS.get(state, DeploymentError)
            return StageResult.failure(state, error_cls(f"{type(e).__name__}: {e}"))

    def _execute(
        self,
        project: ProjectDescriptor,
        release: ReleaseRequest,
        record: DeploymentRecord,
        log,
    ) -> None:
        paths = self.paths(project.name)
        stager = Stager(paths, clock=self.clock, logger=log)
        activator = Activator(paths, project.web_root, project.sync_mode, logger=log)
        retention = RetentionManager(paths, logger=log)
        rollback = RollbackCoordinator(project, activator, self.runner, logger=log)

        attempt = _Attempt(project=project, record=record, paths=paths, log=log)

        result = self._run_stage(record, DeploymentState.RESOLVING, self.resolver.resolve, release, project.asset_name)
        if not result.ok:
            return self._fail(attempt, result, activator, rollback, retention)
        download_url = result.value

        def stage_and_download() -> Path:
            attempt.release_dir = stager.stage(release.tag_name)
            self.fetcher.download(download_url, paths.archive_for(attempt.release_dir))
            return attempt.release_dir

        result = self._run_stage(record, DeploymentState.DOWNLOADING, stage_and_download)
        if not result.ok:
            return self._fail(attempt, result, activator, rollback, retention)
        release_dir = result.value
        record.release_path = str(release_dir)

        # The project lock is held, so nothing moves the pointer between here and activation
        attempt.previous = activator.current_target()
        record.previous_release_path = str(attempt.previous) if attempt.previous else None
        log.info("Captured previous release", previous_release=record.previous_release_path)

        result = self._run_stage(
            record, DeploymentState.EXTRACTING, self.fetcher.extract, paths.archive_for(release_dir), release_dir
        )
        if not result.ok:
            return self._fail(attempt, result, activator, rollback, retention)
        log.info("Release downloaded and extracted", release_dir=str(release_dir))

        result = self._run_stage(record, DeploymentState.ACTIVATING, activator.activate, release_dir)
        if not result.ok:
            return self._fail(attempt, result, activator, rollback, retention)
        record.warnings.extend(str(failure) for failure in result.value)

        hook_cwd = project.web_root or str(release_dir)
        commands = [render_command(cmd, release_dir, hook_cwd) for cmd in project.post_activate]
        result = self._run_stage(record, DeploymentState.HOOKING, self.runner.run, commands, hook_cwd)
        if not result.ok:
            return self._fail(attempt, result, activator, rollback, retention)

        result = self._run_stage(
            record, DeploymentState.RETAINING, retention.prune, project.keep_releases, activator.current_target()
        )
        if not result.ok:
            return self._fail(attempt, result, activator, rollback, retention)
        record.removed_releases = [str(p) for p in result.value]

        record.transition(DeploymentState.DONE)
        log.info("Deployment completed", release_dir=str(release_dir), removed=len(record.removed_releases))

    def _fail(
        self,
        attempt: "_Attempt",
        result: StageResult,
        activator: Activator,
        rollback: RollbackCoordinator,
        retention: RetentionManager,
    ) -> None:
        record, log = attempt.record, attempt.log
        record.record_failure(result)
        log.error(
            "Deployment failed",
            state=result.state.value,
            error_type=record.error_type,
            error=record.error,
        )

        rollback_ok = False
        if attempt.previous is not None:
            record.transition(DeploymentState.ROLLING_BACK)
            log.info("Initiating rollback", previous_release=str(attempt.previous))
            rollback_error = rollback.rollback(attempt.previous)
            if rollback_error is not None:
                record.rollback_error = str(rollback_error)
            else:
                rollback_ok = True

        self._discard_release(attempt, activator)

        if rollback_ok and self.settings.prune_after_rollback:
            try:
                removed = retention.prune(attempt.project.keep_releases, activator.current_target())
                record.removed_releases = [str(p) for p in removed]
            except RetentionError as e:
                log.warning("Cleanup after rollback failed", error=str(e))
                record.warnings.append(str(e))

        record.transition(DeploymentState.FAILED)

    def _discard_release(self, attempt: "_Attempt", activator: Activator) -> None:
        """Remove the failed release unless the current pointer still targets it."""
        release_dir = attempt.release_dir
        if release_dir is None or not release_dir.exists():
            return
        current = activator.current_target()
        if current is not None and current == release_dir.resolve():
            attempt.log.warning("Keeping failed release referenced by current pointer", release_dir=str(release_dir))
            return
        try:
            shutil.rmtree(release_dir)
        except OSError as e:
            attempt.log.warning("Failed to remove failed release", release_dir=str(release_dir), error=str(e))
            attempt.record.warnings.append(f"Failed to remove {release_dir}: {e}")
            return
        attempt.log.info("Removed failed release", release_dir=str(release_dir))


@dataclass
class _Attempt:
    """Mutable state of one deployment attempt."""

    project: ProjectDescriptor
    record: DeploymentRecord
    paths: ReleasePaths
    log: Any
    release_dir: Optional[Path] = None
    previous: Optional[Path] = None
