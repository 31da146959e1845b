"""Deployment pipeline components."""

from .models import DeploymentRecord, DeploymentState, StageResult
from .manager import DeploymentOrchestrator
from .fetch import ReleaseFetcher, sanitize_archive, extract_archive
from .locks import ProjectLocks

__all__ = [
    "DeploymentOrchestrator",
    "DeploymentRecord",
    "DeploymentState",
    "StageResult",
    "ReleaseFetcher",
    "sanitize_archive",
    "extract_archive",
    "ProjectLocks",
]
