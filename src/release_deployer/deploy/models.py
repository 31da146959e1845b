"""Models describing one deployment attempt."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from release_deployer.core.exceptions import DeployerError


def _now() -> datetime:
    return datetime.now(timezone.utc)


class DeploymentState(str, Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    DOWNLOADING = "downloading"
    EXTRACTING = "extracting"
    ACTIVATING = "activating"
    HOOKING = "hooking"
    RETAINING = "retaining"
    DONE = "done"
    ROLLING_BACK = "rolling_back"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (DeploymentState.DONE, DeploymentState.FAILED)


@dataclass
class StageResult:
    """Outcome of one pipeline stage."""

    state: DeploymentState
    ok: bool
    value: Any = None
    error: Optional[DeployerError] = None

    @classmethod
    def success(cls, state: DeploymentState, value: Any = None) -> "StageResult":
        return cls(state=state, ok=True, value=value)

    @classmethod
    def failure(cls, state: DeploymentState, error: DeployerError) -> "StageResult":
        return cls(state=state, ok=False, error=error)


class DeploymentRecord(BaseModel):
    deploymentId: str = Field(default_factory=lambda: uuid.uuid4().hex)
    project: str
    tag: str
    state: DeploymentState = DeploymentState.IDLE
    createdAt: datetime = Field(default_factory=_now)
    updatedAt: datetime = Field(default_factory=_now)
    release_path: Optional[str] = None
    previous_release_path: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    failed_state: Optional[DeploymentState] = None
    rollback_error: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)
    removed_releases: List[str] = Field(default_factory=list)
    history: List[DeploymentState] = Field(default_factory=lambda: [DeploymentState.IDLE])

    @property
    def succeeded(self) -> bool:
        return self.state == DeploymentState.DONE

    @property
    def rolled_back(self) -> bool:
        return DeploymentState.ROLLING_BACK in self.history

    def transition(self, state: DeploymentState) -> None:
        if self.state.terminal:
            raise ValueError(f"Deployment {self.deploymentId} already finished in state {self.state.value}")
        self.state = state
        self.updatedAt = _now()
        self.history.append(state)

    def record_failure(self, result: StageResult) -> None:
        self.failed_state = result.state
        self.error = str(result.error)
        self.error_type = result.error.__class__.__name__

    def as_details(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
