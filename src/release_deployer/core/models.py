"""Core data models for Release Deployer."""

import os
import re
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from release_deployer.core.exceptions import InvalidPayloadError

_SAFE_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


class SyncMode(str, Enum):
    """How serving directory copy failures are treated."""

    BEST_EFFORT = "best_effort"  # log per-entry failures, keep copying
    STRICT = "strict"            # first failure aborts the sync


class ProjectDescriptor(BaseModel):
    """A deployable project as declared in the configuration file."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = Field(..., description="Project name, used for directory names")
    github_repo: str = Field(
        ...,
        validation_alias=AliasChoices("github_repo", "githubRepo"),
        description="Repository full name (owner/repo)",
    )
    branch: Optional[str] = Field(None, description="Only deploy releases targeting this branch")
    asset_name: str = Field(
        ...,
        validation_alias=AliasChoices("asset_name", "assetName", "asset"),
        description="Release asset file to deploy",
    )
    web_root: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("web_root", "webRoot"),
        description="Absolute serving directory mirrored from the active release",
    )
    keep_releases: int = Field(
        5,
        ge=1,
        validation_alias=AliasChoices("keep_releases", "keepReleases"),
        description="Number of release directories kept after pruning",
    )
    post_activate: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("post_activate", "postActivate", "postExtract"),
        description="Commands run after the current pointer moves",
    )
    pre_rollback: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("pre_rollback", "preRollback"),
        description="Commands run before restoring the previous release",
    )
    sync_mode: SyncMode = Field(
        SyncMode.BEST_EFFORT,
        validation_alias=AliasChoices("sync_mode", "syncMode"),
    )

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not _SAFE_NAME.match(v):
            raise ValueError(f"Project name must be a single path segment: {v!r}")
        return v

    @field_validator("github_repo")
    @classmethod
    def validate_repo(cls, v: str) -> str:
        owner, _, repo = v.partition("/")
        if not owner or not repo or "/" in repo:
            raise ValueError(f"github_repo must look like owner/repo: {v!r}")
        return v

    @field_validator("web_root")
    @classmethod
    def validate_web_root(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not os.path.isabs(v):
            raise ValueError("webRoot must be an absolute path")
        return v


class ReleaseRequest(BaseModel):
    """Release facts taken from a triggering event."""

    tag_name: str
    zip_url: Optional[str] = None
    is_draft: bool = False
    is_prerelease: bool = False
    repository_name: str
    target_commitish: Optional[str] = None

    @property
    def repo_owner(self) -> str:
        return self.repository_name.split("/", 1)[0]

    @property
    def repo_name(self) -> str:
        return self.repository_name.split("/", 1)[1]

    @classmethod
    def from_webhook(cls, payload: Dict[str, Any]) -> "ReleaseRequest":
        """Build a request from a GitHub ``release`` webhook payload."""
        try:
            release = payload["release"]
            repository = payload["repository"]
            return cls(
                tag_name=release["tag_name"],
                zip_url=release.get("zipball_url"),
                is_draft=bool(release.get("draft", False)),
                is_prerelease=bool(release.get("prerelease", False)),
                repository_name=repository["full_name"],
                target_commitish=release.get("target_commitish"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidPayloadError(f"Malformed release payload: {e}")

    def summary(self) -> Dict[str, Any]:
        """camelCase view returned to webhook callers."""
        return {
            "tagName": self.tag_name,
            "zipUrl": self.zip_url,
            "isDraft": self.is_draft,
            "isPrerelease": self.is_prerelease,
            "repositoryName": self.repository_name,
            "targetCommitish": self.target_commitish,
        }
