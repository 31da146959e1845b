"""Release asset lookup through the GitHub releases API."""

from __future__ import annotations

from typing import Dict, Optional

import httpx
import structlog

from release_deployer.core.exceptions import AssetResolutionError
from release_deployer.core.models import ReleaseRequest


def api_headers(token: Optional[str], accept: str) -> Dict[str, str]:
    headers = {"Accept": accept}
    if token:
        headers["Authorization"] = f"token {token}"
    return headers


class AssetResolver:
    """Finds the download URL of a named asset attached to a tagged release."""

    def __init__(
        self,
        client: httpx.Client,
        api_url: str = "https://api.github.com",
        token: Optional[str] = None,
        timeout_seconds: float = 30.0,
        logger=None,
    ):
        self.client = client
        self.api_url = api_url.rstrip("/")
        self.token = token
        self.timeout_seconds = timeout_seconds
        self.logger = (logger or structlog.get_logger()).bind(component="AssetResolver")

    def release_url(self, repository: str, tag: str) -> str:
        return f"{self.api_url}/repos/{repository}/releases/tags/{tag}"

    def fetch_release(self, repository: str, tag: str) -> dict:
        """Return the release JSON for ``tag``."""
        url = self.release_url(repository, tag)
        try:
            resp = self.client.get(
                url,
                headers=api_headers(self.token, "application/vnd.github.v3+json"),
                timeout=self.timeout_seconds,
            )
        except httpx.HTTPError as e:
            raise AssetResolutionError(f"Failed to fetch release info: {e}")

        if not resp.is_success:
            self.logger.warning("Release lookup failed", url=url, status_code=resp.status_code)
            raise AssetResolutionError(
                f"Failed to fetch release info: {resp.status_code} {resp.reason_phrase}"
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise AssetResolutionError(f"Release API returned invalid JSON: {e}")
        if not isinstance(data, dict):
            raise AssetResolutionError("Release API returned an unexpected document")
        return data

    def resolve(self, release: ReleaseRequest, asset_name: str) -> str:
        """Return the API download URL of ``asset_name`` in ``release``."""
        data = self.fetch_release(release.repository_name, release.tag_name)

        for asset in data.get("assets") or []:
            if asset.get("name") == asset_name:
                url = asset.get("url")
                if not url:
                    break
                self.logger.info("Found asset download URL", asset=asset_name, url=url)
                return url

        raise AssetResolutionError(f"Asset {asset_name} not found in release {release.tag_name}")
