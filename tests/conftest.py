"""
Pytest configuration and fixtures for release deployer tests.
"""

import io
import itertools
import zipfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict

import httpx
import pytest

from release_deployer.core.config import DeployerConfig, Settings
from release_deployer.core.models import ProjectDescriptor, ReleaseRequest
from release_deployer.deploy.manager import DeploymentOrchestrator

SECRET = "test-webhook-secret"
REPO = "owner/repo"
ASSET = "site.zip"


def make_zip(files: Dict[str, bytes]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, data in files.items():
            zf.writestr(name, data)
    return buf.getvalue()


def corrupt_deflated_zip() -> bytes:
    """Deflated archive whose second member has a broken compressed stream."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr("a.txt", b"a" * 1000)
        zf.writestr("b.txt", b"b" * 1000)
    raw = bytearray(buf.getvalue())
    with zipfile.ZipFile(io.BytesIO(bytes(raw))) as zf:
        info = zf.getinfo("b.txt")
    offset = info.header_offset
    name_len = int.from_bytes(raw[offset + 26:offset + 28], "little")
    extra_len = int.from_bytes(raw[offset + 28:offset + 30], "little")
    start = offset + 30 + name_len + extra_len
    raw[start:start + info.compress_size] = b"\xff" * info.compress_size
    return bytes(raw)


class FakeReleaseHost:
    """In-memory release API served through httpx.MockTransport."""

    api = "https://api.github.test"

    def __init__(self):
        self.releases: Dict[str, dict] = {}
        self.assets: Dict[str, bytes] = {}
        self.requests = []

    def add_release(self, tag: str, payload: bytes, asset_name: str = ASSET, repo: str = REPO,
                    target_commitish: str = "main") -> str:
        asset_url = f"{self.api}/repos/{repo}/releases/assets/{len(self.assets) + 1}"
        self.assets[asset_url] = payload
        self.releases[f"/repos/{repo}/releases/tags/{tag}"] = {
            "tag_name": tag,
            "target_commitish": target_commitish,
            "zipball_url": f"{self.api}/repos/{repo}/zipball/{tag}",
            "assets": [
                {"name": "checksums.txt", "url": f"{self.api}/repos/{repo}/releases/assets/999"},
                {"name": asset_name, "url": asset_url},
            ],
        }
        return asset_url

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if url in self.assets:
            return httpx.Response(200, content=self.assets[url])
        release = self.releases.get(request.url.path)
        if release is not None:
            return httpx.Response(200, json=release)
        return httpx.Response(404, json={"message": "Not Found"})

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def release_host() -> FakeReleaseHost:
    return FakeReleaseHost()


@pytest.fixture
def base_dir(tmp_path: Path) -> Path:
    path = tmp_path / "deploy"
    path.mkdir()
    return path


@pytest.fixture
def web_root(tmp_path: Path) -> Path:
    return tmp_path / "www"


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        config_path=str(tmp_path / "config.json"),
        github_api_url=FakeReleaseHost.api,
        download_max_retries=1,
        download_backoff_base=0,
        hook_timeout_seconds=30,
        metrics_enabled=False,
        log_format="console",
    )


def make_project(web_root: Path = None, **overrides) -> ProjectDescriptor:
    data = {
        "name": "site",
        "githubRepo": REPO,
        "assetName": ASSET,
        "webRoot": str(web_root) if web_root else None,
        "keepReleases": 3,
    }
    data.update(overrides)
    return ProjectDescriptor.model_validate(data)


@pytest.fixture
def project(web_root: Path) -> ProjectDescriptor:
    return make_project(web_root)


def make_config(base_dir: Path, *projects: ProjectDescriptor, token: str = None) -> DeployerConfig:
    return DeployerConfig(
        projects={p.name: p for p in projects},
        webhook_secret=SECRET,
        github_token=token,
        base_dir=str(base_dir),
    )


def ticking_clock(start: datetime = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)):
    """Clock advancing one second per call so staged names are ordered."""
    counter = itertools.count()
    return lambda: start + timedelta(seconds=next(counter))


@pytest.fixture
def make_orchestrator(base_dir, settings, release_host):
    created = []

    def _make(*projects: ProjectDescriptor, **kwargs) -> DeploymentOrchestrator:
        orchestrator = DeploymentOrchestrator(
            make_config(base_dir, *projects),
            settings,
            http_client=release_host.client(),
            clock=ticking_clock(),
            **kwargs,
        )
        created.append(orchestrator)
        return orchestrator

    yield _make
    for orchestrator in created:
        orchestrator.client.close()


def release_request(tag: str, repo: str = REPO, target_commitish: str = "main") -> ReleaseRequest:
    return ReleaseRequest(tag_name=tag, repository_name=repo, target_commitish=target_commitish)
