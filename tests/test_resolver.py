"""Tests for release asset resolution."""

import httpx
import pytest

from conftest import ASSET, REPO, FakeReleaseHost, release_request
from release_deployer.core.exceptions import AssetResolutionError
from release_deployer.deploy.resolver import AssetResolver


def make_resolver(host: FakeReleaseHost, token=None) -> AssetResolver:
    return AssetResolver(host.client(), api_url=host.api, token=token)


def test_resolves_matching_asset_url(release_host):
    asset_url = release_host.add_release("v1.0.0", b"zip")
    resolver = make_resolver(release_host)

    assert resolver.resolve(release_request("v1.0.0"), ASSET) == asset_url


def test_sends_token_and_accept_headers(release_host):
    release_host.add_release("v1.0.0", b"zip")
    resolver = make_resolver(release_host, token="tok")

    resolver.resolve(release_request("v1.0.0"), ASSET)

    request = release_host.requests[-1]
    assert request.url.path == f"/repos/{REPO}/releases/tags/v1.0.0"
    assert request.headers["Authorization"] == "token tok"
    assert request.headers["Accept"] == "application/vnd.github.v3+json"


def test_no_authorization_header_without_token(release_host):
    release_host.add_release("v1.0.0", b"zip")
    make_resolver(release_host).resolve(release_request("v1.0.0"), ASSET)

    assert "Authorization" not in release_host.requests[-1].headers


def test_missing_asset_raises(release_host):
    release_host.add_release("v1.0.0", b"zip", asset_name="other.zip")

    with pytest.raises(AssetResolutionError, match="Asset site.zip not found in release v1.0.0"):
        make_resolver(release_host).resolve(release_request("v1.0.0"), ASSET)


def test_asset_name_must_match_exactly(release_host):
    release_host.add_release("v1.0.0", b"zip", asset_name="site.zip.sha256")

    with pytest.raises(AssetResolutionError):
        make_resolver(release_host).resolve(release_request("v1.0.0"), ASSET)


def test_non_success_status_raises(release_host):
    with pytest.raises(AssetResolutionError, match="404"):
        make_resolver(release_host).resolve(release_request("v9.9.9"), ASSET)


def test_transport_error_raises():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    resolver = AssetResolver(httpx.Client(transport=httpx.MockTransport(handler)), api_url="https://api.test")
    with pytest.raises(AssetResolutionError):
        resolver.resolve(release_request("v1.0.0"), ASSET)
