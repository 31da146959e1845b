"""Tests for settings and project configuration loading."""

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from release_deployer.core.config import Settings, load_config
from release_deployer.core.exceptions import ConfigurationError
from release_deployer.core.models import ProjectDescriptor, SyncMode

ORIGINAL_FORMAT = {
    "projects": {
        "blog": {
            "name": "blog",
            "githubRepo": "acme/blog",
            "webRoot": "/var/www/blog",
            "asset": "dist.zip",
            "keepReleases": 2,
            "branch": "main",
            "postExtract": ["echo {{releasePath}}"],
            "preRollback": ["echo {{webRoot}}"],
        }
    },
    "webhookSecret": "s3cret",
    "githubToken": "ghp_x",
    "baseDir": "/srv/deploy",
}


def write(tmp_path: Path, name: str, text: str) -> Settings:
    path = tmp_path / name
    path.write_text(text)
    return Settings(config_path=str(path))


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ("WEBHOOK_SECRET", "GITHUB_TOKEN", "BASE_DIR", "CONFIG_PATH"):
        monkeypatch.delenv(var, raising=False)


def test_loads_original_json_format(tmp_path: Path):
    config = load_config(write(tmp_path, "config.json", json.dumps(ORIGINAL_FORMAT)))

    project = config.projects["blog"]
    assert project.github_repo == "acme/blog"
    assert project.asset_name == "dist.zip"
    assert project.web_root == "/var/www/blog"
    assert project.keep_releases == 2
    assert project.post_activate == ["echo {{releasePath}}"]
    assert project.pre_rollback == ["echo {{webRoot}}"]
    assert project.sync_mode == SyncMode.BEST_EFFORT
    assert config.webhook_secret == "s3cret"
    assert config.github_token == "ghp_x"
    assert config.base_dir == "/srv/deploy"
    assert config.find_project("acme/blog") is project
    assert config.find_project("acme/other") is None


def test_loads_yaml_and_defaults_name_from_key(tmp_path: Path):
    text = """
webhook_secret: s3cret
base_dir: /srv/deploy
projects:
  docs:
    github_repo: acme/docs
    asset_name: docs.zip
    sync_mode: strict
"""
    config = load_config(write(tmp_path, "config.yaml", text))

    docs = config.get_project("docs")
    assert docs.name == "docs"
    assert docs.keep_releases == 5
    assert docs.web_root is None
    assert docs.sync_mode == SyncMode.STRICT


def test_environment_overrides_file(tmp_path: Path, monkeypatch):
    path = tmp_path / "config.json"
    path.write_text(json.dumps(ORIGINAL_FORMAT))
    monkeypatch.setenv("WEBHOOK_SECRET", "from-env")
    monkeypatch.setenv("BASE_DIR", "/elsewhere")

    config = load_config(Settings(config_path=str(path)))

    assert config.webhook_secret == "from-env"
    assert config.base_dir == "/elsewhere"
    assert config.github_token == "ghp_x"


def test_missing_file_is_configuration_error(tmp_path: Path):
    with pytest.raises(ConfigurationError, match="Failed to load config"):
        load_config(Settings(config_path=str(tmp_path / "missing.json")))


def test_missing_secret_is_configuration_error(tmp_path: Path):
    data = dict(ORIGINAL_FORMAT)
    del data["webhookSecret"]
    with pytest.raises(ConfigurationError):
        load_config(write(tmp_path, "config.json", json.dumps(data)))


def test_relative_web_root_is_rejected():
    with pytest.raises(ValidationError, match="absolute"):
        ProjectDescriptor.model_validate(
            {"name": "x", "githubRepo": "a/b", "assetName": "x.zip", "webRoot": "relative/www"}
        )


def test_keep_releases_must_be_positive():
    with pytest.raises(ValidationError):
        ProjectDescriptor.model_validate(
            {"name": "x", "githubRepo": "a/b", "assetName": "x.zip", "keepReleases": 0}
        )


def test_project_descriptor_is_immutable():
    project = ProjectDescriptor.model_validate({"name": "x", "githubRepo": "a/b", "assetName": "x.zip"})
    with pytest.raises(ValidationError):
        project.keep_releases = 9


def test_settings_reject_unknown_log_format():
    with pytest.raises(ValidationError):
        Settings(log_format="xml")
