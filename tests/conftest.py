"""Shared test fixtures."""

import subprocess
from collections.abc import Callable
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from homelab_cli.models import Config, OutputConfig, ProxmoxConfig, ProxmoxSettings

TOKEN_SECRET = "12345678-1234-1234-1234-123456789abc"


def init_repo(path: Path, remote: str | None = None) -> Path:
    """Create a git repository, optionally with an origin remote."""
    path.mkdir(parents=True, exist_ok=True)
    subprocess.run(["git", "init"], cwd=path, capture_output=True, check=True)
    if remote:
        subprocess.run(
            ["git", "remote", "add", "origin", remote],
            cwd=path,
            capture_output=True,
            check=True,
        )
    return path


@pytest.fixture
def make_repo() -> Callable[..., Path]:
    """Factory creating git repositories at arbitrary paths."""
    return init_repo


@pytest.fixture
def projects_dir(tmp_path: Path) -> Path:
    """A projects directory with a mix of repos, plain dirs and hidden dirs."""
    base = tmp_path / "projects"
    base.mkdir()

    init_repo(base / "alpha", "git@github.com:user/alpha.git")
    init_repo(base / "beta")
    (base / "notes").mkdir()
    (base / "README.md").write_text("not a project")
    init_repo(base / ".hidden", "git@github.com:user/hidden.git")

    return base


@pytest.fixture
def module_tree(tmp_path: Path) -> Path:
    """A project src directory with modules at several depths."""
    src = tmp_path / "projects" / "sflab" / "src"
    src.mkdir(parents=True)

    init_repo(src / "top", "git@github.com:user/top.git")
    init_repo(src / "x" / "y")
    init_repo(src / "p" / "q" / "r", "https://github.com/user/r.git")
    init_repo(src / "top" / "vendored", "git@github.com:other/vendored.git")
    (src / "empty" / "deeper").mkdir(parents=True)
    init_repo(src / ".cache" / "hidden")

    return src


@pytest.fixture
def sample_config(tmp_path: Path) -> Config:
    """Configuration pointing at a temporary projects directory."""
    return Config(
        projects_dir=tmp_path / "projects",
        log_level="warning",
        output=OutputConfig(color=False),
        proxmox=ProxmoxSettings(
            host="pve.example.lan",
            user="root",
            realm="pam",
            token_key="homelab",
            token_secret=TOKEN_SECRET,
        ),
    )


@pytest.fixture
def proxmox_config() -> ProxmoxConfig:
    """Validated Proxmox connection settings."""
    return ProxmoxConfig(
        host="pve.example.lan",
        port=8006,
        user="root",
        realm="pam",
        token_key="homelab",
        token_secret=TOKEN_SECRET,
        verify_ssl=False,
    )


def api_response(data, status_code: int = 200) -> MagicMock:
    """Fake requests.Response carrying a Proxmox ``{"data": ...}`` payload."""
    response = MagicMock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.json.return_value = {"data": data}
    return response


@pytest.fixture
def sample_config_yaml(tmp_path: Path) -> Path:
    """Create a sample config YAML file."""
    config_path = tmp_path / "config.yml"
    config_path.write_text(
        f"""\
projects_dir: {tmp_path / "projects"}

log_level: info

output:
  color: false

proxmox:
  host: pve.example.lan
  port: 8006
  user: root
  realm: pam
  token_key: homelab
  token_secret: {TOKEN_SECRET}
  verify_ssl: false
"""
    )
    return config_path


@pytest.fixture
def make_response() -> Callable[..., MagicMock]:
    """Factory for fake Proxmox API responses."""
    return api_response
