"""Data models for homelab-cli."""

import ipaddress
import re
from enum import Enum
from pathlib import Path
from typing import Any, Literal
from urllib.parse import quote

from pydantic import BaseModel, Field, field_validator

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)
IPCONFIG_PATTERN = re.compile(
    r"^ip=\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}/\d{1,2}(,gw=\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3})?$"
)
LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


class GitRecord(BaseModel):
    """A directory discovered as the root of a git repository."""

    name: str = Field(min_length=1)
    git_repo_url: str = Field(default="", alias="gitRepoUrl")

    model_config = {"populate_by_name": True}


class Project(GitRecord):
    """A git repository sitting directly under the projects directory."""


class Module(GitRecord):
    """A git repository found anywhere under a project's src directory."""


class DiscoveredEntry(BaseModel):
    """Intermediate scan result: one repository root and its display name."""

    path: Path
    name: str

    model_config = {"arbitrary_types_allowed": True, "frozen": True}


class ResourceType(str, Enum):
    """Kind of Proxmox guest."""

    QEMU = "qemu"
    LXC = "lxc"


class ProxmoxTemplate(BaseModel):
    """A VM template available for cloning."""

    vmid: int = Field(gt=0)
    name: str = Field(min_length=1)
    node: str = Field(min_length=1)
    template: Literal[1] = 1


class ProxmoxResource(BaseModel):
    """A VM or LXC container as listed by the cluster."""

    vmid: int = Field(gt=0)
    name: str = Field(min_length=1)
    node: str = Field(min_length=1)
    status: str = Field(min_length=1)
    ipv4_address: str | None = Field(default=None, alias="ipv4Address")

    model_config = {"populate_by_name": True}

    @field_validator("ipv4_address")
    @classmethod
    def validate_ipv4(cls, value: str | None) -> str | None:
        if value is None:
            return None
        ipaddress.IPv4Address(value)
        return value


class VMSummary(BaseModel):
    """Identity of a VM touched by a lifecycle operation."""

    vmid: int
    name: str
    node: str


class CloudInitConfig(BaseModel):
    """Cloud-init parameters applied to a VM."""

    user: str = Field(min_length=1)
    password: str = ""
    ssh_keys: str = ""
    ipconfig0: str = "ip=dhcp"
    upgrade: bool = False

    @field_validator("ipconfig0")
    @classmethod
    def validate_ipconfig(cls, value: str) -> str:
        if value in ("dhcp", "ip=dhcp"):
            return value
        if not IPCONFIG_PATTERN.match(value):
            raise ValueError('Must be "dhcp" or "ip=X.X.X.X/YY[,gw=X.X.X.X]"')
        return value

    def to_api_params(self) -> dict[str, str | int]:
        """Build the Proxmox VM config parameters for this cloud-init setup.

        Proxmox expects ``sshkeys`` percent-encoded the way JavaScript's
        ``encodeURIComponent`` does it. Empty password and keys are omitted
        so existing values on the VM are left untouched.

        Returns:
            Mapping suitable for ``PUT /nodes/{node}/qemu/{vmid}/config``.
        """
        params: dict[str, str | int] = {
            "ciuser": self.user,
            "ipconfig0": self.ipconfig0,
            "ciupgrade": 1 if self.upgrade else 0,
        }
        if self.password:
            params["cipassword"] = self.password
        if self.ssh_keys:
            params["sshkeys"] = quote(self.ssh_keys, safe="-_.!~*'()")
        return params


class OutputConfig(BaseModel):
    """Configuration for output formatting."""

    color: bool = True


class ProxmoxSettings(BaseModel):
    """Proxmox connection settings exactly as read from file and environment.

    Values are kept unchecked so a broken Proxmox section cannot stop
    project or module commands. ``ProxmoxConfig`` is the validated form
    used by the API client.
    """

    host: Any = None
    port: Any = 8006
    user: Any = None
    realm: Any = None
    token_key: Any = None
    token_secret: Any = None
    verify_ssl: Any = True


class ProxmoxConfig(BaseModel):
    """Validated Proxmox API connection settings."""

    host: str = Field(min_length=1)
    port: int = Field(default=8006, gt=0)
    user: str = Field(min_length=1)
    realm: str = Field(min_length=1)
    token_key: str = Field(min_length=1)
    token_secret: str = Field(min_length=1)
    verify_ssl: bool = True

    @field_validator("token_secret")
    @classmethod
    def validate_token_secret(cls, value: str) -> str:
        if not UUID_PATTERN.match(value):
            raise ValueError("token_secret must be a valid UUID")
        return value

    @property
    def token_id(self) -> str:
        """Token identifier in ``user@realm!key`` form."""
        return f"{self.user}@{self.realm}!{self.token_key}"

    @property
    def base_url(self) -> str:
        """Root URL of the JSON API."""
        return f"https://{self.host}:{self.port}/api2/json"


class Config(BaseModel):
    """Application configuration loaded from YAML and environment."""

    projects_dir: Path = Field(default_factory=lambda: Path.home() / "projects")
    log_level: str = "warning"
    output: OutputConfig = Field(default_factory=OutputConfig)
    proxmox: ProxmoxSettings = Field(default_factory=ProxmoxSettings)

    model_config = {"arbitrary_types_allowed": True}

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.lower()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of: {', '.join(LOG_LEVELS)}")
        return level
