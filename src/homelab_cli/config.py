"""Configuration management for homelab-cli."""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from homelab_cli.errors import ServiceError
from homelab_cli.models import Config, OutputConfig, ProxmoxConfig, ProxmoxSettings

DEFAULT_CONFIG_LOCATIONS = [
    Path("./homelab.yml"),
    Path("./homelab.yaml"),
    Path.home() / ".config" / "homelab" / "config.yml",
    Path.home() / ".config" / "homelab" / "config.yaml",
]

DEFAULT_CONFIG_TEMPLATE = """\
# Directory holding one git repository per project
projects_dir: ~/projects

# Diagnostic log level: debug, info, warning, error, critical
log_level: warning

# Output settings
output:
  color: true

# Proxmox VE API access (API token authentication)
proxmox:
  host: proxmox.example.lan
  port: 8006
  user: root
  realm: pam
  token_key: homelab
  token_secret: 00000000-0000-0000-0000-000000000000
  verify_ssl: true
"""

# env var -> (section, key); section None means top level
ENV_OVERRIDES: dict[str, tuple[str | None, str]] = {
    "PROJECTS_DIR": (None, "projects_dir"),
    "HOMELAB_LOG_LEVEL": (None, "log_level"),
    "HOMELAB_COLOR_OUTPUT": ("output", "color"),
    "PROXMOX_HOST": ("proxmox", "host"),
    "PROXMOX_PORT": ("proxmox", "port"),
    "PROXMOX_USER": ("proxmox", "user"),
    "PROXMOX_REALM": ("proxmox", "realm"),
    "PROXMOX_TOKEN_KEY": ("proxmox", "token_key"),
    "PROXMOX_TOKEN_SECRET": ("proxmox", "token_secret"),
    "PROXMOX_REJECT_UNAUTHORIZED": ("proxmox", "verify_ssl"),
}

BOOL_KEYS = {"color", "verify_ssl"}

SECTIONS = ("output", "proxmox")


def find_config_path() -> Path | None:
    """Locate the homelab config file.

    ``homelab.yml``/``homelab.yaml`` in the working directory win over
    ``~/.config/homelab/config.yml`` and ``config.yaml``.

    Returns:
        First existing candidate, or None when no file is present.
    """
    for path in DEFAULT_CONFIG_LOCATIONS:
        expanded = path.expanduser()
        if expanded.exists():
            return expanded
    return None


def load_config(config_path: Path | None = None, env: dict[str, str] | None = None) -> Config:
    """Load configuration from YAML file and environment.

    A missing default config file is fine: defaults and environment
    apply. An explicitly requested file must exist.

    Args:
        config_path: Explicit path to config. If None, searches default locations.
        env: Environment mapping, defaults to os.environ.

    Returns:
        Validated Config object with defaults applied.

    Raises:
        FileNotFoundError: If an explicit config path does not exist.
        ValueError: If the config file or environment holds invalid values.
    """
    if config_path is not None:
        raw = read_config_file(config_path)
    else:
        found = find_config_path()
        raw = read_config_file(found) if found else {}

    raw = apply_env_overrides(raw, os.environ if env is None else env)
    config = parse_raw_config(raw)
    return expand_paths(config)


def read_config_file(config_path: Path) -> dict[str, Any]:
    """Read a YAML config file into a dictionary.

    Raises:
        FileNotFoundError: If file does not exist.
        ValueError: If the YAML is invalid, or the file or one of its
            sections is not a mapping.
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    try:
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(raw, dict):
        raise ValueError(f"Config file must contain a mapping: {config_path}")

    for section in SECTIONS:
        if raw.get(section) is not None and not isinstance(raw[section], dict):
            raise ValueError(f"Config section '{section}' must be a mapping: {config_path}")
    return raw


def parse_bool(value: str) -> bool:
    """Interpret an environment string as a boolean."""
    return value.strip().lower() in ("1", "true", "yes", "on")


def apply_env_overrides(raw: dict[str, Any], env: Any) -> dict[str, Any]:
    """Overlay environment variables onto raw config values.

    Args:
        raw: Dictionary from YAML parsing.
        env: Environment mapping.

    Returns:
        New dictionary with overrides applied; empty variables are ignored.
    """
    merged: dict[str, Any] = {**raw}
    for section in SECTIONS:
        merged[section] = dict(merged.get(section) or {})

    for env_key, (section, key) in ENV_OVERRIDES.items():
        value = env.get(env_key)
        if not value:
            continue
        parsed: Any = parse_bool(value) if key in BOOL_KEYS else value
        if section is None:
            merged[key] = parsed
        else:
            merged[section][key] = parsed

    return merged


def parse_raw_config(raw: dict[str, Any]) -> Config:
    """Parse raw dictionary into Config object.

    Args:
        raw: Dictionary from YAML parsing and environment.

    Returns:
        Config object with nested models populated.

    Raises:
        ValueError: If a value fails validation.
    """
    try:
        kwargs: dict[str, Any] = {
            "output": OutputConfig(**(raw.get("output") or {})),
            "proxmox": ProxmoxSettings(**(raw.get("proxmox") or {})),
        }
        if raw.get("projects_dir"):
            kwargs["projects_dir"] = Path(raw["projects_dir"])
        if raw.get("log_level"):
            kwargs["log_level"] = raw["log_level"]
        return Config(**kwargs)
    except ValidationError as e:
        raise ValueError(f"Invalid configuration: {e}") from e


def expand_paths(config: Config) -> Config:
    """Expand ~ and resolve the projects directory to an absolute path.

    Args:
        config: Config with potentially unexpanded paths.

    Returns:
        Config with all paths expanded and resolved.
    """
    return config.model_copy(
        update={"projects_dir": config.projects_dir.expanduser().resolve()}
    )


def get_proxmox_config(config: Config) -> ProxmoxConfig:
    """Validate the Proxmox section for use by the API client.

    Args:
        config: Loaded application config.

    Returns:
        Validated Proxmox settings.

    Raises:
        ServiceError: Naming every missing or invalid field.
    """
    settings = config.proxmox.model_dump(exclude_none=True)
    try:
        return ProxmoxConfig(**settings)
    except ValidationError as e:
        fields = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
        raise ServiceError(
            f"Invalid Proxmox configuration: {', '.join(fields)}",
            context={"errors": [f"{err['loc'][0]}: {err['msg']}" for err in e.errors() if err["loc"]]},
        ) from e


def create_default_config(output_path: Path) -> None:
    """Write the commented homelab config template.

    Missing parent directories (usually ``~/.config/homelab``) are created.

    Args:
        output_path: Destination, ``~`` allowed.

    Raises:
        FileExistsError: If a file is already there; it is never overwritten.
    """
    output_path = output_path.expanduser().resolve()

    if output_path.exists():
        raise FileExistsError(f"Config file already exists: {output_path}")

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(DEFAULT_CONFIG_TEMPLATE)
