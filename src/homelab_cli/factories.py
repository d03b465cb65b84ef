"""Wire repositories into services from configuration."""

from homelab_cli import config as config_module
from homelab_cli.models import Config
from homelab_cli.proxmox import ProxmoxClient
from homelab_cli.repositories import ModuleFsRepository, ProjectFsRepository
from homelab_cli.services import (
    ModuleService,
    ProjectService,
    ProxmoxTemplateService,
    ProxmoxVMService,
)


def create_project_service(config: Config) -> ProjectService:
    """ProjectService over the configured projects directory."""
    return ProjectService(ProjectFsRepository(config.projects_dir))


def create_module_service(config: Config) -> ModuleService:
    """ModuleService over the configured projects directory."""
    return ModuleService(ModuleFsRepository(config.projects_dir))


def create_proxmox_client(config: Config) -> ProxmoxClient:
    """API client from the Proxmox section.

    Raises:
        ServiceError: If the Proxmox settings are incomplete or invalid.
    """
    return ProxmoxClient(config_module.get_proxmox_config(config))


def create_proxmox_vm_service(config: Config) -> ProxmoxVMService:
    """ProxmoxVMService with a configured API client."""
    return ProxmoxVMService(create_proxmox_client(config))


def create_proxmox_template_service(config: Config) -> ProxmoxTemplateService:
    """ProxmoxTemplateService with a configured API client."""
    return ProxmoxTemplateService(create_proxmox_client(config))
