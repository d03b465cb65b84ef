"""Services: validate and order repository results, orchestrate workflows."""

import logging
from typing import Any

from pydantic import TypeAdapter, ValidationError

from homelab_cli.errors import RepositoryError, ServiceError
from homelab_cli.models import (
    CloudInitConfig,
    Module,
    Project,
    ProxmoxResource,
    ProxmoxTemplate,
    ResourceType,
    VMSummary,
)
from homelab_cli.proxmox import ProxmoxClient
from homelab_cli.repositories import ModuleFsRepository, ProjectFsRepository

logger = logging.getLogger(__name__)

PROJECT_LIST = TypeAdapter(list[Project])
MODULE_LIST = TypeAdapter(list[Module])
TEMPLATE_LIST = TypeAdapter(list[ProxmoxTemplate])
RESOURCE_LIST = TypeAdapter(list[ProxmoxResource])


def validation_context(error: ValidationError) -> dict[str, Any]:
    """Flatten pydantic errors into ``{"errors": ["loc: msg", ...]}``."""
    return {
        "errors": [
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in error.errors()
        ]
    }


class ProjectService:
    """Project listing backed by the filesystem."""

    def __init__(self, repository: ProjectFsRepository) -> None:
        self.repository = repository

    async def list_projects(self) -> list[Project]:
        """List all projects, sorted by name.

        Raises:
            ServiceError: If the projects directory cannot be scanned.
        """
        try:
            projects = await self.repository.find_all()
        except RepositoryError as e:
            raise ServiceError(f"Failed to retrieve projects: {e.message}", context=e.context) from e

        try:
            validated = PROJECT_LIST.validate_python(projects)
        except ValidationError as e:
            raise ServiceError("Project data validation failed", context=validation_context(e)) from e

        return sorted(validated, key=lambda p: p.name)

    async def find_project(self, name: str) -> Project:
        """Find one project by name.

        Raises:
            ServiceError: If the project does not exist or is not a repository.
        """
        try:
            return await self.repository.find_by_name(name)
        except RepositoryError as e:
            raise ServiceError(e.message, context=e.context) from e


class ModuleService:
    """Module listing backed by the filesystem."""

    def __init__(self, repository: ModuleFsRepository) -> None:
        self.repository = repository

    async def list_modules(self, project_name: str) -> list[Module]:
        """List a project's modules, sorted by name.

        Raises:
            ServiceError: If the project's src directory cannot be scanned.
        """
        try:
            modules = await self.repository.find_by_project_name(project_name)
        except RepositoryError as e:
            raise ServiceError(f"Failed to retrieve modules: {e.message}", context=e.context) from e

        try:
            validated = MODULE_LIST.validate_python(modules)
        except ValidationError as e:
            raise ServiceError("Module data validation failed", context=validation_context(e)) from e

        return sorted(validated, key=lambda m: m.name)


class ProxmoxTemplateService:
    """Template listing."""

    def __init__(self, client: ProxmoxClient) -> None:
        self.client = client

    def list_templates(self) -> list[ProxmoxTemplate]:
        """List templates sorted by VMID."""
        try:
            raw = self.client.list_templates()
        except RepositoryError as e:
            raise ServiceError(
                f"Failed to retrieve templates from Proxmox: {e.message}", context=e.context
            ) from e

        try:
            templates = TEMPLATE_LIST.validate_python(raw)
        except ValidationError as e:
            raise ServiceError("Template data validation failed", context=validation_context(e)) from e

        return sorted(templates, key=lambda t: t.vmid)


class ProxmoxVMService:
    """VM and container lifecycle."""

    def __init__(self, client: ProxmoxClient) -> None:
        self.client = client

    def list_vms(self, resource_type: ResourceType = ResourceType.QEMU) -> list[ProxmoxResource]:
        """List VMs or containers sorted by VMID.

        Args:
            resource_type: Which kind of guest to list.

        Raises:
            ServiceError: On API or validation failure.
        """
        try:
            raw = self.client.list_resources(resource_type)
        except RepositoryError as e:
            raise ServiceError(
                f"Failed to retrieve {resource_type.value} resources from Proxmox: {e.message}",
                context=e.context,
            ) from e

        try:
            resources = RESOURCE_LIST.validate_python(raw)
        except ValidationError as e:
            raise ServiceError("Resource data validation failed", context=validation_context(e)) from e

        return sorted(resources, key=lambda r: r.vmid)

    def resolve_template(self, template_name: str) -> ProxmoxTemplate:
        """Find a template by exact name; the first match wins.

        Raises:
            ServiceError: If no template has that name.
        """
        templates = ProxmoxTemplateService(self.client).list_templates()
        for template in templates:
            if template.name == template_name:
                return template

        raise ServiceError(
            f"Template '{template_name}' not found",
            context={
                "template_name": template_name,
                "available_templates": [t.name for t in templates],
            },
        )

    def find_vm(self, vmid: int) -> ProxmoxResource:
        """Find a VM by ID.

        Raises:
            ServiceError: If no VM has that ID.
        """
        for vm in self.list_vms(ResourceType.QEMU):
            if vm.vmid == vmid:
                return vm
        raise ServiceError(f"VM {vmid} not found", context={"vmid": vmid})

    def create_vm_from_template(self, vm_name: str, template_name: str) -> VMSummary:
        """Clone a template into a new VM and wait for the clone to finish.

        Args:
            vm_name: Name for the new VM.
            template_name: Template to clone.

        Returns:
            The new VM's ID, name and node.

        Raises:
            ServiceError: If any step fails.
        """
        template = self.resolve_template(template_name)

        try:
            new_vmid = self.client.get_next_vmid()
        except RepositoryError as e:
            raise ServiceError("Failed to allocate VMID for new VM", context=e.context) from e

        context = {"new_vmid": new_vmid, "template": template.name, "vm_name": vm_name}
        try:
            upid = self.client.clone_from_template(template.node, template.vmid, new_vmid, vm_name)
        except RepositoryError as e:
            raise ServiceError(f"Failed to create VM from template: {e.message}", context=context) from e

        logger.info("Cloning %s into %s (%s), task %s", template.name, vm_name, new_vmid, upid)
        try:
            self.client.wait_for_task(template.node, upid)
        except RepositoryError as e:
            raise ServiceError(
                f"VM creation timed out or failed: {e.message}",
                context={
                    **context,
                    "task_upid": upid,
                    "hint": "The VM may still be created in the background. Check the Proxmox web UI.",
                },
            ) from e

        return VMSummary(vmid=new_vmid, name=vm_name, node=template.node)

    def delete_vm(self, vmid: int) -> VMSummary:
        """Delete a VM, stopping it first if it is running.

        Raises:
            ServiceError: If the VM is unknown or deletion fails.
        """
        vm = self.find_vm(vmid)
        context = {"vmid": vm.vmid, "name": vm.name, "node": vm.node}

        try:
            if vm.status == "running":
                logger.info("Stopping VM %s before deletion", vmid)
                self.client.wait_for_task(vm.node, self.client.stop_vm(vm.node, vmid))
            self.client.wait_for_task(vm.node, self.client.delete_vm(vm.node, vmid))
        except RepositoryError as e:
            raise ServiceError(f"Failed to delete VM {vmid}: {e.message}", context=context) from e

        return VMSummary(vmid=vm.vmid, name=vm.name, node=vm.node)

    def start_vm(self, vmid: int) -> VMSummary:
        """Start a VM."""
        vm = self.find_vm(vmid)
        try:
            self.client.start_vm(vm.node, vmid)
        except RepositoryError as e:
            raise ServiceError(e.message, context={"vmid": vmid, "name": vm.name, "node": vm.node}) from e
        return VMSummary(vmid=vm.vmid, name=vm.name, node=vm.node)

    def stop_vm(self, vmid: int) -> VMSummary:
        """Stop a VM."""
        vm = self.find_vm(vmid)
        try:
            self.client.stop_vm(vm.node, vmid)
        except RepositoryError as e:
            raise ServiceError(e.message, context={"vmid": vmid, "name": vm.name, "node": vm.node}) from e
        return VMSummary(vmid=vm.vmid, name=vm.name, node=vm.node)

    def configure_cloud_init(self, vmid: int, config: CloudInitConfig) -> None:
        """Apply cloud-init settings to a VM.

        Args:
            vmid: VM to configure.
            config: Cloud-init settings.

        Raises:
            ServiceError: If the settings are invalid, the VM is unknown,
                or the API rejects the update.
        """
        try:
            validated = CloudInitConfig.model_validate(config.model_dump())
        except ValidationError as e:
            raise ServiceError("Invalid cloud-init configuration", context=validation_context(e)) from e

        vm = self.find_vm(vmid)
        try:
            self.client.set_vm_config(vm.node, vmid, validated.to_api_params())
        except RepositoryError as e:
            raise ServiceError(
                f"Failed to configure cloud-init: {e.message}",
                context={"vmid": vmid, "node": vm.node, **e.context},
            ) from e
