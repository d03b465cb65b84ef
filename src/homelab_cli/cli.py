"""homelab CLI."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Annotated, Any

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.prompt import Prompt

from homelab_cli import config as config_module
from homelab_cli import factories, launcher
from homelab_cli.errors import HomelabError
from homelab_cli.models import LOG_LEVELS, CloudInitConfig, Config, ResourceType, VMSummary
from homelab_cli.reporter import Reporter, records_to_json

app = typer.Typer(
    name="homelab",
    help="Manage homelab projects, modules and Proxmox guests",
    no_args_is_help=True,
)
project_app = typer.Typer(help="Projects under the projects directory", no_args_is_help=True)
module_app = typer.Typer(help="Modules inside a project's src directory", no_args_is_help=True)
proxmox_app = typer.Typer(help="Proxmox VE host management", no_args_is_help=True)
vm_app = typer.Typer(help="Proxmox virtual machines", no_args_is_help=True)
container_app = typer.Typer(help="Proxmox LXC containers", no_args_is_help=True)
template_app = typer.Typer(help="Proxmox VM templates", no_args_is_help=True)
config_app = typer.Typer(help="Configuration file", no_args_is_help=True)

app.add_typer(project_app, name="project")
app.add_typer(module_app, name="module")
app.add_typer(proxmox_app, name="proxmox")
app.add_typer(config_app, name="config")
proxmox_app.add_typer(vm_app, name="vm")
proxmox_app.add_typer(container_app, name="container")
proxmox_app.add_typer(template_app, name="template")

console = Console()
err_console = Console(stderr=True)

JsonOption = Annotated[bool, typer.Option("--json", help="Output results as JSON")]


def configure_logging(level: str) -> None:
    """Send homelab_cli diagnostics to stderr through Rich.

    Args:
        level: Log level name, e.g. "debug" or "warning".
    """
    logger = logging.getLogger("homelab_cli")
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)
    logger.addHandler(RichHandler(console=err_console, show_path=False))
    logger.setLevel(level.upper())


def get_config(ctx: typer.Context) -> Config:
    """Config loaded by the root callback."""
    return ctx.ensure_object(dict)["config"]


def fail(message: str, json_output: bool = False) -> typer.Exit:
    """Report an error and build the exit to raise.

    Args:
        message: Error description.
        json_output: Emit ``{"error": message}`` instead of styled text.

    Returns:
        typer.Exit with code 1, to be raised by the caller.
    """
    if json_output:
        print(json.dumps({"error": message}))
    else:
        console.print(f"[red]Error:[/] {message}")
    return typer.Exit(1)


def reporter_for(config: Config) -> Reporter:
    return Reporter(console, config.output)


def resolve_project(project_name: str | None, config: Config, json_output: bool = False) -> str:
    """Use the given project name or detect it from the working directory."""
    if project_name:
        return project_name

    detected = launcher.detect_current_project(Path.cwd(), config.projects_dir)
    if not detected:
        raise fail(
            "Could not detect current project. Please provide a project name "
            "or run the command from within a project directory.",
            json_output,
        )
    return detected


@app.callback()
def main(
    ctx: typer.Context,
    config_path: Annotated[
        Path | None,
        typer.Option("-c", "--config", help="Path to config file"),
    ] = None,
    debug: Annotated[
        bool,
        typer.Option("--debug", help="Enable debug logging"),
    ] = False,
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", help=f"Log level ({', '.join(LOG_LEVELS)})"),
    ] = None,
) -> None:
    """Manage homelab projects, modules and Proxmox guests."""
    if ctx.resilient_parsing:
        return

    try:
        config = config_module.load_config(config_path)
    except (FileNotFoundError, ValueError) as e:
        raise fail(str(e)) from e

    level = log_level or ("debug" if debug else config.log_level)
    if level.lower() not in LOG_LEVELS:
        raise fail(f"Unknown log level: {level}")
    configure_logging(level)

    console.no_color = not config.output.color
    ctx.ensure_object(dict)["config"] = config


# --- projects -------------------------------------------------------------


@project_app.command("list")
def project_list(ctx: typer.Context, json_output: JsonOption = False) -> None:
    """List all projects found in the projects directory."""
    config = get_config(ctx)
    service = factories.create_project_service(config)

    try:
        projects = asyncio.run(service.list_projects())
    except HomelabError as e:
        raise fail(f"Failed to list projects: {e.message}", json_output) from e

    if json_output:
        print(records_to_json(projects))
        return

    reporter_for(config).display_git_records(projects, "Projects", "No projects found.")


@project_app.command("show")
def project_show(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Project directory name")],
    json_output: JsonOption = False,
) -> None:
    """Show a single project."""
    config = get_config(ctx)
    service = factories.create_project_service(config)

    try:
        project = asyncio.run(service.find_project(name))
    except HomelabError as e:
        raise fail(e.message, json_output) from e

    if json_output:
        print(json.dumps(project.model_dump(by_alias=True), indent=2))
        return

    reporter_for(config).display_git_records([project], "Project", "")


@project_app.command("vscode")
def project_vscode(
    ctx: typer.Context,
    project_name: Annotated[
        str | None,
        typer.Argument(help="Project name (defaults to current project)"),
    ] = None,
    workspace_name: Annotated[
        str | None,
        typer.Argument(help="Workspace file name without .code-workspace"),
    ] = None,
) -> None:
    """Open a project or one of its workspaces in Visual Studio Code."""
    config = get_config(ctx)
    project = resolve_project(project_name, config)

    target = f"workspace '{workspace_name}'" if workspace_name else "project"
    console.print(f"Opening {target} in VS Code...")

    try:
        launcher.open_vscode(launcher.CommandExecutor(), config.projects_dir, project, workspace_name)
    except HomelabError as e:
        raise fail(e.message) from e

    console.print("[green]VS Code opened successfully.[/]")


@project_app.command("zellij")
def project_zellij(
    ctx: typer.Context,
    project_name: Annotated[
        str | None,
        typer.Argument(help="Project name (defaults to current project)"),
    ] = None,
    config_name: Annotated[
        str | None,
        typer.Argument(help="Zellij layout name without .kdl (defaults to current directory name)"),
    ] = None,
) -> None:
    """Open or attach a Zellij session for a project."""
    config = get_config(ctx)
    project = resolve_project(project_name, config)
    session = config_name or Path.cwd().name
    executor = launcher.CommandExecutor()

    exists = launcher.zellij_session_exists(executor, session)
    if exists:
        console.print(f"Attaching to existing Zellij session '{session}'...")
    else:
        console.print(f"Opening new Zellij session '{session}' for project '{project}'...")

    try:
        launcher.open_zellij(executor, config.projects_dir, project, session, exists)
    except HomelabError as e:
        raise fail(e.message) from e

    console.print("Zellij session closed.")


# --- modules --------------------------------------------------------------


@module_app.command("list")
def module_list(
    ctx: typer.Context,
    project_name: Annotated[
        str | None,
        typer.Argument(help="Project to list modules for (defaults to current project)"),
    ] = None,
    json_output: JsonOption = False,
) -> None:
    """List all modules of a project."""
    config = get_config(ctx)
    project = resolve_project(project_name, config, json_output)
    service = factories.create_module_service(config)

    try:
        modules = asyncio.run(service.list_modules(project))
    except HomelabError as e:
        raise fail(f"Failed to list modules: {e.message}", json_output) from e

    if json_output:
        print(records_to_json(modules))
        return

    reporter_for(config).display_git_records(
        modules, f"Modules of {project}", f"No modules found for project '{project}'."
    )


# --- proxmox --------------------------------------------------------------


def list_guests(ctx: typer.Context, resource_type: ResourceType, json_output: bool) -> None:
    config = get_config(ctx)
    label = "VMs" if resource_type == ResourceType.QEMU else "containers"

    try:
        service = factories.create_proxmox_vm_service(config)
        resources = service.list_vms(resource_type)
    except HomelabError as e:
        raise fail(f"Failed to list {label}: {e.message}", json_output) from e

    if json_output:
        print(records_to_json(resources))
        return

    reporter_for(config).display_resources(resources, label.capitalize(), f"No {label} found")


@vm_app.command("list")
def vm_list(ctx: typer.Context, json_output: JsonOption = False) -> None:
    """List all Proxmox VMs (non-templates)."""
    list_guests(ctx, ResourceType.QEMU, json_output)


@container_app.command("list")
def container_list(ctx: typer.Context, json_output: JsonOption = False) -> None:
    """List all Proxmox LXC containers."""
    list_guests(ctx, ResourceType.LXC, json_output)


@template_app.command("list")
def template_list(ctx: typer.Context, json_output: JsonOption = False) -> None:
    """List all Proxmox VM templates."""
    config = get_config(ctx)

    try:
        service = factories.create_proxmox_template_service(config)
        templates = service.list_templates()
    except HomelabError as e:
        raise fail(f"Failed to list templates: {e.message}", json_output) from e

    if json_output:
        print(records_to_json(templates))
        return

    reporter_for(config).display_templates(templates)


@vm_app.command("create")
def vm_create(
    ctx: typer.Context,
    template_name: Annotated[str, typer.Argument(help="Name of the template to clone from")],
    vm_name: Annotated[str, typer.Argument(help="Name for the new VM")],
    json_output: JsonOption = False,
) -> None:
    """Create a new VM from a template."""
    config = get_config(ctx)

    if not json_output:
        console.print(f"Creating VM '{vm_name}' from template '{template_name}'...")

    try:
        service = factories.create_proxmox_vm_service(config)
        vm = service.create_vm_from_template(vm_name, template_name)
    except HomelabError as e:
        raise fail(f"Failed to create VM: {e.message}", json_output) from e

    if json_output:
        print(json.dumps(vm.model_dump(), indent=2))
        return

    console.print(f"[green]Successfully created VM {vm.vmid} '{vm.name}' on node '{vm.node}'[/]")


def parse_vmid_selection(answer: str, available: set[int]) -> list[int]:
    """Parse a comma/space separated VMID selection, keeping known IDs in order."""
    selected: list[int] = []
    for token in answer.replace(",", " ").split():
        if token.isdigit() and int(token) in available and int(token) not in selected:
            selected.append(int(token))
    return selected


@vm_app.command("delete")
def vm_delete(
    ctx: typer.Context,
    vmids: Annotated[
        list[int] | None,
        typer.Argument(help="VM IDs to delete (prompts for a selection if omitted)"),
    ] = None,
    force: Annotated[
        bool,
        typer.Option("-f", "--force", help="Skip confirmation prompts"),
    ] = False,
    json_output: JsonOption = False,
) -> None:
    """Delete one or more Proxmox VMs."""
    config = get_config(ctx)

    try:
        service = factories.create_proxmox_vm_service(config)
        all_vms = service.list_vms(ResourceType.QEMU)
    except HomelabError as e:
        raise fail(f"Failed to list VMs: {e.message}", json_output) from e

    requested = list(dict.fromkeys(vmids or []))
    if not requested:
        if force:
            raise fail("Force mode requires explicit VM IDs", json_output)
        if not all_vms:
            if not json_output:
                console.print("No VMs available to delete")
            return
        reporter_for(config).display_vm_selection(all_vms)
        answer = Prompt.ask("Select VMs to delete (comma separated VMIDs)", console=console, default="")
        requested = parse_vmid_selection(answer, {vm.vmid for vm in all_vms})
        if not requested:
            console.print("No VMs selected")
            return

    by_id = {vm.vmid: vm for vm in all_vms}
    missing = [vmid for vmid in requested if vmid not in by_id]
    if missing:
        if json_output:
            print(json.dumps({"deleted": [], "failed": [{"vmid": v, "error": "VM not found"} for v in missing]}))
            raise typer.Exit(1)
        plural = "s" if len(missing) > 1 else ""
        ids = ", ".join(str(v) for v in missing)
        raise fail(f"VM{plural} {ids} not found. Use 'homelab proxmox vm list' to see available VMs.")

    targets = [by_id[vmid] for vmid in requested]

    if not force and not json_output:
        console.print("\nThe following VMs will be deleted:\n")
        reporter_for(config).display_vm_selection(targets)
        console.print(
            "\n[yellow]WARNING:[/] This action cannot be undone. "
            "All VM data will be permanently deleted.\n"
        )
        question = "Are you sure you want to delete " + ("this VM?" if len(targets) == 1 else "these VMs?")
        if not typer.confirm(question, default=False):
            console.print("Deletion cancelled")
            return

    deleted: list[VMSummary] = []
    failed: list[tuple[int, str]] = []
    for index, vm in enumerate(targets, start=1):
        if not json_output:
            prefix = f"[{index}/{len(targets)}] " if len(targets) > 1 else ""
            console.print(f"{prefix}Deleting VM {vm.vmid} '{vm.name}' on node '{vm.node}'...")
        try:
            deleted.append(service.delete_vm(vm.vmid))
        except HomelabError as e:
            failed.append((vm.vmid, e.message))

    if json_output:
        output: dict[str, Any] = {
            "deleted": [{**vm.model_dump(), "status": "deleted"} for vm in deleted],
            "failed": [{"vmid": vmid, "error": message} for vmid, message in failed],
        }
        print(json.dumps(output, indent=2))
    elif len(targets) == 1 and deleted:
        vm = deleted[0]
        console.print(f"[green]Successfully deleted VM {vm.vmid} '{vm.name}' from node '{vm.node}'[/]")
    elif len(targets) == 1:
        raise fail(failed[0][1])
    else:
        reporter_for(config).display_delete_summary(deleted, failed)

    if failed:
        if not json_output and len(targets) > 1:
            console.print("[red]Some VM deletions failed[/]")
        raise typer.Exit(1)


@vm_app.command("start")
def vm_start(
    ctx: typer.Context,
    vmid: Annotated[int, typer.Argument(help="VM ID to start")],
) -> None:
    """Start a Proxmox VM."""
    config = get_config(ctx)
    try:
        vm = factories.create_proxmox_vm_service(config).start_vm(vmid)
    except HomelabError as e:
        raise fail(f"Failed to start VM: {e.message}") from e
    console.print(f"[green]Started VM {vm.vmid} '{vm.name}' on node '{vm.node}'[/]")


@vm_app.command("stop")
def vm_stop(
    ctx: typer.Context,
    vmid: Annotated[int, typer.Argument(help="VM ID to stop")],
) -> None:
    """Stop a Proxmox VM."""
    config = get_config(ctx)
    try:
        vm = factories.create_proxmox_vm_service(config).stop_vm(vmid)
    except HomelabError as e:
        raise fail(f"Failed to stop VM: {e.message}") from e
    console.print(f"[green]Stopped VM {vm.vmid} '{vm.name}' on node '{vm.node}'[/]")


def read_ssh_key(value: str) -> str:
    """Return key material, reading it from a file for path-like values.

    Raises:
        OSError: If a path-like value cannot be read.
    """
    if value.startswith(("./", "/", "~")):
        return Path(value).expanduser().read_text().strip()
    return value


@vm_app.command("cloudinit")
def vm_cloudinit(
    ctx: typer.Context,
    vmid: Annotated[int, typer.Argument(help="VM ID to configure")],
    user: Annotated[str, typer.Option("--user", help="Username for the default user")] = "admin",
    password: Annotated[
        str, typer.Option("--password", help="Password for the default user (empty = no password)")
    ] = "",
    ssh_key: Annotated[
        str | None,
        typer.Option("--ssh-key", help="SSH public key or path to key file"),
    ] = None,
    ipconfig: Annotated[
        str,
        typer.Option("--ipconfig", help="IPv4 config for eth0 (ip=dhcp or ip=X.X.X.X/YY[,gw=X.X.X.X])"),
    ] = "ip=dhcp",
    upgrade: Annotated[
        bool, typer.Option("--upgrade", help="Upgrade packages on first boot")
    ] = False,
) -> None:
    """Configure cloud-init settings for a Proxmox VM."""
    config = get_config(ctx)

    ssh_keys = ""
    if ssh_key:
        try:
            ssh_keys = read_ssh_key(ssh_key)
        except OSError as e:
            raise fail(f"Failed to read SSH key file: {ssh_key}") from e

    try:
        cloud_init = CloudInitConfig(
            user=user, password=password, ssh_keys=ssh_keys, ipconfig0=ipconfig, upgrade=upgrade
        )
    except ValidationError as e:
        details = "\n".join(f"  - {'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
        raise fail(f"Invalid cloud-init configuration:\n{details}") from e

    console.print(f"Configuring cloud-init for VM {vmid}...")

    try:
        factories.create_proxmox_vm_service(config).configure_cloud_init(vmid, cloud_init)
    except HomelabError as e:
        message = f"Failed to configure cloud-init: {e.message}"
        if e.context:
            message += f"\nContext: {json.dumps(e.context, indent=2, default=str)}"
        raise fail(message) from e

    console.print(f"[green]Successfully configured cloud-init for VM {vmid}[/]")


# --- config ---------------------------------------------------------------


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Show the effective configuration."""
    config = get_config(ctx)
    reporter_for(config).display_config(config)


@config_app.command("init")
def config_init(
    path: Annotated[
        Path,
        typer.Argument(help="Where to create config file"),
    ] = Path("~/.config/homelab/config.yml"),
) -> None:
    """Create a default configuration file."""
    try:
        config_module.create_default_config(path)
        console.print(f"[green]Created config file:[/] {path}")
        console.print("Edit this file to configure the projects directory and Proxmox access.")
    except FileExistsError as e:
        raise fail(str(e)) from e
