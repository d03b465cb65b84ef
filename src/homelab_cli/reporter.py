"""Rich console output formatting."""

import json
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from homelab_cli.models import (
    Config,
    GitRecord,
    OutputConfig,
    ProxmoxResource,
    ProxmoxTemplate,
    VMSummary,
)

NO_REMOTE = "(no remote)"
NO_ADDRESS = "N/A"

STATUS_STYLES = {
    "running": "green",
    "stopped": "red",
    "paused": "yellow",
}


def records_to_json(records: list[Any]) -> str:
    """Serialize pydantic records as a JSON array with their public keys."""
    return json.dumps([record.model_dump(mode="json", by_alias=True) for record in records], indent=2)


class Reporter:
    """Formats and displays listings using Rich."""

    def __init__(self, console: Console, config: OutputConfig) -> None:
        """Initialize reporter.

        Args:
            console: Rich console for output.
            config: Output configuration settings.
        """
        self.console = console
        self.config = config

    def display_git_records(self, records: list[GitRecord], title: str, empty_message: str) -> None:
        """Display projects or modules with their remotes.

        Args:
            records: Records to show.
            title: Table title.
            empty_message: Printed instead of a table when there is nothing to show.
        """
        if not records:
            self.console.print(empty_message)
            return

        table = Table(title=title)
        table.add_column("NAME", style="blue", no_wrap=True)
        table.add_column("GIT REPOSITORY URL")

        for record in records:
            url = escape(record.git_repo_url) if record.git_repo_url else f"[dim]{NO_REMOTE}[/]"
            table.add_row(escape(record.name), url)

        self.console.print(table)

    def display_resources(self, resources: list[ProxmoxResource], title: str, empty_message: str) -> None:
        """Display VMs or containers.

        Args:
            resources: Guests to show, already sorted.
            title: Table title.
            empty_message: Printed instead of a table when there is nothing to show.
        """
        if not resources:
            self.console.print(empty_message)
            return

        table = Table(title=title)
        table.add_column("VMID", justify="right", style="cyan")
        table.add_column("Name", style="blue")
        table.add_column("Status")
        table.add_column("IPv4 Address")

        for resource in resources:
            style = STATUS_STYLES.get(resource.status, "white")
            table.add_row(
                str(resource.vmid),
                escape(resource.name),
                f"[{style}]{escape(resource.status)}[/]",
                resource.ipv4_address or NO_ADDRESS,
            )

        self.console.print(table)

    def display_templates(self, templates: list[ProxmoxTemplate]) -> None:
        """Display VM templates."""
        if not templates:
            self.console.print("No templates found")
            return

        table = Table(title="Templates")
        table.add_column("VMID", justify="right", style="cyan")
        table.add_column("Name", style="blue")
        table.add_column("Node")

        for template in templates:
            table.add_row(str(template.vmid), escape(template.name), escape(template.node))

        self.console.print(table)

    def display_vm_selection(self, vms: list[ProxmoxResource]) -> None:
        """Display the VMs about to be affected by a destructive action."""
        table = Table()
        table.add_column("VMID", justify="right", style="cyan")
        table.add_column("Name", style="blue")
        table.add_column("Node")
        table.add_column("Status")

        for vm in vms:
            table.add_row(str(vm.vmid), escape(vm.name), escape(vm.node), escape(vm.status))

        self.console.print(table)

    def display_delete_summary(self, deleted: list[VMSummary], failed: list[tuple[int, str]]) -> None:
        """Display the outcome of a multi-VM deletion."""
        self.console.print("\n[bold]Deletion Summary:[/]")
        self.console.print(f"  [green]Successful: {len(deleted)}[/]")
        self.console.print(f"  [red]Failed: {len(failed)}[/]")

        if failed:
            self.console.print("\n[red]Failed deletions:[/]")
            for vmid, message in failed:
                self.console.print(f"  [red]x[/] VM {vmid}: {escape(message)}")

    def display_config(self, config: Config) -> None:
        """Display the effective configuration with secrets masked."""
        proxmox = config.proxmox
        rows = [
            ("projects_dir", str(config.projects_dir)),
            ("log_level", config.log_level),
            ("output.color", str(config.output.color).lower()),
            ("proxmox.host", str(proxmox.host or "-")),
            ("proxmox.port", str(proxmox.port)),
            ("proxmox.user", str(proxmox.user or "-")),
            ("proxmox.realm", str(proxmox.realm or "-")),
            ("proxmox.token_key", str(proxmox.token_key or "-")),
            ("proxmox.token_secret", "********" if proxmox.token_secret else "-"),
            ("proxmox.verify_ssl", str(proxmox.verify_ssl).lower()),
        ]

        table = Table(title="Configuration")
        table.add_column("Key", style="cyan", no_wrap=True)
        table.add_column("Value")
        for key, value in rows:
            table.add_row(key, escape(value))

        self.console.print(table)
