"""Tests for cli module."""

import json
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from homelab_cli.cli import app, parse_vmid_selection, read_ssh_key
from homelab_cli.errors import ServiceError
from homelab_cli.models import ProxmoxResource, ProxmoxTemplate, VMSummary
from homelab_cli.services import ProxmoxTemplateService, ProxmoxVMService

runner = CliRunner()

VMS = [
    ProxmoxResource(vmid=100, name="web", node="pve", status="running", ipv4_address="10.0.0.5"),
    ProxmoxResource(vmid=101, name="db", node="pve", status="stopped"),
]


@pytest.fixture
def vm_service():
    service = MagicMock(spec=ProxmoxVMService)
    service.list_vms.return_value = VMS
    service.delete_vm.side_effect = lambda vmid: VMSummary(
        vmid=vmid, name={100: "web", 101: "db"}[vmid], node="pve"
    )
    with patch("homelab_cli.cli.factories.create_proxmox_vm_service", return_value=service):
        yield service


class TestMain:
    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])
        assert "Usage" in result.output

    def test_missing_explicit_config(self, tmp_path):
        result = runner.invoke(app, ["--config", str(tmp_path / "nope.yml"), "config", "show"])
        assert result.exit_code == 1
        assert "Config file not found" in result.output

    def test_invalid_log_level(self, sample_config_yaml):
        result = runner.invoke(
            app, ["--config", str(sample_config_yaml), "--log-level", "loud", "config", "show"]
        )
        assert result.exit_code == 1
        assert "Unknown log level" in result.output


class TestProjectCommands:
    def test_list(self, sample_config_yaml, projects_dir):
        result = runner.invoke(app, ["--config", str(sample_config_yaml), "project", "list"])
        assert result.exit_code == 0
        assert "alpha" in result.output
        assert "beta" in result.output
        assert ".hidden" not in result.output

    def test_list_json(self, sample_config_yaml, projects_dir):
        result = runner.invoke(app, ["--config", str(sample_config_yaml), "project", "list", "--json"])
        assert result.exit_code == 0
        assert json.loads(result.stdout) == [
            {"name": "alpha", "gitRepoUrl": "git@github.com:user/alpha.git"},
            {"name": "beta", "gitRepoUrl": ""},
        ]

    def test_list_empty(self, sample_config_yaml, tmp_path):
        (tmp_path / "projects").mkdir()
        result = runner.invoke(app, ["--config", str(sample_config_yaml), "project", "list"])
        assert result.exit_code == 0
        assert "No projects found." in result.output

    def test_list_missing_directory(self, sample_config_yaml):
        result = runner.invoke(app, ["--config", str(sample_config_yaml), "project", "list"])
        assert result.exit_code == 1
        assert "Failed to list projects" in result.output

    def test_list_missing_directory_json(self, sample_config_yaml):
        result = runner.invoke(app, ["--config", str(sample_config_yaml), "project", "list", "--json"])
        assert result.exit_code == 1
        assert "Failed to list projects" in json.loads(result.stdout)["error"]

    def test_show(self, sample_config_yaml, projects_dir):
        result = runner.invoke(
            app, ["--config", str(sample_config_yaml), "project", "show", "alpha", "--json"]
        )
        assert result.exit_code == 0
        assert json.loads(result.stdout)["gitRepoUrl"] == "git@github.com:user/alpha.git"

    def test_show_missing(self, sample_config_yaml, projects_dir):
        result = runner.invoke(app, ["--config", str(sample_config_yaml), "project", "show", "ghost"])
        assert result.exit_code == 1
        assert "Project 'ghost' not found" in result.output

    def test_vscode(self, sample_config_yaml, projects_dir):
        with patch("homelab_cli.cli.launcher.open_vscode") as mock_open:
            result = runner.invoke(
                app, ["--config", str(sample_config_yaml), "project", "vscode", "alpha"]
            )
        assert result.exit_code == 0
        assert mock_open.call_args.args[1:] == (projects_dir, "alpha", None)

    def test_vscode_detects_nothing_outside_projects(self, sample_config_yaml, projects_dir, monkeypatch):
        monkeypatch.chdir(projects_dir.parent)
        result = runner.invoke(app, ["--config", str(sample_config_yaml), "project", "vscode"])
        assert result.exit_code == 1
        assert "Could not detect current project" in result.output

    def test_vscode_detects_current_project(self, sample_config_yaml, projects_dir, monkeypatch):
        monkeypatch.chdir(projects_dir / "beta")
        with patch("homelab_cli.cli.launcher.open_vscode") as mock_open:
            result = runner.invoke(app, ["--config", str(sample_config_yaml), "project", "vscode"])
        assert result.exit_code == 0
        assert mock_open.call_args.args[2] == "beta"

    def test_zellij_attaches(self, sample_config_yaml, projects_dir):
        with (
            patch("homelab_cli.cli.launcher.zellij_session_exists", return_value=True),
            patch("homelab_cli.cli.launcher.open_zellij") as mock_open,
        ):
            result = runner.invoke(
                app, ["--config", str(sample_config_yaml), "project", "zellij", "alpha", "dev"]
            )
        assert result.exit_code == 0
        assert "Attaching to existing Zellij session 'dev'" in result.output
        assert mock_open.call_args.args[1:] == (projects_dir, "alpha", "dev", True)

    def test_zellij_missing_layout(self, sample_config_yaml, projects_dir):
        with patch("homelab_cli.cli.launcher.zellij_session_exists", return_value=False):
            result = runner.invoke(
                app, ["--config", str(sample_config_yaml), "project", "zellij", "alpha", "dev"]
            )
        assert result.exit_code == 1
        assert "Zellij layout not found" in result.output


class TestModuleCommands:
    def test_list(self, sample_config_yaml, module_tree):
        result = runner.invoke(
            app, ["--config", str(sample_config_yaml), "module", "list", "sflab", "--json"]
        )
        assert result.exit_code == 0
        names = [entry["name"] for entry in json.loads(result.stdout)]
        assert names == ["p/q/r", "top", "x/y"]

    def test_list_empty(self, sample_config_yaml, tmp_path):
        (tmp_path / "projects" / "bare" / "src").mkdir(parents=True)
        result = runner.invoke(app, ["--config", str(sample_config_yaml), "module", "list", "bare"])
        assert result.exit_code == 0
        assert "No modules found for project 'bare'." in result.output

    def test_list_missing_src(self, sample_config_yaml, projects_dir):
        result = runner.invoke(app, ["--config", str(sample_config_yaml), "module", "list", "alpha"])
        assert result.exit_code == 1
        assert "Failed to list modules" in result.output


class TestProxmoxCommands:
    def test_vm_list_json(self, sample_config_yaml, vm_service):
        result = runner.invoke(app, ["--config", str(sample_config_yaml), "proxmox", "vm", "list", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert [vm["vmid"] for vm in data] == [100, 101]
        assert data[0]["ipv4Address"] == "10.0.0.5"

    def test_vm_list_empty(self, sample_config_yaml, vm_service):
        vm_service.list_vms.return_value = []
        result = runner.invoke(app, ["--config", str(sample_config_yaml), "proxmox", "vm", "list"])
        assert result.exit_code == 0
        assert "No VMs found" in result.output

    def test_container_list_empty(self, sample_config_yaml, vm_service):
        vm_service.list_vms.return_value = []
        result = runner.invoke(app, ["--config", str(sample_config_yaml), "proxmox", "container", "list"])
        assert result.exit_code == 0
        assert "No containers found" in result.output

    def test_vm_list_without_settings(self, tmp_path):
        config_path = tmp_path / "config.yml"
        config_path.write_text(f"projects_dir: {tmp_path}\n")
        with patch.dict("os.environ", {}, clear=True):
            result = runner.invoke(app, ["--config", str(config_path), "proxmox", "vm", "list"])
        assert result.exit_code == 1
        assert "Invalid Proxmox configuration" in result.output

    def test_template_list(self, sample_config_yaml):
        service = MagicMock(spec=ProxmoxTemplateService)
        service.list_templates.return_value = [ProxmoxTemplate(vmid=9000, name="ubuntu", node="pve")]
        with patch("homelab_cli.cli.factories.create_proxmox_template_service", return_value=service):
            result = runner.invoke(
                app, ["--config", str(sample_config_yaml), "proxmox", "template", "list", "--json"]
            )
        assert result.exit_code == 0
        assert json.loads(result.stdout) == [{"vmid": 9000, "name": "ubuntu", "node": "pve", "template": 1}]

    def test_vm_create(self, sample_config_yaml, vm_service):
        vm_service.create_vm_from_template.return_value = VMSummary(vmid=102, name="app", node="pve")
        result = runner.invoke(
            app, ["--config", str(sample_config_yaml), "proxmox", "vm", "create", "ubuntu", "app"]
        )
        assert result.exit_code == 0
        assert "Successfully created VM 102 'app'" in result.output
        vm_service.create_vm_from_template.assert_called_once_with("app", "ubuntu")

    def test_vm_create_unknown_template(self, sample_config_yaml, vm_service):
        vm_service.create_vm_from_template.side_effect = ServiceError("Template 'x' not found")
        result = runner.invoke(
            app, ["--config", str(sample_config_yaml), "proxmox", "vm", "create", "x", "app", "--json"]
        )
        assert result.exit_code == 1
        assert json.loads(result.stdout) == {"error": "Failed to create VM: Template 'x' not found"}

    def test_vm_delete_force_requires_ids(self, sample_config_yaml, vm_service):
        result = runner.invoke(app, ["--config", str(sample_config_yaml), "proxmox", "vm", "delete", "--force"])
        assert result.exit_code == 1
        assert "Force mode requires explicit VM IDs" in result.output

    def test_vm_delete_unknown_id(self, sample_config_yaml, vm_service):
        result = runner.invoke(
            app, ["--config", str(sample_config_yaml), "proxmox", "vm", "delete", "999", "--force"]
        )
        assert result.exit_code == 1
        assert "999 not found" in result.output
        vm_service.delete_vm.assert_not_called()

    def test_vm_delete_cancelled(self, sample_config_yaml, vm_service):
        result = runner.invoke(
            app, ["--config", str(sample_config_yaml), "proxmox", "vm", "delete", "100"], input="n\n"
        )
        assert result.exit_code == 0
        assert "Deletion cancelled" in result.output
        vm_service.delete_vm.assert_not_called()

    def test_vm_delete_confirmed(self, sample_config_yaml, vm_service):
        result = runner.invoke(
            app, ["--config", str(sample_config_yaml), "proxmox", "vm", "delete", "100"], input="y\n"
        )
        assert result.exit_code == 0
        assert "Successfully deleted VM 100 'web'" in result.output
        vm_service.delete_vm.assert_called_once_with(100)

    def test_vm_delete_json_reports_partial_failure(self, sample_config_yaml, vm_service):
        def delete(vmid):
            if vmid == 101:
                raise ServiceError("Failed to delete VM 101: Proxmox server error")
            return VMSummary(vmid=vmid, name="web", node="pve")

        vm_service.delete_vm.side_effect = delete
        result = runner.invoke(
            app,
            ["--config", str(sample_config_yaml), "proxmox", "vm", "delete", "100", "101", "--force", "--json"],
        )
        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["deleted"] == [{"vmid": 100, "name": "web", "node": "pve", "status": "deleted"}]
        assert data["failed"] == [{"vmid": 101, "error": "Failed to delete VM 101: Proxmox server error"}]

    def test_vm_delete_interactive_selection(self, sample_config_yaml, vm_service):
        result = runner.invoke(
            app,
            ["--config", str(sample_config_yaml), "proxmox", "vm", "delete"],
            input="101\ny\n",
        )
        assert result.exit_code == 0
        vm_service.delete_vm.assert_called_once_with(101)

    def test_vm_start(self, sample_config_yaml, vm_service):
        vm_service.start_vm.return_value = VMSummary(vmid=101, name="db", node="pve")
        result = runner.invoke(app, ["--config", str(sample_config_yaml), "proxmox", "vm", "start", "101"])
        assert result.exit_code == 0
        assert "Started VM 101 'db'" in result.output

    def test_vm_cloudinit(self, sample_config_yaml, vm_service, tmp_path):
        key_file = tmp_path / "id.pub"
        key_file.write_text("ssh-ed25519 AAAA me@host\n")
        result = runner.invoke(
            app,
            [
                "--config", str(sample_config_yaml),
                "proxmox", "vm", "cloudinit", "100",
                "--user", "ops",
                "--ssh-key", str(key_file),
                "--ipconfig", "ip=10.0.0.9/24,gw=10.0.0.1",
                "--upgrade",
            ],
        )
        assert result.exit_code == 0
        assert "Successfully configured cloud-init for VM 100" in result.output
        vmid, cloud_init = vm_service.configure_cloud_init.call_args.args
        assert vmid == 100
        assert cloud_init.user == "ops"
        assert cloud_init.ssh_keys == "ssh-ed25519 AAAA me@host"
        assert cloud_init.upgrade is True

    def test_vm_cloudinit_invalid_ipconfig(self, sample_config_yaml, vm_service):
        result = runner.invoke(
            app,
            ["--config", str(sample_config_yaml), "proxmox", "vm", "cloudinit", "100", "--ipconfig", "static"],
        )
        assert result.exit_code == 1
        assert "Invalid cloud-init configuration" in result.output
        vm_service.configure_cloud_init.assert_not_called()

    def test_vm_cloudinit_missing_key_file(self, sample_config_yaml, vm_service, tmp_path):
        result = runner.invoke(
            app,
            [
                "--config", str(sample_config_yaml),
                "proxmox", "vm", "cloudinit", "100",
                "--ssh-key", str(tmp_path / "missing.pub"),
            ],
        )
        assert result.exit_code == 1
        assert "Failed to read SSH key file" in result.output


class TestConfigCommands:
    def test_show(self, sample_config_yaml):
        result = runner.invoke(app, ["--config", str(sample_config_yaml), "config", "show"])
        assert result.exit_code == 0
        assert "pve.example.lan" in result.output
        assert "12345678-1234" not in result.output

    def test_init(self, sample_config_yaml, tmp_path):
        target = tmp_path / "new" / "config.yml"
        result = runner.invoke(app, ["--config", str(sample_config_yaml), "config", "init", str(target)])
        assert result.exit_code == 0
        assert target.exists()

    def test_init_existing(self, sample_config_yaml):
        result = runner.invoke(
            app, ["--config", str(sample_config_yaml), "config", "init", str(sample_config_yaml)]
        )
        assert result.exit_code == 1
        assert "already exists" in result.output


class TestConfigErrors:
    def test_bad_proxmox_port_only_fails_proxmox_commands(self, sample_config_yaml, projects_dir, monkeypatch):
        monkeypatch.setenv("PROXMOX_PORT", "not-a-port")

        result = runner.invoke(app, ["--config", str(sample_config_yaml), "project", "list"])
        assert result.exit_code == 0
        assert "alpha" in result.output

        result = runner.invoke(app, ["--config", str(sample_config_yaml), "proxmox", "vm", "list"])
        assert result.exit_code == 1
        assert "Invalid Proxmox configuration: port" in result.output

    def test_bad_proxmox_yaml_keeps_config_show_working(self, tmp_path):
        config_path = tmp_path / "config.yml"
        config_path.write_text("proxmox:\n  port: eight\n  verify_ssl: maybe\n")
        with patch.dict("os.environ", {}, clear=True):
            result = runner.invoke(app, ["--config", str(config_path), "config", "show"])
        assert result.exit_code == 0
        assert "eight" in result.output

    def test_non_mapping_section(self, tmp_path):
        config_path = tmp_path / "config.yml"
        config_path.write_text("output: true\n")
        result = runner.invoke(app, ["--config", str(config_path), "project", "list"])
        assert result.exit_code == 1
        assert "Config section 'output' must be a mapping" in result.output
        assert not isinstance(result.exception, TypeError)

    def test_undetected_project_json(self, sample_config_yaml, projects_dir, monkeypatch):
        monkeypatch.chdir(projects_dir.parent)
        result = runner.invoke(app, ["--config", str(sample_config_yaml), "module", "list", "--json"])
        assert result.exit_code == 1
        assert "Could not detect current project" in json.loads(result.stdout)["error"]


class TestHelpers:
    def test_parse_vmid_selection(self):
        assert parse_vmid_selection("101, 100 abc 999 101", {100, 101}) == [101, 100]

    def test_parse_vmid_selection_empty(self):
        assert parse_vmid_selection("", {100}) == []

    def test_read_ssh_key_literal(self):
        assert read_ssh_key("ssh-ed25519 AAAA") == "ssh-ed25519 AAAA"

    def test_read_ssh_key_file(self, tmp_path):
        key_file = tmp_path / "id.pub"
        key_file.write_text("ssh-rsa BBBB\n")
        assert read_ssh_key(str(key_file)) == "ssh-rsa BBBB"
