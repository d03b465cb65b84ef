"""Proxmox VE REST API client."""

import logging
import time
from typing import Any
from urllib.parse import quote

import requests
import urllib3

from homelab_cli.errors import RepositoryError
from homelab_cli.models import ProxmoxConfig, ResourceType

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30
TASK_TIMEOUT = 300
TASK_POLL_INTERVAL = 2.0
FIRST_VMID = 100


def http_error(status_code: int, url: str) -> RepositoryError:
    """Map an HTTP error status to a RepositoryError.

    Args:
        status_code: HTTP status returned by the API.
        url: Requested URL, kept as context.

    Returns:
        Error with a message describing the failure class.
    """
    context = {"status": status_code, "url": url}
    if status_code in (401, 403):
        return RepositoryError("Authentication failed - check API token", context=context)
    if status_code == 404:
        return RepositoryError("Proxmox API endpoint not found", context=context)
    if status_code >= 500:
        return RepositoryError("Proxmox server error", context=context)
    return RepositoryError(f"HTTP error: {status_code}", context=context)


def first_ipv4_from_agent(result: Any) -> str | None:
    """Extract the first non-loopback IPv4 from QEMU guest agent data.

    Args:
        result: ``data`` of ``agent/network-get-interfaces``.

    Returns:
        An IPv4 address or None.
    """
    interfaces = result.get("result", []) if isinstance(result, dict) else []
    for interface in interfaces:
        if interface.get("name") == "lo":
            continue
        for address in interface.get("ip-addresses", []):
            ip = address.get("ip-address", "")
            if address.get("ip-address-type") == "ipv4" and not ip.startswith("127."):
                return ip
    return None


def first_ipv4_from_lxc(interfaces: Any) -> str | None:
    """Extract the first non-loopback IPv4 from LXC interface data.

    Args:
        interfaces: ``data`` of ``lxc/{vmid}/interfaces``.

    Returns:
        An IPv4 address (without prefix length) or None.
    """
    if not isinstance(interfaces, list):
        return None
    for interface in interfaces:
        if interface.get("name") == "lo":
            continue
        inet = interface.get("inet")
        if inet:
            ip = inet.split("/")[0]
            if not ip.startswith("127."):
                return ip
    return None


class ProxmoxClient:
    """Thin client over the Proxmox VE JSON API using token auth."""

    def __init__(
        self,
        config: ProxmoxConfig,
        session: requests.Session | None = None,
        timeout: int = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize the client.

        Args:
            config: Validated connection settings.
            session: HTTP session; a new one is created if omitted.
            timeout: Per-request timeout in seconds.
        """
        self.config = config
        self.session = session or requests.Session()
        self.timeout = timeout
        self.headers = {
            "Authorization": f"PVEAPIToken={config.token_id}={config.token_secret}",
        }
        if not config.verify_ssl:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
    ) -> Any:
        """Make an authenticated API request and return its ``data`` field.

        Raises:
            RepositoryError: On connection, HTTP or payload errors.
        """
        url = f"{self.config.base_url}{endpoint}"
        logger.debug("%s %s", method, url)

        try:
            response = self.session.request(
                method,
                url,
                headers=self.headers,
                params=params,
                data=data,
                verify=self.config.verify_ssl,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise RepositoryError(
                "Failed to connect to Proxmox API",
                context={"message": str(e), "url": url},
            ) from e

        if not response.ok:
            raise http_error(response.status_code, url)

        try:
            payload = response.json()
        except ValueError as e:
            raise RepositoryError(
                "Unexpected API response format", context={"url": url}
            ) from e

        if not isinstance(payload, dict) or "data" not in payload:
            raise RepositoryError("Unexpected API response format", context={"url": url})

        return payload["data"]

    def cluster_resources(self) -> list[dict[str, Any]]:
        """All guests (VMs, containers and templates) in the cluster."""
        resources = self._request("GET", "/cluster/resources", params={"type": "vm"})
        if not isinstance(resources, list):
            raise RepositoryError("Unexpected API response format")
        return resources

    def list_templates(self) -> list[dict[str, Any]]:
        """List VM templates.

        Returns:
            Raw template fields: vmid, name, node, template.
        """
        return [
            {
                "vmid": resource.get("vmid", 0),
                "name": resource.get("name", ""),
                "node": resource.get("node", ""),
                "template": 1,
            }
            for resource in self.cluster_resources()
            if resource.get("template") == 1
        ]

    def list_resources(self, resource_type: ResourceType) -> list[dict[str, Any]]:
        """List guests of one type, excluding templates.

        Running guests get their IPv4 address looked up; a failed lookup
        leaves it as None.

        Args:
            resource_type: QEMU VMs or LXC containers.

        Returns:
            Raw resource fields: vmid, name, node, status, ipv4_address.
        """
        resources = []
        for resource in self.cluster_resources():
            if resource.get("type") != resource_type.value:
                continue
            if resource.get("template") == 1:
                continue

            status = resource.get("status", "")
            ipv4 = None
            if status == "running":
                ipv4 = self.get_ipv4_address(resource_type, resource.get("node", ""), resource.get("vmid", 0))

            resources.append(
                {
                    "vmid": resource.get("vmid", 0),
                    "name": resource.get("name", ""),
                    "node": resource.get("node", ""),
                    "status": status,
                    "ipv4_address": ipv4,
                }
            )
        return resources

    def get_ipv4_address(self, resource_type: ResourceType, node: str, vmid: int) -> str | None:
        """Best-effort IPv4 lookup for a running guest.

        Args:
            resource_type: Guest kind, selects the endpoint.
            node: Node hosting the guest.
            vmid: Guest ID.

        Returns:
            First non-loopback IPv4, or None if unknown.
        """
        try:
            if resource_type == ResourceType.QEMU:
                data = self._request("GET", f"/nodes/{node}/qemu/{vmid}/agent/network-get-interfaces")
                return first_ipv4_from_agent(data)
            data = self._request("GET", f"/nodes/{node}/lxc/{vmid}/interfaces")
            return first_ipv4_from_lxc(data)
        except RepositoryError as e:
            logger.debug("No IPv4 for %s %s: %s", resource_type.value, vmid, e)
            return None

    def get_next_vmid(self) -> int:
        """Find the lowest unused VMID, starting at 100."""
        used = {resource.get("vmid") for resource in self.cluster_resources()}
        vmid = FIRST_VMID
        while vmid in used:
            vmid += 1
        return vmid

    def clone_from_template(self, node: str, template_vmid: int, new_vmid: int, name: str) -> str:
        """Full-clone a template into a new VM.

        Returns:
            UPID of the clone task.
        """
        return self._request(
            "POST",
            f"/nodes/{node}/qemu/{template_vmid}/clone",
            data={"newid": new_vmid, "name": name, "full": 1},
        )

    def get_task_status(self, node: str, upid: str) -> dict[str, Any]:
        """Current status of a task."""
        encoded_upid = quote(upid, safe="")
        return self._request("GET", f"/nodes/{node}/tasks/{encoded_upid}/status")

    def wait_for_task(
        self,
        node: str,
        upid: str,
        timeout: float = TASK_TIMEOUT,
        poll_interval: float = TASK_POLL_INTERVAL,
    ) -> None:
        """Block until a task stops.

        Args:
            node: Node running the task.
            upid: Task identifier.
            timeout: Seconds to wait before giving up.
            poll_interval: Seconds between status polls.

        Raises:
            RepositoryError: If the task fails or does not finish in time.
        """
        deadline = time.monotonic() + timeout
        while True:
            status = self.get_task_status(node, upid)
            if status.get("status") == "stopped":
                exit_status = status.get("exitstatus", "")
                if exit_status == "OK":
                    return
                raise RepositoryError(
                    f"Task failed: {exit_status}",
                    context={"node": node, "upid": upid, "exitstatus": exit_status},
                )
            if time.monotonic() >= deadline:
                raise RepositoryError(
                    f"Task timed out after {timeout}s",
                    context={"node": node, "upid": upid},
                )
            time.sleep(poll_interval)

    def set_vm_config(self, node: str, vmid: int, params: dict[str, Any]) -> None:
        """Update VM configuration parameters."""
        self._request("PUT", f"/nodes/{node}/qemu/{vmid}/config", data=params)

    def start_vm(self, node: str, vmid: int) -> str:
        """Start a VM. Returns the task UPID."""
        return self._request("POST", f"/nodes/{node}/qemu/{vmid}/status/start")

    def stop_vm(self, node: str, vmid: int) -> str:
        """Stop a VM immediately. Returns the task UPID."""
        return self._request("POST", f"/nodes/{node}/qemu/{vmid}/status/stop")

    def delete_vm(self, node: str, vmid: int) -> str:
        """Destroy a VM and its disks. Returns the task UPID."""
        return self._request("DELETE", f"/nodes/{node}/qemu/{vmid}", params={"purge": 1})
