"""Exception hierarchy shared by repositories, services and the CLI."""

from typing import Any


class HomelabError(Exception):
    """Base class for errors raised by homelab-cli."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        """Initialize HomelabError.

        Args:
            message: Human readable error description.
            context: Extra fields describing where the error happened.
        """
        self.message = message
        self.context = context or {}
        super().__init__(message)


class RepositoryError(HomelabError):
    """Data access failure: filesystem, Proxmox API."""


class ServiceError(HomelabError):
    """Business rule or validation failure."""
