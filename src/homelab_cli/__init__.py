"""homelab-cli: projects, modules and Proxmox from the command line."""

__version__ = "0.1.0"
