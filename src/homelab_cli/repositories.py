"""Filesystem-backed project and module repositories."""

import asyncio
from pathlib import Path

from homelab_cli import git_ops, scanner
from homelab_cli.errors import RepositoryError
from homelab_cli.models import Module, Project


class ProjectFsRepository:
    """Projects are git repositories directly under the projects directory."""

    def __init__(self, projects_dir: Path) -> None:
        self.projects_dir = projects_dir

    async def find_all(self) -> list[Project]:
        """Scan the projects directory for repositories.

        Returns:
            Unordered list of projects.

        Raises:
            RepositoryError: If the projects directory is unusable.
        """
        return await scanner.discover_projects(self.projects_dir)

    async def find_by_name(self, name: str) -> Project:
        """Look up a single project by directory name.

        Args:
            name: Directory name under the projects directory.

        Returns:
            The project with its origin URL resolved.

        Raises:
            RepositoryError: If the directory is missing, not a directory,
                or not a git repository.
        """
        dir_path = self.projects_dir / name
        context = {"name": name, "path": str(dir_path)}

        if not await asyncio.to_thread(dir_path.exists):
            raise RepositoryError(f"Project '{name}' not found", context=context)

        if not await asyncio.to_thread(dir_path.is_dir):
            raise RepositoryError(f"'{name}' is not a directory", context=context)

        if not await asyncio.to_thread(git_ops.is_repository, dir_path):
            raise RepositoryError(
                f"Project '{name}' is not a Git repository (no .git directory found)",
                context=context,
            )

        url = await git_ops.resolve_origin_url(dir_path)
        return Project(name=name, git_repo_url=url)


class ModuleFsRepository:
    """Modules are git repositories anywhere under ``<project>/src``."""

    def __init__(self, projects_dir: Path) -> None:
        self.projects_dir = projects_dir

    def src_dir(self, project_name: str) -> Path:
        """Directory scanned for a project's modules."""
        return self.projects_dir / project_name / "src"

    async def find_by_project_name(self, project_name: str) -> list[Module]:
        """Scan a project's src directory for modules.

        Args:
            project_name: Project whose modules are listed.

        Returns:
            Unordered list of modules named by their path under src.

        Raises:
            RepositoryError: If the src directory is missing or unusable.
        """
        src_dir = self.src_dir(project_name)
        context = {"project_name": project_name, "project_src_dir": str(src_dir)}

        if not await asyncio.to_thread(src_dir.exists):
            raise RepositoryError(f"Project src directory not found: {src_dir}", context=context)

        if not await asyncio.to_thread(src_dir.is_dir):
            raise RepositoryError(f"Path is not a directory: {src_dir}", context=context)

        return await scanner.discover_modules(src_dir)
