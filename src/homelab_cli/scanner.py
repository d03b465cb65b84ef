"""Filesystem scanning for git repositories."""

import asyncio
import logging
import os
import stat
from pathlib import Path
from typing import TypeVar

from homelab_cli import git_ops
from homelab_cli.errors import RepositoryError
from homelab_cli.models import DiscoveredEntry, GitRecord, Module, Project

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=GitRecord)


async def check_scan_root(root: Path) -> None:
    """Verify that a scan root exists and is a directory.

    Args:
        root: Directory the scan starts from.

    Raises:
        RepositoryError: If the root is missing, unreadable or not a directory.
    """
    try:
        stat_info = await asyncio.to_thread(root.stat)
    except OSError as e:
        raise RepositoryError(
            f"{root} not found",
            context={"path": str(root), "reason": e.strerror or str(e)},
        ) from e

    if not stat.S_ISDIR(stat_info.st_mode):
        raise RepositoryError(
            f"Path is not a directory: {root}",
            context={"path": str(root), "reason": "path is not a directory"},
        )


def list_subdirectories(root: Path) -> list[Path]:
    """List the visible immediate subdirectories of a directory.

    Hidden entries (leading ``.``) and anything that is not a real
    directory are skipped. Symlinks are not followed.

    Args:
        root: Directory to list.

    Returns:
        Subdirectory paths in enumeration order.

    Raises:
        OSError: If the directory cannot be read.
    """
    subdirs: list[Path] = []
    with os.scandir(root) as entries:
        for entry in entries:
            if entry.name.startswith("."):
                continue
            try:
                if not entry.is_dir(follow_symlinks=False):
                    continue
            except OSError:
                continue
            subdirs.append(Path(entry.path))
    return subdirs


async def scan_top_level(root: Path) -> list[DiscoveredEntry]:
    """Find repositories sitting directly under a root directory.

    Args:
        root: Directory whose immediate children are checked.

    Returns:
        One entry per repository, named after the directory. Unordered.

    Raises:
        RepositoryError: If the root fails the precondition check.
        OSError: If the root cannot be listed.
    """
    await check_scan_root(root)
    candidates = await asyncio.to_thread(list_subdirectories, root)

    checks = await asyncio.gather(
        *(asyncio.to_thread(git_ops.is_repository, candidate) for candidate in candidates)
    )

    return [
        DiscoveredEntry(path=candidate, name=candidate.name)
        for candidate, is_repo in zip(candidates, checks)
        if is_repo
    ]


async def scan_recursive(subtree_root: Path) -> list[Path]:
    """Recursively find repositories under a directory.

    Stops descending at the first repository boundary, so repositories
    nested inside another repository are never reported. Sibling branches
    are walked concurrently; a branch that cannot be read yields nothing.

    Args:
        subtree_root: Directory to start from.

    Returns:
        Repository root paths. Order across branches is not defined.
    """
    if await asyncio.to_thread(git_ops.is_repository, subtree_root):
        return [subtree_root]

    try:
        children = await asyncio.to_thread(list_subdirectories, subtree_root)
    except OSError as e:
        logger.warning("Skipping unreadable directory %s: %s", subtree_root, e)
        return []

    branches = await asyncio.gather(*(scan_recursive(child) for child in children))
    return [path for branch in branches for path in branch]


def relative_name(path: Path, root: Path) -> str:
    """Display name of a repository found by a recursive scan.

    Args:
        path: Repository root.
        root: Directory the scan started from.

    Returns:
        Path relative to the root joined with ``/``; the root's own name
        when the root itself is the repository.
    """
    rel = path.relative_to(root).as_posix()
    if rel == ".":
        return root.name
    return rel


async def build_record(entry: DiscoveredEntry, record_type: type[RecordT]) -> RecordT | None:
    """Resolve the remote and validate one record.

    Args:
        entry: Discovered repository.
        record_type: Model to build (Project or Module).

    Returns:
        The validated record, or None if it could not be built.
    """
    try:
        url = await git_ops.resolve_origin_url(entry.path)
        return record_type(name=entry.name, git_repo_url=url)
    except Exception as e:  # noqa: BLE001
        logger.warning("Skipping %s: %s", entry.path, e)
        return None


async def assemble_records(
    entries: list[DiscoveredEntry], record_type: type[RecordT]
) -> list[RecordT]:
    """Turn discovered entries into validated records.

    Entries whose record cannot be built are dropped individually.

    Args:
        entries: Discovered repositories.
        record_type: Model to build for each entry.

    Returns:
        Records for every entry that could be built. Unordered.
    """
    records = await asyncio.gather(*(build_record(entry, record_type) for entry in entries))
    return [record for record in records if record is not None]


async def discover_projects(root: Path) -> list[Project]:
    """List projects: repositories directly under the projects directory.

    Args:
        root: Projects directory.

    Returns:
        Project records. Unordered.

    Raises:
        RepositoryError: If the root is invalid or the scan fails as a whole.
    """
    try:
        entries = await scan_top_level(root)
        return await assemble_records(entries, Project)
    except RepositoryError:
        raise
    except Exception as e:
        raise RepositoryError(
            f"Failed to list projects from filesystem: {e}",
            context={"message": str(e), "root": str(root)},
        ) from e


async def discover_modules(root: Path) -> list[Module]:
    """List modules: repositories at any depth under a project's src directory.

    Args:
        root: Directory to scan, usually ``<project>/src``.

    Returns:
        Module records named by their root-relative path. Unordered.

    Raises:
        RepositoryError: If the root is invalid or the scan fails as a whole.
    """
    try:
        await check_scan_root(root)
        paths = await scan_recursive(root)
        entries = [DiscoveredEntry(path=path, name=relative_name(path, root)) for path in paths]
        return await assemble_records(entries, Module)
    except RepositoryError:
        raise
    except Exception as e:
        raise RepositoryError(
            f"Failed to list modules from filesystem: {e}",
            context={"message": str(e), "root": str(root)},
        ) from e
