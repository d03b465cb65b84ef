"""Git operations - repository detection and remote lookup."""

import asyncio
import logging
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30


class GitError(Exception):
    """git could not be started or did not finish in time."""

    def __init__(self, message: str, repo_path: Path) -> None:
        """Initialize GitError.

        Args:
            message: What went wrong with the invocation.
            repo_path: Working directory git was run in.
        """
        self.repo_path = repo_path
        super().__init__(message)


async def run_git_command(
    repo_path: Path,
    args: list[str],
    timeout: int = DEFAULT_TIMEOUT,
) -> subprocess.CompletedProcess[str]:
    """Run a git command with the repository as working directory.

    Args:
        repo_path: Directory to run git in.
        args: Git command arguments (without 'git' prefix).
        timeout: Command timeout in seconds.

    Returns:
        CompletedProcess with stdout/stderr as strings.

    Raises:
        GitError: If git cannot be started or times out.
    """
    cmd = ["git", *args]

    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=str(repo_path),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise GitError(f"Failed to run git: {e}", repo_path) from e

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout)
    except asyncio.TimeoutError as e:
        proc.kill()
        await proc.wait()
        raise GitError(f"Command timed out after {timeout}s: {' '.join(args)}", repo_path) from e

    return subprocess.CompletedProcess(
        args=cmd,
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


def is_repository(path: Path) -> bool:
    """Check whether a directory is the root of a git repository.

    Only a ``.git`` directory counts; a ``.git`` file (worktrees,
    submodules) does not.

    Args:
        path: Directory to probe.

    Returns:
        True if ``path/.git`` exists and is a directory.
    """
    try:
        return (path / ".git").is_dir()
    except OSError:
        return False


async def resolve_origin_url(repo_path: Path) -> str:
    """Get the URL of the ``origin`` remote.

    Args:
        repo_path: Path to repository root.

    Returns:
        Trimmed remote URL, or an empty string if it cannot be determined.
    """
    try:
        result = await run_git_command(repo_path, ["remote", "get-url", "origin"])
    except GitError as e:
        logger.debug("origin lookup failed for %s: %s", repo_path, e)
        return ""

    if result.returncode != 0:
        return ""
    return result.stdout.strip()
