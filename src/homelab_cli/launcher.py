"""Open projects in VS Code or Zellij."""

import logging
import os
import subprocess
from pathlib import Path

from pydantic import BaseModel

from homelab_cli.errors import ServiceError

logger = logging.getLogger(__name__)


class CommandResult(BaseModel):
    """Outcome of an external command."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""


class CommandExecutor:
    """Runs external programs for the launchers."""

    def execute(
        self,
        command: str,
        args: list[str],
        cwd: Path | None = None,
        detached: bool = False,
        capture: bool = False,
    ) -> CommandResult:
        """Run a command.

        Args:
            command: Executable name.
            args: Arguments.
            cwd: Working directory.
            detached: Start in a new session and return immediately.
            capture: Capture stdout/stderr instead of inheriting the terminal.

        Returns:
            CommandResult; for detached commands the exit code is 0.

        Raises:
            ServiceError: If the executable is missing or exits non-zero.
        """
        cmd = [command, *args]
        context = {"command": " ".join(cmd), "cwd": str(cwd) if cwd else None}
        logger.debug("Running %s in %s", cmd, cwd or os.getcwd())

        try:
            if detached:
                subprocess.Popen(
                    cmd,
                    cwd=cwd,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                    start_new_session=True,
                )
                return CommandResult(exit_code=0)

            result = subprocess.run(
                cmd,
                cwd=cwd,
                capture_output=capture,
                text=True,
                check=False,
            )
        except OSError as e:
            raise ServiceError(f"Failed to execute '{command}': {e}", context=context) from e

        if result.returncode != 0:
            raise ServiceError(
                f"Command '{command}' exited with code {result.returncode}",
                context={**context, "stderr": (result.stderr or "").strip()},
            )

        return CommandResult(
            exit_code=result.returncode,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
        )


def detect_current_project(cwd: Path, projects_dir: Path) -> str | None:
    """Detect the project a working directory belongs to.

    Args:
        cwd: Current working directory.
        projects_dir: Projects directory.

    Returns:
        First path component of cwd under projects_dir, or None when cwd
        is outside it or is the projects directory itself.
    """
    try:
        relative = Path(os.path.normpath(cwd)).relative_to(os.path.normpath(projects_dir))
    except ValueError:
        return None

    if not relative.parts:
        return None
    return relative.parts[0]


def vscode_command(projects_dir: Path, project_name: str, workspace_name: str | None) -> tuple[list[str], Path | None]:
    """Build the ``code`` arguments and working directory.

    Args:
        projects_dir: Projects directory.
        project_name: Project to open.
        workspace_name: Optional ``.code-workspace`` file name without extension.

    Returns:
        Tuple of (arguments, cwd).
    """
    if workspace_name:
        target = projects_dir / project_name / f"{workspace_name}.code-workspace"
        return [str(target), "--profile", workspace_name], None
    return ["."], projects_dir / project_name


def open_vscode(
    executor: CommandExecutor,
    projects_dir: Path,
    project_name: str,
    workspace_name: str | None = None,
) -> None:
    """Open a project, or one of its workspace files, in VS Code.

    Raises:
        ServiceError: If the project or workspace is missing or VS Code fails to start.
    """
    project_dir = projects_dir / project_name
    if not project_dir.is_dir():
        raise ServiceError(f"Project directory not found: {project_dir}", context={"project": project_name})

    args, cwd = vscode_command(projects_dir, project_name, workspace_name)
    if workspace_name and not Path(args[0]).exists():
        raise ServiceError(f"Workspace file not found: {args[0]}", context={"project": project_name})

    executor.execute("code", args, cwd=cwd, detached=True)


def zellij_session_exists(executor: CommandExecutor, session_name: str) -> bool:
    """Check whether a Zellij session with this name is running."""
    try:
        result = executor.execute("zellij", ["list-sessions", "--short", "--no-formatting"], capture=True)
    except ServiceError:
        return False
    return session_name in result.stdout.split()


def zellij_command(
    projects_dir: Path, project_name: str, config_name: str, session_exists: bool
) -> list[str]:
    """Build the ``zellij`` arguments for attaching or starting a session."""
    if session_exists:
        return ["attach", config_name]
    layout = projects_dir / project_name / ".config" / "zellij" / f"{config_name}.kdl"
    return ["-n", str(layout), "-s", config_name]


def open_zellij(
    executor: CommandExecutor,
    projects_dir: Path,
    project_name: str,
    config_name: str,
    session_exists: bool,
) -> None:
    """Attach to or start a Zellij session for a project.

    Args:
        executor: Command runner.
        projects_dir: Projects directory.
        project_name: Project to work in.
        config_name: Layout name, also used as the session name.
        session_exists: Attach instead of starting a new session.

    Raises:
        ServiceError: If the layout is missing or zellij fails.
    """
    args = zellij_command(projects_dir, project_name, config_name, session_exists)

    if not session_exists and not Path(args[1]).exists():
        raise ServiceError(f"Zellij layout not found: {args[1]}", context={"project": project_name})

    executor.execute("zellij", args)
