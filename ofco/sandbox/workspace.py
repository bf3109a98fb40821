"""Per-request scratch workspaces.

Each execution gets its own directory under an injected root holding
exactly one source file. Only that directory is mounted into the
sandbox, so concurrent requests never see each other's code.
"""

import logging
import os
import secrets
import shutil
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from ofco.exceptions import WorkspaceError

logger = logging.getLogger(__name__)

# The sandbox user is unprivileged and the mount is read-only
_DIR_MODE = 0o755
_FILE_MODE = 0o644


def new_workspace_id() -> str:
    """Generate a workspace identifier: nanosecond timestamp plus random suffix."""
    return f"{time.time_ns()}-{secrets.token_hex(4)}"


@dataclass(frozen=True)
class Workspace:
    """An exclusively owned scratch directory holding one source file."""

    id: str
    directory: Path
    source_file: Path

    @property
    def filename(self) -> str:
        return self.source_file.name


class WorkspaceManager:
    """Creates and removes workspaces under ``root``.

    Usage:
        manager = WorkspaceManager(Path("/var/tmp/ofco"))
        with manager.scoped("print('hi')", "py") as workspace:
            ...
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def acquire(self, source: str, extension: str) -> Workspace:
        """Materialize ``source`` into a fresh workspace.

        Args:
            source: Source code, written verbatim as UTF-8
            extension: File extension, with or without a leading dot

        Returns:
            The new Workspace

        Raises:
            WorkspaceError: If the root or the workspace cannot be written,
                or ``source`` cannot be encoded as UTF-8
        """
        workspace_id = new_workspace_id()
        directory = self.root / workspace_id
        source_file = directory / f"{workspace_id}.{extension.lstrip('.')}"
        created = False

        try:
            self.root.mkdir(parents=True, exist_ok=True)
            directory.mkdir(mode=_DIR_MODE)
            created = True
            # mkdir's mode is filtered by the umask
            os.chmod(directory, _DIR_MODE)
            with open(source_file, "w", encoding="utf-8", newline="") as f:
                f.write(source)
            os.chmod(source_file, _FILE_MODE)
        except (OSError, UnicodeError) as e:
            # Never touch a directory this call did not create
            if created:
                shutil.rmtree(directory, ignore_errors=True)
            raise WorkspaceError(
                f"Cannot create workspace under '{self.root}': {e}",
                path=str(directory),
            ) from e

        logger.debug("Acquired workspace %s", workspace_id)
        return Workspace(id=workspace_id, directory=directory, source_file=source_file)

    def release(self, workspace: Workspace) -> None:
        """Remove the workspace directory. Failures are logged, never raised."""
        try:
            shutil.rmtree(workspace.directory)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Failed to remove workspace %s: %s", workspace.id, e)
        else:
            logger.debug("Released workspace %s", workspace.id)

    @contextmanager
    def scoped(self, source: str, extension: str) -> Iterator[Workspace]:
        """Acquire a workspace and release it on every exit path."""
        workspace = self.acquire(source, extension)
        try:
            yield workspace
        finally:
            self.release(workspace)


__all__ = [
    "Workspace",
    "WorkspaceManager",
    "new_workspace_id",
]
