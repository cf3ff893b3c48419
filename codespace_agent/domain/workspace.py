"""Filesystem operations confined to the workspace root."""

import logging
import os
import shutil
from dataclasses import dataclass

from codespace_agent.domain.correlation_id import CorrelationLoggerAdapter
from codespace_agent.domain.sandbox import (
    ConfinedRoot,
    PathEscape,
    resolve_sandbox_path,
)

WORKSPACE_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("codespace_agent.workspace"), {}
)

ENTRY_FILE = "file"
ENTRY_DIRECTORY = "directory"


class WorkspaceError(Exception):
    """Base class for client-visible filesystem failures."""


class NotFound(WorkspaceError):
    """Raised when the resolved path does not exist."""

    def __init__(self, path: str) -> None:
        super().__init__(f"No such file or directory: {path}")


class IsADirectory(WorkspaceError):
    """Raised when a file operation targets a directory."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Is a directory: {path}")


class NotADirectory(WorkspaceError):
    """Raised when a directory operation targets a file."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Not a directory: {path}")


class NotText(WorkspaceError):
    """Raised when a file cannot be decoded as UTF-8 text."""

    def __init__(self, path: str) -> None:
        super().__init__(f"File is not valid UTF-8 text: {path}")


class RootDeletion(WorkspaceError):
    """Raised when a delete request targets the workspace root itself."""

    def __init__(self) -> None:
        super().__init__("Refusing to delete the workspace root")


class AccessFailure(WorkspaceError):
    """Raised for any other operating system error on a workspace path."""

    def __init__(self, path: str, error: OSError) -> None:
        super().__init__(f"Cannot access {path}: {error.strerror or error}")
        self.errno = error.errno


@dataclass(frozen=True)
class DirectoryEntry:
    """An immediate child of a listed directory."""

    name: str
    type: str

    def to_dict(self) -> dict[str, str]:
        """Return the JSON representation of the entry."""
        return {"name": self.name, "type": self.type}


class FileGateway:
    """Read, write, delete and list files beneath a confined root."""

    def __init__(self, root: ConfinedRoot) -> None:
        self._root = root

    @property
    def root(self) -> ConfinedRoot:
        return self._root

    def resolve(self, path: str) -> str:
        """Resolve ``path`` against the root, raising PathEscape on escape."""
        try:
            return resolve_sandbox_path(self._root, path)
        except PathEscape:
            WORKSPACE_LOGGER.warning(
                "Path escape blocked",
                extra={"event": "path_escape", "path": path},
            )
            raise

    def read_text(self, path: str) -> str:
        """Return the UTF-8 contents of a file."""
        target = self.resolve(path)
        try:
            with open(target, "rb") as file_handle:
                data = file_handle.read()
        except FileNotFoundError as exc:
            raise NotFound(path) from exc
        except IsADirectoryError as exc:
            raise IsADirectory(path) from exc
        except NotADirectoryError as exc:
            raise NotFound(path) from exc
        except PermissionError as exc:
            if os.path.isdir(target):
                raise IsADirectory(path) from exc
            raise AccessFailure(path, exc) from exc
        except OSError as exc:
            raise AccessFailure(path, exc) from exc
        try:
            content = data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise NotText(path) from exc
        if WORKSPACE_LOGGER.logger.isEnabledFor(logging.DEBUG):
            WORKSPACE_LOGGER.debug(
                "File read",
                extra={"event": "file_read", "path": target, "bytes_out": len(data)},
            )
        return content

    def write_text(self, path: str, content: str) -> str:
        """Create or overwrite a file, creating parent directories as needed."""
        target = self.resolve(path)
        if os.path.isdir(target):
            raise IsADirectory(path)
        try:
            os.makedirs(os.path.dirname(target), exist_ok=True)
        except (FileExistsError, NotADirectoryError) as exc:
            raise NotADirectory(os.path.dirname(path) or path) from exc
        except OSError as exc:
            raise AccessFailure(path, exc) from exc
        payload = content.encode("utf-8")
        try:
            with open(target, "wb") as file_handle:
                file_handle.write(payload)
        except NotADirectoryError as exc:
            raise NotADirectory(os.path.dirname(path) or path) from exc
        except IsADirectoryError as exc:
            raise IsADirectory(path) from exc
        except OSError as exc:
            raise AccessFailure(path, exc) from exc
        WORKSPACE_LOGGER.info(
            "File write complete",
            extra={"event": "file_write_complete", "path": target, "bytes_in": len(payload)},
        )
        return target

    def delete(self, path: str) -> bool:
        """Remove a file or directory tree; a missing target is not an error."""
        target = self.resolve(path)
        if target == self._root.path:
            raise RootDeletion()
        try:
            if os.path.isdir(target) and not os.path.islink(target):
                shutil.rmtree(target)
            elif os.path.lexists(target):
                os.unlink(target)
            else:
                if WORKSPACE_LOGGER.logger.isEnabledFor(logging.DEBUG):
                    WORKSPACE_LOGGER.debug(
                        "Delete target already absent",
                        extra={"event": "delete_missing", "path": target},
                    )
                return False
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise AccessFailure(path, exc) from exc
        WORKSPACE_LOGGER.info(
            "Path deleted", extra={"event": "path_deleted", "path": target}
        )
        return True

    def list_entries(self, path: str = "") -> list[DirectoryEntry]:
        """List the immediate children of a directory, sorted by name."""
        target = self.resolve(path)
        try:
            with os.scandir(target) as iterator:
                entries = [
                    DirectoryEntry(
                        entry.name,
                        ENTRY_DIRECTORY if entry.is_dir() else ENTRY_FILE,
                    )
                    for entry in iterator
                ]
        except FileNotFoundError as exc:
            raise NotFound(path or ".") from exc
        except NotADirectoryError as exc:
            raise NotADirectory(path or ".") from exc
        except OSError as exc:
            raise AccessFailure(path or ".", exc) from exc
        entries.sort(key=lambda entry: entry.name)
        return entries
