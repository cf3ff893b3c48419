"""Confined root and lexical path resolution for workspace access."""

import os
from dataclasses import dataclass

AGENT_DIRECTORY_NAME = ".codespace-agent"


class PathEscape(Exception):
    """Raised when a requested path resolves outside the confined root."""

    def __init__(self, candidate: str) -> None:
        super().__init__(f"Invalid path: {candidate!r} escapes the workspace")
        self.candidate = candidate


@dataclass(frozen=True)
class ConfinedRoot:
    """The single directory outside of which no file operation may reach."""

    path: str

    def __post_init__(self) -> None:
        if not self.path:
            raise ValueError("Confined root must not be empty")
        if not os.path.isabs(self.path):
            raise ValueError(f"Confined root must be absolute: {self.path!r}")
        object.__setattr__(self, "path", os.path.normpath(self.path))

    @classmethod
    def discover(cls, cwd: str) -> "ConfinedRoot":
        """Derive the root from the directory the agent was started in.

        An agent installed inside the project it serves lives in a
        ``.codespace-agent`` directory; the project is its parent.
        """
        absolute = os.path.abspath(cwd)
        if os.path.basename(absolute) == AGENT_DIRECTORY_NAME:
            return cls(os.path.dirname(absolute))
        return cls(absolute)

    @property
    def prefix(self) -> str:
        """Root path with a trailing separator, used for boundary checks."""
        if self.path.endswith(os.sep):
            return self.path
        return self.path + os.sep

    def __str__(self) -> str:
        return self.path


def resolve_sandbox_path(root: ConfinedRoot, candidate: str) -> str:
    """Resolve a caller-supplied path inside the confined root.

    Resolution is lexical: ``.`` and ``..`` segments are collapsed without
    touching the filesystem, and symbolic links are not followed.
    """
    if "\x00" in candidate:
        raise PathEscape(candidate)

    target = os.path.normpath(os.path.join(root.path, candidate))
    if target == root.path or target.startswith(root.prefix):
        return target
    raise PathEscape(candidate)
