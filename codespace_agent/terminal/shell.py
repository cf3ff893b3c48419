"""Pseudo-terminal backed shell processes."""

import logging
import os
import shlex
import shutil
import sys
import threading
from dataclasses import dataclass
from typing import Mapping, Optional

from codespace_agent.domain.correlation_id import CorrelationLoggerAdapter
from codespace_agent.domain.sandbox import ConfinedRoot

if sys.platform == "win32":
    from winpty import PtyProcess
else:
    from ptyprocess import PtyProcess

SHELL_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("codespace_agent.terminal.shell"), {}
)

DEFAULT_TERM = "xterm-256color"
READ_CHUNK_BYTES = 4096
WINDOWS_SHELL = "powershell.exe"
POSIX_SHELLS = ("bash", "sh")


class ProcessSpawnFailure(Exception):
    """Raised when the shell process cannot be started."""


@dataclass(frozen=True)
class TerminalSettings:
    """Per-session terminal parameters shared by every bridge."""

    shell: Optional[str] = None
    rows: int = 24
    cols: int = 80
    buffer_chunks: int = 256
    max_message_bytes: int = 1024 * 1024
    poll_interval: float = 0.5


def select_shell(
    override: Optional[str] = None,
    platform: str = sys.platform,
    environ: Optional[Mapping[str, str]] = None,
) -> list[str]:
    """Return the argv of the interactive shell to run on this host."""
    if override:
        return shlex.split(override, posix=platform != "win32")
    if platform == "win32":
        return [WINDOWS_SHELL]
    environ = os.environ if environ is None else environ
    for name in POSIX_SHELLS:
        found = shutil.which(name, path=environ.get("PATH"))
        if found:
            return [found]
    login_shell = environ.get("SHELL")
    if login_shell:
        return [login_shell]
    return ["/bin/sh"]


def shell_environment(environ: Optional[Mapping[str, str]] = None) -> dict[str, str]:
    """Copy the host environment for a terminal session."""
    env = dict(os.environ if environ is None else environ)
    env.setdefault("TERM", DEFAULT_TERM)
    return env


class ShellProcess:
    """Owned handle to one shell running under a pseudo-terminal.

    Leaving a ``with`` block, or calling :meth:`terminate`, kills the shell and
    reaps it. Termination is idempotent.
    """

    def __init__(self, process, argv: list[str]) -> None:
        self._process = process
        self._argv = argv
        self._lock = threading.Lock()
        self._terminated = False

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def argv(self) -> list[str]:
        return list(self._argv)

    @property
    def exit_status(self) -> Optional[int]:
        return getattr(self._process, "exitstatus", None)

    def read(self, size: int = READ_CHUNK_BYTES) -> bytes:
        """Block until output is available; raise EOFError once the shell exits."""
        data = self._process.read(size)
        if isinstance(data, str):
            data = data.encode("utf-8")
        return data

    def write(self, data: bytes) -> None:
        """Send raw input bytes to the shell."""
        if sys.platform == "win32":
            self._process.write(data.decode("utf-8", errors="replace"))
            return
        self._process.write(data)

    def is_alive(self) -> bool:
        if self._terminated:
            return False
        return self._process.isalive()

    def terminate(self) -> None:
        """Kill the shell if it is still running and release the terminal."""
        with self._lock:
            if self._terminated:
                return
            self._terminated = True
        try:
            self._process.close(force=True)
        except Exception as error:  # pylint: disable=broad-except
            SHELL_LOGGER.error(
                "Shell did not terminate cleanly",
                extra={
                    "event": "shell_terminate_failed",
                    "pid": self.pid,
                    "error_type": type(error).__name__,
                    "error": str(error),
                },
            )
            return
        SHELL_LOGGER.info(
            "Shell terminated",
            extra={
                "event": "shell_terminated",
                "pid": self.pid,
                "exit_status": self.exit_status,
            },
        )

    def __enter__(self) -> "ShellProcess":
        return self

    def __exit__(self, exc_type, exc, traceback) -> None:
        self.terminate()


def spawn_shell(root: ConfinedRoot, settings: TerminalSettings) -> ShellProcess:
    """Start an interactive shell in ``root``; raise ProcessSpawnFailure on error."""
    argv = select_shell(settings.shell)
    try:
        process = PtyProcess.spawn(
            argv,
            cwd=root.path,
            env=shell_environment(),
            dimensions=(settings.rows, settings.cols),
        )
    except OSError as error:
        SHELL_LOGGER.error(
            "Shell spawn failed",
            extra={
                "event": "shell_spawn_failed",
                "shell": " ".join(argv),
                "error_type": type(error).__name__,
                "error": str(error),
            },
        )
        raise ProcessSpawnFailure(f"Could not start {argv[0]}: {error}") from error
    shell = ShellProcess(process, argv)
    SHELL_LOGGER.info(
        "Shell spawned",
        extra={
            "event": "shell_spawned",
            "pid": shell.pid,
            "shell": " ".join(argv),
            "workdir": root.path,
        },
    )
    return shell
