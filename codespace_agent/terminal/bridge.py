"""Bridges one WebSocket connection to one pseudo-terminal shell."""

import logging
import threading
from typing import Callable, Optional, Protocol

from codespace_agent.domain.correlation_id import (
    CorrelationLoggerAdapter,
    correlation_scope,
    get_correlation_id,
)
from codespace_agent.domain.sandbox import ConfinedRoot
from codespace_agent.terminal.output_buffer import OutputBuffer
from codespace_agent.terminal.shell import ShellProcess, TerminalSettings, spawn_shell

TERMINAL_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("codespace_agent.terminal.bridge"), {}
)

PUMP_JOIN_SECONDS = 2.0
GOING_AWAY = 1001


class DuplexConnection(Protocol):
    """The remote side of a terminal session."""

    def receive(self, timeout: Optional[float] = None) -> Optional[bytes]:
        ...

    def send(self, data: bytes) -> bool:
        ...

    def close(self, code: int = 1000, reason: str = "") -> None:
        ...


class TerminalSession:
    """One shell process paired with one remote connection.

    Output flows shell -> :class:`OutputBuffer` -> connection on two pump
    threads; input flows connection -> shell on the thread calling
    :meth:`run`. Whichever side ends first triggers :meth:`close`, which
    tears the other side down.
    """

    def __init__(
        self,
        shell: ShellProcess,
        connection: DuplexConnection,
        settings: TerminalSettings,
        should_stop: Callable[[], bool],
    ) -> None:
        self._shell = shell
        self._connection = connection
        self._settings = settings
        self._should_stop = should_stop
        self._output = OutputBuffer(settings.buffer_chunks)
        self._closed = threading.Event()
        self._close_lock = threading.Lock()
        self._bytes_in = 0
        self._bytes_out = 0
        self._correlation_id = get_correlation_id()
        self._reader = threading.Thread(
            target=self._run_pump,
            args=(self._pump_shell_output,),
            name=f"pty-reader-{shell.pid}",
            daemon=True,
        )
        self._writer = threading.Thread(
            target=self._run_pump,
            args=(self._pump_connection_output,),
            name=f"pty-writer-{shell.pid}",
            daemon=True,
        )

    @property
    def shell(self) -> ShellProcess:
        return self._shell

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def start(self) -> None:
        self._reader.start()
        self._writer.start()

    def run(self) -> None:
        """Forward inbound messages to the shell until either side ends."""
        try:
            while not self._closed.is_set():
                if self._should_stop():
                    TERMINAL_LOGGER.info(
                        "Closing terminal for shutdown",
                        extra={"event": "terminal_shutdown", "pid": self._shell.pid},
                    )
                    self.close(GOING_AWAY)
                    break
                try:
                    message = self._connection.receive(self._settings.poll_interval)
                except TimeoutError:
                    continue
                if message is None:
                    TERMINAL_LOGGER.info(
                        "Peer closed terminal connection",
                        extra={"event": "terminal_peer_closed", "pid": self._shell.pid},
                    )
                    break
                self._bytes_in += len(message)
                self._shell.write(message)
        except (EOFError, OSError) as error:
            if not self._closed.is_set():
                TERMINAL_LOGGER.warning(
                    "Terminal input forwarding failed",
                    extra={
                        "event": "terminal_input_error",
                        "pid": self._shell.pid,
                        "error_type": type(error).__name__,
                    },
                )
        finally:
            self.close()

    def close(self, code: int = 1000) -> None:
        """Terminate the shell and close the connection. Idempotent."""
        with self._close_lock:
            if self._closed.is_set():
                return
            self._closed.set()
        self._shell.terminate()
        self._output.close()
        self._connection.close(code)
        current = threading.current_thread()
        for pump in (self._reader, self._writer):
            if pump is not current and pump.is_alive():
                pump.join(PUMP_JOIN_SECONDS)
        TERMINAL_LOGGER.info(
            "Terminal session closed",
            extra={
                "event": "terminal_closed",
                "pid": self._shell.pid,
                "bytes_in": self._bytes_in,
                "bytes_out": self._bytes_out,
                "dropped_chunks": self._output.dropped,
            },
        )

    def _run_pump(self, pump: Callable[[], None]) -> None:
        with correlation_scope(self._correlation_id):
            pump()

    def _pump_shell_output(self) -> None:
        try:
            while not self._closed.is_set():
                chunk = self._shell.read()
                if not self._output.put(chunk):
                    TERMINAL_LOGGER.debug(
                        "Terminal output dropped",
                        extra={"event": "terminal_output_dropped", "pid": self._shell.pid},
                    )
        except EOFError:
            TERMINAL_LOGGER.info(
                "Shell exited",
                extra={"event": "shell_exited", "pid": self._shell.pid},
            )
        except (OSError, ValueError) as error:
            if not self._closed.is_set():
                TERMINAL_LOGGER.warning(
                    "Shell output read failed",
                    extra={
                        "event": "terminal_output_error",
                        "pid": self._shell.pid,
                        "error_type": type(error).__name__,
                    },
                )
        # Let the writer flush what the shell printed before exiting.
        self._output.close()
        self._writer.join(PUMP_JOIN_SECONDS)
        self.close()

    def _pump_connection_output(self) -> None:
        while True:
            chunk = self._output.get(self._settings.poll_interval)
            if chunk is None:
                if self._output.closed:
                    break
                continue
            if self._connection.send(chunk):
                self._bytes_out += len(chunk)


class SessionBridge:
    """Opens terminal sessions rooted at the confined workspace."""

    def __init__(
        self,
        root: ConfinedRoot,
        settings: TerminalSettings,
        spawn: Callable[[ConfinedRoot, TerminalSettings], ShellProcess] = spawn_shell,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> None:
        self._root = root
        self._settings = settings
        self._spawn = spawn
        self._should_stop = should_stop or (lambda: False)

    @property
    def settings(self) -> TerminalSettings:
        return self._settings

    def open(self, connection: DuplexConnection) -> TerminalSession:
        """Spawn a shell for ``connection`` and start relaying its output.

        Raises ProcessSpawnFailure without creating a session when the shell
        cannot be started.
        """
        shell = self._spawn(self._root, self._settings)
        session = TerminalSession(shell, connection, self._settings, self._should_stop)
        session.start()
        TERMINAL_LOGGER.info(
            "Terminal session opened",
            extra={"event": "terminal_opened", "pid": shell.pid, "workdir": self._root.path},
        )
        return session
