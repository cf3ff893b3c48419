"""WebSocket connections over an already-accepted client socket.

Framing, masking, ping/pong and the closing handshake are delegated to the
sans-I/O ``websockets.server.ServerProtocol``; this module only moves bytes
between it and the socket.
"""

import logging
import select
import socket
import ssl
import threading
from collections import deque
from typing import Optional

from websockets.frames import Frame, Opcode
from websockets.http11 import Request
from websockets.protocol import State
from websockets.server import ServerProtocol

from codespace_agent.domain.correlation_id import CorrelationLoggerAdapter

WEBSOCKET_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("codespace_agent.transport.websocket"), {}
)

RECV_CHUNK_BYTES = 65536
NORMAL_CLOSURE = 1000
DATA_OPCODES = (Opcode.TEXT, Opcode.BINARY, Opcode.CONT)


class HandshakeRejected(Exception):
    """Raised when an upgrade request is not a valid WebSocket handshake."""


class WebSocketConnection:
    """Thread-safe duplex message channel to one remote peer.

    One thread may call :meth:`receive` while another calls :meth:`send`;
    a single lock serializes access to the protocol state and socket writes.
    """

    def __init__(self, client_socket: socket.socket, protocol: ServerProtocol) -> None:
        self._socket = client_socket
        self._protocol = protocol
        self._lock = threading.Lock()
        self._messages: deque[bytes] = deque()
        self._peer_closed = False
        self._closed = False

    @classmethod
    def accept_upgrade(
        cls,
        client_socket: socket.socket,
        raw_head: bytes,
        leftover: bytes = b"",
        max_message_bytes: Optional[int] = None,
    ) -> "WebSocketConnection":
        """Complete the opening handshake for a parsed upgrade request."""
        protocol = ServerProtocol(
            max_size=max_message_bytes, logger=WEBSOCKET_LOGGER.logger
        )
        protocol.receive_data(raw_head)
        events = protocol.events_received()
        if not events or not isinstance(events[0], Request):
            raise HandshakeRejected(
                str(protocol.handshake_exc or "Malformed upgrade request")
            )

        response = protocol.accept(events[0])
        protocol.send_response(response)
        for data in protocol.data_to_send():
            if data:
                client_socket.sendall(data)
        if response.status_code != 101:
            raise HandshakeRejected(str(protocol.handshake_exc))

        client_socket.settimeout(None)
        connection = cls(client_socket, protocol)
        if leftover:
            connection._feed(leftover)
        return connection

    @property
    def is_open(self) -> bool:
        with self._lock:
            return not self._closed and self._protocol.state is State.OPEN

    def receive(self, timeout: Optional[float] = None) -> Optional[bytes]:
        """Return the next data payload, or None once the connection has closed.

        Raises ``TimeoutError`` when nothing arrives within ``timeout``.
        """
        while not self._messages:
            if self._peer_closed or self._closed:
                return None
            if not self._wait_readable(timeout):
                raise TimeoutError("No WebSocket data received")
            try:
                data = self._socket.recv(RECV_CHUNK_BYTES)
            except OSError:
                if self._closed:
                    return None
                raise
            self._feed(data)
        return self._messages.popleft()

    def send(self, data: bytes) -> bool:
        """Send ``data`` as one binary message; False when the peer is gone."""
        with self._lock:
            if self._closed or self._protocol.state is not State.OPEN:
                return False
            self._protocol.send_binary(data)
            try:
                self._flush_locked()
            except OSError as error:
                self._closed = True
                WEBSOCKET_LOGGER.debug(
                    "WebSocket send failed",
                    extra={"event": "websocket_send_failed", "error_type": type(error).__name__},
                )
                return False
        return True

    def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        """Start the closing handshake and shut the socket down. Idempotent."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if self._protocol.state is State.OPEN:
                self._protocol.send_close(code, reason)
                try:
                    self._flush_locked()
                except OSError:
                    WEBSOCKET_LOGGER.debug(
                        "Peer gone before close frame was sent",
                        extra={"event": "websocket_close_unsent"},
                    )
        try:
            self._socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        WEBSOCKET_LOGGER.debug(
            "WebSocket closed", extra={"event": "websocket_closed", "close_code": code}
        )

    def _wait_readable(self, timeout: Optional[float]) -> bool:
        if isinstance(self._socket, ssl.SSLSocket) and self._socket.pending():
            return True
        readable, _, _ = select.select([self._socket], [], [], timeout)
        return bool(readable)

    def _feed(self, data: bytes) -> None:
        with self._lock:
            if data:
                self._protocol.receive_data(data)
            else:
                self._protocol.receive_eof()
                self._peer_closed = True
            events = self._protocol.events_received()
            try:
                self._flush_locked()
            except OSError:
                self._peer_closed = True
            if self._protocol.state is State.CLOSED or self._protocol.close_expected():
                self._peer_closed = True
        for event in events:
            self._handle_event(event)

    def _handle_event(self, event: Frame) -> None:
        if event.opcode in DATA_OPCODES:
            if event.data:
                self._messages.append(bytes(event.data))
        elif event.opcode is Opcode.CLOSE:
            self._peer_closed = True

    def _flush_locked(self) -> None:
        for data in self._protocol.data_to_send():
            if data:
                self._socket.sendall(data)
            else:
                self._socket.shutdown(socket.SHUT_WR)
