"""Unit tests for WebSocket framing over a raw socket."""

import socket

import pytest
from websockets.client import ClientProtocol
from websockets.frames import Opcode
from websockets.http11 import Response
from websockets.protocol import State
from websockets.uri import parse_uri

from codespace_agent.transport.websocket import HandshakeRejected, WebSocketConnection


class Peer:
    """Drives the client half of a socket pair with the sans-I/O client."""

    def __init__(self, sock: socket.socket):
        self.sock = sock
        self.sock.settimeout(2.0)
        self.protocol = ClientProtocol(parse_uri("ws://localhost/ws/terminal"))

    def handshake_bytes(self) -> bytes:
        self.protocol.send_request(self.protocol.connect())
        return b"".join(self.protocol.data_to_send())

    def flush(self) -> None:
        for data in self.protocol.data_to_send():
            if data:
                self.sock.sendall(data)

    def read_events(self):
        self.protocol.receive_data(self.sock.recv(65536))
        return self.protocol.events_received()


@pytest.fixture(name="pair")
def pair_fixture():
    server_sock, client_sock = socket.socketpair()
    yield server_sock, Peer(client_sock)
    server_sock.close()
    client_sock.close()


def open_connection(pair, pipelined: bytes = b""):
    server_sock, peer = pair
    raw = peer.handshake_bytes()
    connection = WebSocketConnection.accept_upgrade(
        server_sock, raw, pipelined, max_message_bytes=1024
    )
    events = peer.read_events()
    assert isinstance(events[0], Response)
    assert events[0].status_code == 101
    assert peer.protocol.state is State.OPEN
    return connection, peer


def test_round_trip_binary_and_text(pair):
    connection, peer = open_connection(pair)

    peer.protocol.send_binary(b"ls -la\n")
    peer.protocol.send_text("pwd\n".encode())
    peer.flush()

    assert connection.receive(1.0) == b"ls -la\n"
    assert connection.receive(1.0) == b"pwd\n"

    assert connection.send(b"\x1b[32mok\x1b[0m") is True
    frame = peer.read_events()[0]
    assert frame.opcode is Opcode.BINARY
    assert frame.data == b"\x1b[32mok\x1b[0m"


def test_receive_times_out_when_idle(pair):
    connection, _ = open_connection(pair)

    with pytest.raises(TimeoutError):
        connection.receive(0.05)


def test_pipelined_frame_after_handshake_is_delivered(pair):
    server_sock, peer = pair
    raw = peer.handshake_bytes()
    early = ClientProtocol(parse_uri("ws://localhost/ws/terminal"))
    early.state = State.OPEN
    early.send_binary(b"early")
    frame_bytes = b"".join(early.data_to_send())

    connection = WebSocketConnection.accept_upgrade(server_sock, raw, frame_bytes)

    assert connection.receive(1.0) == b"early"


def test_peer_close_ends_receive(pair):
    connection, peer = open_connection(pair)

    peer.protocol.send_close(1000)
    peer.flush()

    assert connection.receive(1.0) is None
    assert connection.send(b"late") is False


def test_close_sends_code_and_is_idempotent(pair):
    connection, peer = open_connection(pair)

    connection.close(1011, "Terminal failed to start")
    connection.close()

    frame = peer.read_events()[0]
    assert frame.opcode is Opcode.CLOSE
    assert peer.protocol.close_rcvd.code == 1011
    assert peer.protocol.close_rcvd.reason == "Terminal failed to start"
    assert connection.is_open is False
    assert connection.receive(0.1) is None


def test_invalid_handshake_is_rejected_with_400(pair):
    server_sock, peer = pair
    raw = (
        b"GET /ws/terminal HTTP/1.1\r\nHost: localhost\r\n"
        b"Connection: Upgrade\r\nUpgrade: websocket\r\n\r\n"
    )

    with pytest.raises(HandshakeRejected):
        WebSocketConnection.accept_upgrade(server_sock, raw)

    assert peer.sock.recv(65536).startswith(b"HTTP/1.1 400")
