"""Unit tests for the terminal upgrade handler."""

import base64
import logging
import os
from unittest.mock import MagicMock, patch

import pytest

from codespace_agent.domain.http_types import HttpRequest
from codespace_agent.handlers.terminal_handler import (
    INTERNAL_ERROR,
    handle_terminal_upgrade,
)
from codespace_agent.lifecycle.state import ServerLifecycle
from codespace_agent.security.auth import BearerTokenAuthorizer
from codespace_agent.terminal.shell import ProcessSpawnFailure, TerminalSettings

HANDLER = "codespace_agent.handlers.terminal_handler"


def upgrade_request(authorization=None, upgrade=True, with_key=True):
    headers = {"host": "localhost"}
    if upgrade:
        headers.update(
            {
                "connection": "Upgrade",
                "upgrade": "websocket",
                "sec-websocket-version": "13",
            }
        )
        if with_key:
            headers["sec-websocket-key"] = base64.b64encode(os.urandom(16)).decode()
    if authorization is not None:
        headers["authorization"] = authorization
    head = "GET /ws/terminal HTTP/1.1\r\n" + "".join(
        f"{name}: {value}\r\n" for name, value in headers.items()
    )
    return HttpRequest(
        "GET", "/ws/terminal", headers, b"", raw_head=(head + "\r\n").encode()
    )


@pytest.fixture(name="bridge")
def bridge_fixture():
    bridge = MagicMock()
    bridge.settings = TerminalSettings()
    return bridge


@pytest.fixture(name="authorizer")
def authorizer_fixture():
    return BearerTokenAuthorizer("s3cret")


def _sent(client_socket) -> bytes:
    return b"".join(call.args[0] for call in client_socket.sendall.call_args_list)


def test_missing_credentials_get_401_and_no_shell(bridge, authorizer, caplog):
    caplog.set_level(logging.WARNING)
    client_socket = MagicMock()

    handle_terminal_upgrade(client_socket, upgrade_request(), b"", bridge, authorizer)

    bridge.open.assert_not_called()
    assert _sent(client_socket).startswith(b"HTTP/1.1 401 Unauthorized")
    assert b"WWW-Authenticate: Bearer" in _sent(client_socket)
    assert any(
        getattr(r, "event", None) == "terminal_unauthorized" for r in caplog.records
    )


def test_wrong_token_gets_401(bridge, authorizer):
    client_socket = MagicMock()

    handle_terminal_upgrade(
        client_socket, upgrade_request("Bearer nope"), b"", bridge, authorizer
    )

    bridge.open.assert_not_called()
    assert _sent(client_socket).startswith(b"HTTP/1.1 401")


def test_plain_get_is_rejected_with_400(bridge, authorizer):
    client_socket = MagicMock()

    handle_terminal_upgrade(
        client_socket, upgrade_request("Bearer s3cret", upgrade=False), b"", bridge, authorizer
    )

    bridge.open.assert_not_called()
    assert _sent(client_socket).startswith(b"HTTP/1.1 400")


def test_draining_refuses_new_sessions(bridge, authorizer):
    lifecycle = ServerLifecycle()
    lifecycle.begin_draining()
    client_socket = MagicMock()

    handle_terminal_upgrade(
        client_socket, upgrade_request("Bearer s3cret"), b"", bridge, authorizer, lifecycle
    )

    bridge.open.assert_not_called()
    assert _sent(client_socket).startswith(b"HTTP/1.1 503")


def test_authorized_upgrade_opens_and_runs_session(bridge, authorizer):
    client_socket = MagicMock()
    request = upgrade_request("Bearer s3cret")

    with patch(f"{HANDLER}.WebSocketConnection.accept_upgrade") as accept:
        handle_terminal_upgrade(client_socket, request, b"early", bridge, authorizer)

    accept.assert_called_once_with(
        client_socket, request.raw_head, b"early", bridge.settings.max_message_bytes
    )
    bridge.open.assert_called_once_with(accept.return_value)
    bridge.open.return_value.run.assert_called_once()


def test_spawn_failure_closes_with_internal_error(bridge, authorizer, caplog):
    bridge.open.side_effect = ProcessSpawnFailure("no shell")
    client_socket = MagicMock()

    with patch(f"{HANDLER}.WebSocketConnection.accept_upgrade") as accept:
        handle_terminal_upgrade(
            client_socket, upgrade_request("Bearer s3cret"), b"", bridge, authorizer
        )

    accept.return_value.close.assert_called_once_with(
        INTERNAL_ERROR, "Terminal failed to start"
    )
    assert any(
        getattr(r, "event", None) == "terminal_spawn_failed" for r in caplog.records
    )


def test_invalid_handshake_never_spawns(bridge, authorizer):
    client_socket = MagicMock()
    request = upgrade_request("Bearer s3cret", with_key=False)

    handle_terminal_upgrade(client_socket, request, b"", bridge, authorizer)

    bridge.open.assert_not_called()
    assert _sent(client_socket).startswith(b"HTTP/1.1 400")
