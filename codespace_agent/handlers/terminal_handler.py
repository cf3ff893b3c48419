"""WebSocket terminal upgrade handler."""

import logging
import socket
from typing import Optional

from codespace_agent.bootstrap.config import SECURITY_HEADERS
from codespace_agent.domain.correlation_id import CorrelationLoggerAdapter
from codespace_agent.domain.http_types import HttpRequest, is_websocket_upgrade
from codespace_agent.domain.response_builders import (
    bad_request_response,
    draining_response,
    unauthorized_response,
)
from codespace_agent.lifecycle.state import ServerLifecycle
from codespace_agent.pipeline.io import send_response
from codespace_agent.security.auth import Authorizer
from codespace_agent.security.cors import CorsConfig
from codespace_agent.terminal.bridge import SessionBridge
from codespace_agent.terminal.shell import ProcessSpawnFailure
from codespace_agent.transport.websocket import HandshakeRejected, WebSocketConnection

TERMINAL_HANDLER_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("codespace_agent.handlers.terminal"), {}
)

INTERNAL_ERROR = 1011


def handle_terminal_upgrade(
    client_socket: socket.socket,
    request: HttpRequest,
    leftover: bytes,
    bridge: SessionBridge,
    authorizer: Authorizer,
    lifecycle: Optional[ServerLifecycle] = None,
    cors_config: Optional[CorsConfig] = None,
) -> None:
    """Authorize, upgrade and run a terminal session on ``client_socket``.

    The caller closes the socket afterwards; nothing is spawned unless the
    request is authorized and the WebSocket handshake succeeds.
    """
    # pylint: disable=too-many-arguments, too-many-positional-arguments
    if not is_websocket_upgrade(request.headers):
        TERMINAL_HANDLER_LOGGER.info(
            "Terminal route requested without upgrade",
            extra={"event": "terminal_not_upgrade", "method": request.method},
        )
        send_response(
            client_socket,
            bad_request_response(
                request, cors_config, SECURITY_HEADERS, "Expected WebSocket upgrade"
            ),
        )
        return

    if not authorizer.check(request.headers.get("authorization")):
        TERMINAL_HANDLER_LOGGER.warning(
            "Unauthorized terminal upgrade rejected",
            extra={"event": "terminal_unauthorized", "origin": request.headers.get("origin", "none")},
        )
        send_response(
            client_socket, unauthorized_response(request, cors_config, SECURITY_HEADERS)
        )
        return

    if lifecycle is not None and lifecycle.is_draining():
        send_response(client_socket, draining_response(SECURITY_HEADERS))
        return

    try:
        connection = WebSocketConnection.accept_upgrade(
            client_socket,
            request.raw_head,
            leftover,
            bridge.settings.max_message_bytes,
        )
    except HandshakeRejected as error:
        TERMINAL_HANDLER_LOGGER.warning(
            "WebSocket handshake rejected",
            extra={"event": "terminal_handshake_rejected", "error": str(error)},
        )
        return

    try:
        session = bridge.open(connection)
    except ProcessSpawnFailure as error:
        connection.close(INTERNAL_ERROR, "Terminal failed to start")
        TERMINAL_HANDLER_LOGGER.error(
            "Terminal session not created",
            extra={"event": "terminal_spawn_failed", "error": str(error)},
        )
        return

    session.run()
