"""Listening socket creation and TLS configuration."""

import argparse
import logging
import socket
import ssl
import sys

from codespace_agent.domain.correlation_id import CorrelationLoggerAdapter

SOCKET_LOGGER = CorrelationLoggerAdapter(logging.getLogger("codespace_agent.socket"), {})

ACCEPT_POLL_SECONDS = 0.5


def create_server_socket(args: argparse.Namespace) -> socket.socket:
    """Create the listening socket, wrapping it in TLS when a cert is configured."""
    reuse_port = hasattr(socket, "SO_REUSEPORT")
    try:
        server_socket = socket.create_server(
            (args.host, args.port), reuse_port=reuse_port
        )
    except OSError as error:
        SOCKET_LOGGER.critical(
            "Failed to bind listening socket",
            extra={
                "event": "bind_failed",
                "host": args.host,
                "port": args.port,
                "error": str(error),
            },
        )
        sys.exit(1)
    server_socket.settimeout(ACCEPT_POLL_SECONDS)
    if args.cert and args.key:
        try:
            tls_context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
            tls_context.load_cert_chain(args.cert, args.key)
            server_socket = tls_context.wrap_socket(server_socket, server_side=True)
        except ssl.SSLError as error:
            SOCKET_LOGGER.critical(
                "Failed to load TLS certificates",
                extra={"event": "tls_error", "error": str(error)},
            )
            sys.exit(1)
    return server_socket
