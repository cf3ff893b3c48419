"""Main connection acceptance loop."""

import argparse
import logging
import socket
import threading

from codespace_agent.bootstrap.config import SECURITY_HEADERS, ServerConfig, split_csv
from codespace_agent.bootstrap.socket_factory import create_server_socket
from codespace_agent.domain.correlation_id import CorrelationLoggerAdapter
from codespace_agent.domain.response_builders import (
    connection_limited_response,
    draining_response,
)
from codespace_agent.domain.workspace import FileGateway
from codespace_agent.lifecycle.state import ServerLifecycle
from codespace_agent.pipeline.io import send_response
from codespace_agent.security.auth import Authorizer
from codespace_agent.security.cors import CorsConfig
from codespace_agent.terminal.bridge import SessionBridge
from codespace_agent.transport.connection_limiter import LIMIT_GLOBAL, ConnectionLimiter
from codespace_agent.transport.context import WorkerContext
from codespace_agent.transport.worker import handle_client

ACCEPT_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("codespace_agent.transport.accept"), {}
)


def create_cors_config(args: argparse.Namespace) -> CorsConfig:
    """Create CORS configuration from CLI arguments."""
    return CorsConfig(
        allowed_origins=split_csv(args.cors_allowed_origins),
        allowed_methods=split_csv(args.cors_allowed_methods),
        allowed_headers=split_csv(args.cors_allowed_headers),
        expose_headers=split_csv(args.cors_expose_headers),
        allow_credentials=args.cors_allow_credentials,
        max_age=args.cors_max_age,
    )


def _reject_client(client_socket: socket.socket, response) -> None:
    try:
        send_response(client_socket, response)
    except OSError:
        pass
    finally:
        client_socket.close()


def _handle_accepted_client(
    client_socket: socket.socket,
    client_address: tuple[str, int],
    handler_context: WorkerContext,
) -> None:
    """Hand a newly accepted connection to its own worker thread."""
    client_addr_str = f"{client_address[0]}:{client_address[1]}"
    if ACCEPT_LOGGER.logger.isEnabledFor(logging.DEBUG):
        ACCEPT_LOGGER.debug(
            "Client connection accepted",
            extra={"event": "client_accepted", "client": client_addr_str},
        )

    limiter = handler_context.connection_limiter
    limit_type = limiter.acquire(client_address[0]) if limiter is not None else None
    if limit_type is not None:
        ACCEPT_LOGGER.warning(
            "Connection limit reached",
            extra={
                "event": (
                    "connection_limit_reached"
                    if limit_type == LIMIT_GLOBAL
                    else "per_ip_limit_reached"
                ),
                "client": client_addr_str,
                "limit_type": limit_type,
            },
        )
        _reject_client(
            client_socket, connection_limited_response(limit_type, SECURITY_HEADERS)
        )
        return

    thread = threading.Thread(
        target=handle_client,
        args=(client_socket, client_address, handler_context),
        name=f"agent-conn-{client_addr_str}",
        daemon=False,
    )
    thread.start()


# pylint: disable=too-many-arguments, too-many-positional-arguments
def run_server(
    args: argparse.Namespace,
    config: ServerConfig,
    lifecycle: ServerLifecycle,
    gateway: FileGateway,
    bridge: SessionBridge,
    authorizer: Authorizer,
) -> None:
    """Create the listening socket and serve clients until shutdown."""

    server_socket = create_server_socket(args)

    ACCEPT_LOGGER.info(
        "Agent listening for connections",
        extra={
            "event": "server_listening",
            "host": args.host,
            "port": server_socket.getsockname()[1],
            "workdir": str(gateway.root),
            "auth_mode": args.auth,
            "tls": bool(args.cert and args.key),
        },
    )

    handler_context = WorkerContext(
        gateway=gateway,
        bridge=bridge,
        authorizer=authorizer,
        connection_limiter=ConnectionLimiter(
            args.max_connections,
            args.max_connections_per_ip,
        ),
        lifecycle=lifecycle,
        config=config,
        cors_config=create_cors_config(args),
    )

    try:
        while True:
            try:
                client_socket, client_address = server_socket.accept()
            except socket.timeout:
                if lifecycle.should_stop():
                    break
                continue
            except OSError as error:
                if lifecycle.should_stop():
                    break
                ACCEPT_LOGGER.error(
                    "Socket accept failed",
                    extra={"event": "accept_error", "error_type": type(error).__name__},
                )
                continue

            if lifecycle.is_draining():
                _reject_client(client_socket, draining_response(SECURITY_HEADERS))
                continue

            _handle_accepted_client(client_socket, client_address, handler_context)
    finally:
        server_socket.close()
        ACCEPT_LOGGER.info(
            "Waiting for active connections to complete",
            extra={
                "event": "shutdown_waiting",
                "shutdown_grace_seconds": config.shutdown_grace_seconds,
            },
        )
        lifecycle.wait_for_workers(config.shutdown_grace_seconds)
        ACCEPT_LOGGER.info("Agent shutdown complete", extra={"event": "server_stopped"})
