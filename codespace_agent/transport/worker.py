"""Worker thread logic for handling individual client connections."""

import logging
import socket
import threading
from dataclasses import dataclass
from typing import Optional

from codespace_agent.bootstrap.config import (
    ALLOWED_METHODS,
    SECURITY_HEADERS,
    TERMINAL_ROUTE,
)
from codespace_agent.domain.correlation_id import (
    CorrelationLoggerAdapter,
    clear_correlation_id,
    generate_correlation_id,
    set_correlation_id,
)
from codespace_agent.domain.http_types import HttpRequest
from codespace_agent.domain.response_builders import (
    bad_request_response,
    draining_response,
    entity_too_large_response,
)
from codespace_agent.handlers.terminal_handler import handle_terminal_upgrade
from codespace_agent.pipeline.io import receive_request, send_response
from codespace_agent.pipeline.router import route_request
from codespace_agent.pipeline.validation import RequestEntityTooLarge, validate_request
from codespace_agent.security.cors import CorsConfig, is_preflight_request, preflight_response
from codespace_agent.transport.context import WorkerContext

WORKER_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("codespace_agent.transport.worker"), {}
)


def _read_request_with_validation(
    client_socket: socket.socket,
    buffer: bytes,
    client_addr_str: str,
    max_body_bytes: int,
) -> tuple[Optional[HttpRequest], bytes, bool]:
    """Read a request from the socket while enforcing size limits."""

    try:
        request, buffer = receive_request(client_socket, buffer, max_body_bytes)
    except RequestEntityTooLarge:
        WORKER_LOGGER.warning(
            "Request body size exceeded limit",
            extra={
                "event": "body_size_exceeded",
                "client": client_addr_str,
                "limit": max_body_bytes,
            },
        )
        send_response(client_socket, entity_too_large_response(SECURITY_HEADERS))
        return None, b"", True
    except ValueError:
        WORKER_LOGGER.warning(
            "Malformed request received",
            extra={"event": "malformed_request", "client": client_addr_str},
        )
        send_response(client_socket, bad_request_response(None, None, SECURITY_HEADERS))
        return None, b"", True

    if request is None:
        if WORKER_LOGGER.logger.isEnabledFor(logging.DEBUG):
            WORKER_LOGGER.debug(
                "Client disconnected during request",
                extra={"event": "client_disconnected", "client": client_addr_str},
            )
        return None, buffer, True
    return request, buffer, False


def _handle_validation_response(
    request: HttpRequest,
    client_socket: socket.socket,
    cors_config: Optional[CorsConfig],
    max_body_bytes: int,
) -> tuple[bool, bool]:
    validation_response = validate_request(
        request, ALLOWED_METHODS, max_body_bytes, cors_config, SECURITY_HEADERS
    )
    if validation_response is None:
        return False, False
    send_response(client_socket, validation_response)
    return True, validation_response.close_connection


def _process_request(
    request: HttpRequest,
    leftover: bytes,
    context: WorkerContext,
    client_socket: socket.socket,
) -> bool:
    """Handle one request; return True when the connection must end."""
    if is_preflight_request(request):
        response = preflight_response(request, context.cors_config, SECURITY_HEADERS)
        send_response(client_socket, response)
        return response.close_connection

    if request.path == TERMINAL_ROUTE:
        handle_terminal_upgrade(
            client_socket,
            request,
            leftover,
            context.bridge,
            context.authorizer,
            context.lifecycle,
            context.cors_config,
        )
        return True

    handled, validation_requires_close = _handle_validation_response(
        request, client_socket, context.cors_config, context.max_body_bytes
    )
    if handled:
        return validation_requires_close

    response = route_request(
        request,
        context.gateway,
        context.lifecycle,
        context.cors_config,
        context.files_authorizer,
    )
    send_response(client_socket, response)
    return response.close_connection


def _prepare_worker(
    context: WorkerContext,
    client_socket: socket.socket,
    current_thread: threading.Thread,
):
    lifecycle = context.lifecycle
    if lifecycle is not None:
        lifecycle.register_worker(current_thread)
    if context.config is not None:
        client_socket.settimeout(context.config.socket_timeout)
    return lifecycle


def _drain_if_requested(lifecycle, client_socket: socket.socket) -> bool:
    if lifecycle is None or not lifecycle.is_draining():
        return False
    send_response(client_socket, draining_response(SECURITY_HEADERS))
    return True


@dataclass
class _WorkerResources:
    thread: threading.Thread
    client_socket: socket.socket
    client_ip: str
    client_addr_str: str


def _cleanup_worker(
    context: WorkerContext,
    lifecycle,
    resources: _WorkerResources,
):
    if context.connection_limiter is not None:
        context.connection_limiter.release(resources.client_ip)
    if lifecycle is not None:
        lifecycle.cleanup_worker(resources.thread)

    try:
        resources.client_socket.shutdown(socket.SHUT_WR)
    except OSError:
        pass
    resources.client_socket.close()

    WORKER_LOGGER.debug(
        "Socket closed",
        extra={"event": "socket_closed", "client": resources.client_addr_str},
    )
    clear_correlation_id()


def handle_client(
    client_socket: socket.socket,
    client_address: tuple[str, int],
    context: WorkerContext,
) -> None:
    """Process requests on a client socket until the connection is closed.

    A terminal upgrade takes the socket over for the rest of its life.
    """
    buffer = b""
    current_thread = threading.current_thread()
    lifecycle = _prepare_worker(context, client_socket, current_thread)
    client_addr_str = f"{client_address[0]}:{client_address[1]}"
    resources = _WorkerResources(
        current_thread, client_socket, client_address[0], client_addr_str
    )

    try:
        while True:
            set_correlation_id(generate_correlation_id())

            if _drain_if_requested(lifecycle, client_socket):
                break

            request, buffer, should_terminate = _read_request_with_validation(
                client_socket, buffer, client_addr_str, context.max_body_bytes
            )
            if should_terminate or request is None:
                clear_correlation_id()
                break

            WORKER_LOGGER.info(
                "Request received",
                extra={
                    "event": "request_received",
                    "client": client_addr_str,
                    "method": request.method,
                    "route": request.path,
                    "origin": request.headers.get("origin", "none"),
                },
            )

            should_terminate_connection = _process_request(
                request, buffer, context, client_socket
            )

            WORKER_LOGGER.debug(
                "Request processing complete",
                extra={"event": "request_complete", "client": client_addr_str},
            )

            clear_correlation_id()

            if should_terminate_connection:
                break
    except (
        ConnectionError,
        TimeoutError,
        OSError,
        UnicodeDecodeError,
    ) as error:
        WORKER_LOGGER.error(
            "Error handling client connection",
            extra={
                "event": "connection_error",
                "client": client_addr_str,
                "error_type": type(error).__name__,
            },
        )
    except Exception as error:  # pylint: disable=broad-except
        WORKER_LOGGER.error(
            "Unexpected error in worker",
            extra={
                "event": "worker_error",
                "client": client_addr_str,
                "error_type": type(error).__name__,
                "error": str(error),
            },
            exc_info=True,
        )
    finally:
        _cleanup_worker(
            context,
            lifecycle,
            resources,
        )
