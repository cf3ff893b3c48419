"""HTTP Input/Output operations."""

import logging
import socket
import urllib.parse
from typing import Optional, Tuple

from codespace_agent.bootstrap.config import HEADER_DELIMITER, MAX_BODY_BYTES
from codespace_agent.domain.correlation_id import (
    CorrelationLoggerAdapter,
    get_correlation_id,
    set_correlation_id,
)
from codespace_agent.domain.http_types import HttpRequest, HttpResponse
from codespace_agent.pipeline.validation import RequestEntityTooLarge

IO_LOGGER = CorrelationLoggerAdapter(logging.getLogger("codespace_agent.io"), {})

MAX_HEADER_BYTES = 64 * 1024
BODY_METHODS = {"POST", "PUT", "PATCH"}


def parse_headers(lines: list[str]) -> dict[str, str]:
    """Convert raw header lines into a lowercase-keyed dictionary."""
    parsed = {}
    for line in lines:
        name, separator, value = line.partition(":")
        if separator and name:
            parsed[name.strip().lower()] = value.strip()
    return parsed


def parse_request_line(request_line: str) -> Tuple[str, str, dict[str, str]]:
    """Parse the HTTP method, decoded path and query parameters."""
    try:
        method, target, _ = request_line.split(" ", 2)
    except ValueError as exc:
        raise ValueError("Invalid request line") from exc

    parsed_target = urllib.parse.urlsplit(target)
    path = urllib.parse.unquote(parsed_target.path)
    query = dict(
        urllib.parse.parse_qsl(parsed_target.query, keep_blank_values=True)
    )
    return method, path, query


def determine_content_length(
    method: str, headers: dict[str, str], max_body_bytes: int = MAX_BODY_BYTES
) -> int:
    """Validate and return the declared Content-Length for the request."""
    header_value = headers.get("content-length")
    if header_value is None:
        if method in BODY_METHODS and "transfer-encoding" in headers:
            raise ValueError("Chunked request bodies are not supported")
        return 0
    try:
        content_length = int(header_value)
    except ValueError as exc:
        raise ValueError("Invalid Content-Length") from exc
    if content_length < 0:
        raise ValueError("Negative Content-Length")
    if content_length > max_body_bytes:
        raise RequestEntityTooLarge
    return content_length


def receive_request(
    client_socket: socket.socket,
    buffer: bytes,
    max_body_bytes: int = MAX_BODY_BYTES,
) -> Tuple[Optional[HttpRequest], bytes]:
    """Read bytes from the socket until a complete request is available."""
    while HEADER_DELIMITER not in buffer:
        if len(buffer) > MAX_HEADER_BYTES:
            raise ValueError("Request head too large")
        chunk = client_socket.recv(4096)
        if not chunk:
            return None, b""
        buffer += chunk

    header_block, remainder = buffer.split(HEADER_DELIMITER, 1)
    header_lines = header_block.decode("iso-8859-1").split("\r\n")
    method, path, query = parse_request_line(header_lines[0])
    headers = parse_headers(header_lines[1:])

    incoming_correlation_id = headers.get("x-request-id")
    if incoming_correlation_id:
        set_correlation_id(incoming_correlation_id)

    content_length = determine_content_length(method, headers, max_body_bytes)

    while len(remainder) < content_length:
        chunk = client_socket.recv(65536)
        if not chunk:
            return None, b""
        remainder += chunk

    body = remainder[:content_length]
    leftover = remainder[content_length:]
    IO_LOGGER.debug(
        "Parsed request", extra={"method": method, "route": path, "bytes_in": len(body)}
    )
    return (
        HttpRequest(
            method,
            path,
            headers,
            body,
            query=query,
            raw_head=header_block + HEADER_DELIMITER,
        ),
        leftover,
    )


def send_response(client_socket: socket.socket, response: HttpResponse) -> None:
    """Serialize and send the HTTP response over the socket."""
    headers = dict(response.headers)

    correlation_id = get_correlation_id()
    if correlation_id:
        headers["X-Request-ID"] = correlation_id

    headers["Content-Length"] = str(len(response.body))
    if response.close_connection:
        headers["Connection"] = "close"
    header_lines = [response.status_line]
    header_lines.extend(f"{name}: {value}" for name, value in headers.items())
    header_block = "\r\n".join(header_lines).encode("latin-1") + HEADER_DELIMITER
    client_socket.sendall(header_block + response.body)
    IO_LOGGER.debug(
        "Sent response",
        extra={"status_code": response.status_line.split(" ", 2)[1], "bytes_out": len(response.body)},
    )
