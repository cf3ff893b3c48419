"""JSON file API handlers backed by the confined workspace."""

import json
import logging
from typing import Optional

from codespace_agent.domain.correlation_id import CorrelationLoggerAdapter
from codespace_agent.domain.http_types import HttpRequest, HttpResponse
from codespace_agent.domain.response_builders import (
    bad_request_response,
    method_not_allowed_response,
    ok_response,
)
from codespace_agent.domain.sandbox import PathEscape
from codespace_agent.domain.workspace import FileGateway, WorkspaceError
from codespace_agent.security.cors import CorsConfig

FILE_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("codespace_agent.handlers.file"), {}
)

FILE_METHODS = {"GET", "POST", "DELETE"}


class InvalidPayload(Exception):
    """Raised when a request body or query is missing required fields."""


def _required_path(request: HttpRequest) -> str:
    path = request.query_param("path")
    if path is None:
        raise InvalidPayload("Missing 'path' query parameter")
    return path


def _parse_write_payload(request: HttpRequest) -> tuple[str, str]:
    try:
        payload = json.loads(request.body.decode("utf-8") or "null")
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise InvalidPayload("Request body must be a JSON object") from exc
    if not isinstance(payload, dict):
        raise InvalidPayload("Request body must be a JSON object")
    path = payload.get("path")
    content = payload.get("content")
    if not isinstance(path, str):
        raise InvalidPayload("Field 'path' must be a string")
    if not isinstance(content, str):
        raise InvalidPayload("Field 'content' must be a string")
    return path, content


def _rejected(
    request: HttpRequest,
    error: Exception,
    cors_config: Optional[CorsConfig],
    security_headers: dict[str, str],
) -> HttpResponse:
    FILE_LOGGER.info(
        "File request rejected",
        extra={
            "event": "file_request_rejected",
            "method": request.method,
            "error_type": type(error).__name__,
            "error": str(error),
        },
    )
    return bad_request_response(request, cors_config, security_headers, str(error))


def handle_read(
    request: HttpRequest,
    gateway: FileGateway,
    cors_config: Optional[CorsConfig],
    security_headers: dict[str, str],
) -> HttpResponse:
    """GET /api/files?path= returns ``{path, content}``."""
    try:
        path = _required_path(request)
        content = gateway.read_text(path)
    except (InvalidPayload, PathEscape, WorkspaceError) as error:
        return _rejected(request, error, cors_config, security_headers)
    return ok_response(
        {"path": path, "content": content}, request, cors_config, security_headers
    )


def handle_write(
    request: HttpRequest,
    gateway: FileGateway,
    cors_config: Optional[CorsConfig],
    security_headers: dict[str, str],
) -> HttpResponse:
    """POST /api/files with ``{path, content}`` creates or overwrites a file."""
    try:
        path, content = _parse_write_payload(request)
        gateway.write_text(path, content)
    except (InvalidPayload, PathEscape, WorkspaceError) as error:
        return _rejected(request, error, cors_config, security_headers)
    return ok_response({"success": True}, request, cors_config, security_headers)


def handle_delete(
    request: HttpRequest,
    gateway: FileGateway,
    cors_config: Optional[CorsConfig],
    security_headers: dict[str, str],
) -> HttpResponse:
    """DELETE /api/files?path= removes a file or tree; missing is success."""
    try:
        gateway.delete(_required_path(request))
    except (InvalidPayload, PathEscape, WorkspaceError) as error:
        return _rejected(request, error, cors_config, security_headers)
    return ok_response({"success": True}, request, cors_config, security_headers)


def handle_list(
    request: HttpRequest,
    gateway: FileGateway,
    cors_config: Optional[CorsConfig],
    security_headers: dict[str, str],
) -> HttpResponse:
    """GET /api/list?path= lists immediate children of a directory."""
    path = request.query_param("path") or ""
    try:
        entries = gateway.list_entries(path)
    except (PathEscape, WorkspaceError) as error:
        return _rejected(request, error, cors_config, security_headers)
    return ok_response(
        {"path": path or ".", "entries": [entry.to_dict() for entry in entries]},
        request,
        cors_config,
        security_headers,
    )


def files_response(
    request: HttpRequest,
    gateway: FileGateway,
    cors_config: Optional[CorsConfig],
    security_headers: dict[str, str],
) -> HttpResponse:
    """Dispatch /api/files by HTTP method."""
    if request.method == "GET":
        return handle_read(request, gateway, cors_config, security_headers)
    if request.method == "POST":
        return handle_write(request, gateway, cors_config, security_headers)
    if request.method == "DELETE":
        return handle_delete(request, gateway, cors_config, security_headers)
    FILE_LOGGER.warning(
        "Unsupported method",
        extra={"event": "method_not_allowed", "method": request.method},
    )
    return method_not_allowed_response(
        request, cors_config, security_headers, FILE_METHODS
    )
