"""Pure HTTP response builders."""

import json
from typing import Any, Optional

from codespace_agent.domain.http_types import HttpRequest, HttpResponse, should_close
from codespace_agent.security.cors import apply_cors_headers

JSON_CONTENT_TYPE = "application/json; charset=utf-8"


def _connection_preference(request: Optional[HttpRequest]) -> bool:
    return should_close(request.headers) if request is not None else True


def json_response(
    status_line: str,
    payload: Any,
    request: Optional[HttpRequest],
    cors_config,
    security_headers: dict[str, str],
    close_connection: Optional[bool] = None,
) -> HttpResponse:
    """Serialize ``payload`` as a JSON response with CORS headers applied."""
    # pylint: disable=too-many-arguments, too-many-positional-arguments
    body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
    headers = {"Content-Type": JSON_CONTENT_TYPE, **security_headers}
    if request is not None:
        apply_cors_headers(headers, request, cors_config)
    if close_connection is None:
        close_connection = _connection_preference(request)
    return HttpResponse(status_line, headers, body, close_connection)


def ok_response(
    payload: Any, request: HttpRequest, cors_config, security_headers: dict[str, str]
) -> HttpResponse:
    """Return a 200 OK JSON response."""
    return json_response(
        "HTTP/1.1 200 OK", payload, request, cors_config, security_headers
    )


def error_response(
    status_line: str,
    message: str,
    request: Optional[HttpRequest],
    cors_config,
    security_headers: dict[str, str],
    close_connection: Optional[bool] = None,
) -> HttpResponse:
    """Return an ``{"error": message}`` JSON response."""
    # pylint: disable=too-many-arguments, too-many-positional-arguments
    return json_response(
        status_line,
        {"error": message},
        request,
        cors_config,
        security_headers,
        close_connection,
    )


def not_found_response(
    request: HttpRequest, cors_config, security_headers: dict[str, str]
) -> HttpResponse:
    """Return a 404 response reusing the connection preference."""
    return error_response(
        "HTTP/1.1 404 Not Found", "Not found", request, cors_config, security_headers
    )


def bad_request_response(
    request: Optional[HttpRequest],
    cors_config,
    security_headers: dict[str, str],
    message: str = "Bad request",
) -> HttpResponse:
    """Produce a 400 response honoring the caller's connection preference."""
    return error_response(
        "HTTP/1.1 400 Bad Request", message, request, cors_config, security_headers
    )


def unauthorized_response(
    request: HttpRequest, cors_config, security_headers: dict[str, str]
) -> HttpResponse:
    """Produce a 401 response that always closes the connection."""
    response = error_response(
        "HTTP/1.1 401 Unauthorized",
        "Unauthorized",
        request,
        cors_config,
        security_headers,
        close_connection=True,
    )
    response.headers["WWW-Authenticate"] = "Bearer"
    return response


def server_error_response(
    request: Optional[HttpRequest],
    cors_config,
    security_headers: dict[str, str],
    message: str = "Internal server error",
) -> HttpResponse:
    """Produce a 500 response that always closes the connection."""
    return error_response(
        "HTTP/1.1 500 Internal Server Error",
        message,
        request,
        cors_config,
        security_headers,
        close_connection=True,
    )


def entity_too_large_response(security_headers: dict[str, str]) -> HttpResponse:
    """Produce a 413 response that always closes the connection."""
    return error_response(
        "HTTP/1.1 413 Payload Too Large",
        "Request body too large",
        None,
        None,
        security_headers,
    )


def connection_limited_response(
    limit_type: str | None, security_headers: dict[str, str]
) -> HttpResponse:
    """Produce a 503 response describing which connection quota was exceeded."""
    reason = "Connection limit exceeded"
    if limit_type:
        reason = f"{limit_type} connection limit exceeded"
    response = error_response(
        "HTTP/1.1 503 Service Unavailable", reason, None, None, security_headers
    )
    response.headers["Retry-After"] = "1"
    return response


def draining_response(security_headers: dict[str, str]) -> HttpResponse:
    """Produce a 503 response indicating the server is draining."""
    return json_response(
        "HTTP/1.1 503 Service Unavailable",
        {"status": "draining"},
        None,
        None,
        security_headers,
    )


def health_response(
    is_draining: bool,
    details: dict[str, Any],
    request: HttpRequest,
    cors_config,
    security_headers: dict[str, str],
) -> HttpResponse:
    """Produce a health check response based on server state."""
    # pylint: disable=too-many-arguments, too-many-positional-arguments
    if is_draining:
        return json_response(
            "HTTP/1.1 503 Service Unavailable",
            {"status": "draining", **details},
            request,
            cors_config,
            security_headers,
            close_connection=True,
        )
    return json_response(
        "HTTP/1.1 200 OK",
        {"status": "ok", **details},
        request,
        cors_config,
        security_headers,
    )


def method_not_allowed_response(
    request: HttpRequest, cors_config, security_headers: dict[str, str], allowed_methods
) -> HttpResponse:
    """Produce a 405 response enumerating the supported HTTP methods."""
    response = error_response(
        "HTTP/1.1 405 Method Not Allowed",
        "Method not allowed",
        request,
        cors_config,
        security_headers,
    )
    response.headers["Allow"] = ", ".join(sorted(allowed_methods))
    return response
