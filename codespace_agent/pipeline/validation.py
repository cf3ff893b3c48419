"""Request validation utilities for the agent."""

from codespace_agent.domain.http_types import HttpRequest
from codespace_agent.domain.response_builders import (
    bad_request_response,
    entity_too_large_response,
    method_not_allowed_response,
)


class RequestEntityTooLarge(Exception):
    """Raised when a request body exceeds configured limits."""


def enforce_allowed_method(
    request: HttpRequest,
    allowed_methods: set[str],
    cors_config,
    security_headers: dict[str, str],
):
    """Ensure the HTTP method is part of the supported allowlist."""
    if request.method in allowed_methods:
        return None

    return method_not_allowed_response(
        request, cors_config, security_headers, allowed_methods
    )


def enforce_well_formed_target(
    request: HttpRequest, cors_config, security_headers: dict[str, str]
):
    """Reject request targets that are not origin-form or carry NUL bytes."""
    if not request.path.startswith("/") or "\x00" in request.path:
        return bad_request_response(
            request, cors_config, security_headers, "Malformed request target"
        )
    if any("\x00" in value for value in request.query.values()):
        return bad_request_response(
            request, cors_config, security_headers, "Malformed query string"
        )
    return None


def enforce_post_constraints(
    request: HttpRequest,
    max_body_bytes: int,
    cors_config,
    security_headers: dict[str, str],
):
    """Validate POST-specific invariants such as Content-Length and size."""
    declared_length = request.headers.get("content-length")
    if declared_length is None:
        return bad_request_response(
            request, cors_config, security_headers, "Missing Content-Length"
        )
    try:
        content_length = int(declared_length)
    except ValueError:
        return bad_request_response(
            request, cors_config, security_headers, "Invalid Content-Length"
        )
    if content_length != len(request.body):
        return bad_request_response(
            request, cors_config, security_headers, "Incomplete request body"
        )
    if content_length > max_body_bytes:
        return entity_too_large_response(security_headers)
    return None


def validate_request(
    request: HttpRequest,
    allowed_methods: set[str],
    max_body_bytes: int,
    cors_config,
    security_headers: dict[str, str],
):
    """Return an error response when the request fails validation checks."""
    method_error = enforce_allowed_method(
        request, allowed_methods, cors_config, security_headers
    )
    if method_error is not None:
        return method_error

    target_error = enforce_well_formed_target(request, cors_config, security_headers)
    if target_error is not None:
        return target_error

    if request.method == "POST":
        return enforce_post_constraints(
            request, max_body_bytes, cors_config, security_headers
        )

    return None
