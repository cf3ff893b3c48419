"""Request routing logic for request/response endpoints."""

import logging
from typing import Optional

from codespace_agent.bootstrap.config import (
    FILES_ROUTE,
    HEALTH_ROUTE,
    LIST_ROUTE,
    SECURITY_HEADERS,
)
from codespace_agent.domain.correlation_id import CorrelationLoggerAdapter
from codespace_agent.domain.http_types import HttpRequest, HttpResponse
from codespace_agent.domain.response_builders import (
    method_not_allowed_response,
    not_found_response,
    unauthorized_response,
)
from codespace_agent.domain.workspace import FileGateway
from codespace_agent.handlers.file_handler import files_response, handle_list
from codespace_agent.handlers.system_handlers import handle_health
from codespace_agent.lifecycle.state import ServerLifecycle
from codespace_agent.security.auth import Authorizer
from codespace_agent.security.cors import CorsConfig

ROUTER_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("codespace_agent.pipeline.router"), {}
)


def _log_match(route: str) -> None:
    if ROUTER_LOGGER.logger.isEnabledFor(logging.DEBUG):
        ROUTER_LOGGER.debug("Route matched", extra={"event": "route_matched", "route": route})


def route_request(
    request: HttpRequest,
    gateway: FileGateway,
    lifecycle: Optional[ServerLifecycle] = None,
    cors_config: Optional[CorsConfig] = None,
    files_authorizer: Optional[Authorizer] = None,
) -> HttpResponse:
    """Route the request to the appropriate handler and return a response.

    ``files_authorizer``, when given, guards the file API routes.
    """
    if request.path == HEALTH_ROUTE:
        _log_match(HEALTH_ROUTE)
        if request.method != "GET":
            return method_not_allowed_response(
                request, cors_config, SECURITY_HEADERS, {"GET"}
            )
        return handle_health(request, gateway.root, lifecycle, cors_config)

    if request.path in (FILES_ROUTE, LIST_ROUTE):
        _log_match(request.path)
        if files_authorizer is not None and not files_authorizer.check(
            request.headers.get("authorization")
        ):
            ROUTER_LOGGER.warning(
                "Unauthorized file request rejected",
                extra={"event": "files_unauthorized", "route": request.path},
            )
            return unauthorized_response(request, cors_config, SECURITY_HEADERS)
        if request.path == LIST_ROUTE:
            if request.method != "GET":
                return method_not_allowed_response(
                    request, cors_config, SECURITY_HEADERS, {"GET"}
                )
            return handle_list(request, gateway, cors_config, SECURITY_HEADERS)
        return files_response(request, gateway, cors_config, SECURITY_HEADERS)

    ROUTER_LOGGER.info(
        "No matching route found",
        extra={
            "event": "route_not_found",
            "route": request.path,
            "method": request.method,
        },
    )
    return not_found_response(request, cors_config, SECURITY_HEADERS)
