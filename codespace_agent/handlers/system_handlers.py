"""Liveness probe handler."""

import logging
import platform
import sys
from typing import Optional

from codespace_agent.bootstrap.config import SECURITY_HEADERS
from codespace_agent.domain.correlation_id import CorrelationLoggerAdapter
from codespace_agent.domain.http_types import HttpRequest, HttpResponse
from codespace_agent.domain.response_builders import health_response
from codespace_agent.domain.sandbox import ConfinedRoot
from codespace_agent.lifecycle.state import ServerLifecycle
from codespace_agent.security.cors import CorsConfig

SYSTEM_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("codespace_agent.handlers.system"), {}
)


def handle_health(
    request: HttpRequest,
    root: ConfinedRoot,
    lifecycle: Optional[ServerLifecycle],
    cors_config: Optional[CorsConfig],
) -> HttpResponse:
    """Handle /health requests with uptime, platform and workspace details."""
    is_draining = lifecycle.is_draining() if lifecycle is not None else False
    details = {
        "uptime": round(lifecycle.uptime(), 3) if lifecycle is not None else 0.0,
        "platform": sys.platform,
        "python": platform.python_version(),
        "workdir": root.path,
    }
    if SYSTEM_LOGGER.logger.isEnabledFor(logging.DEBUG):
        SYSTEM_LOGGER.debug(
            "Health check performed",
            extra={"event": "health_check", "draining": is_draining},
        )
    return health_response(is_draining, details, request, cors_config, SECURITY_HEADERS)
