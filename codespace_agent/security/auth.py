"""Pluggable authorization policies for terminal upgrades and file routes."""

import hmac
import logging
from typing import Optional, Protocol

from codespace_agent.domain.correlation_id import CorrelationLoggerAdapter

AUTH_LOGGER = CorrelationLoggerAdapter(logging.getLogger("codespace_agent.auth"), {})

AUTH_MODE_TOKEN = "token"
AUTH_MODE_NONE = "none"
AUTH_MODES = (AUTH_MODE_TOKEN, AUTH_MODE_NONE)

BEARER_PREFIX = "Bearer "


class Authorizer(Protocol):  # pylint: disable=too-few-public-methods
    """Decides whether the presented credentials grant access."""

    def check(self, credentials: Optional[str]) -> bool:
        """Return True when ``credentials`` (the Authorization header) is accepted."""


class BearerTokenAuthorizer:  # pylint: disable=too-few-public-methods
    """Accept only ``Authorization: Bearer <token>`` with the pre-shared token."""

    def __init__(self, token: str) -> None:
        if not token:
            raise ValueError("Bearer token must not be empty")
        self._expected = f"{BEARER_PREFIX}{token}".encode("utf-8")

    def check(self, credentials: Optional[str]) -> bool:
        if not credentials:
            return False
        return hmac.compare_digest(credentials.encode("utf-8"), self._expected)


class AllowAllAuthorizer:  # pylint: disable=too-few-public-methods
    """Accept every request. Only suitable on a trusted network."""

    def check(self, credentials: Optional[str]) -> bool:
        return True


def build_authorizer(mode: str, token: Optional[str]) -> Authorizer:
    """Create the authorizer selected by configuration."""
    if mode == AUTH_MODE_NONE:
        AUTH_LOGGER.warning(
            "Authorization disabled; terminal access is open to any client",
            extra={"event": "auth_disabled"},
        )
        return AllowAllAuthorizer()
    if mode == AUTH_MODE_TOKEN:
        if not token:
            raise ValueError("Token authorization requires a non-empty token")
        return BearerTokenAuthorizer(token)
    raise ValueError(f"Unknown authorization mode: {mode!r}")
