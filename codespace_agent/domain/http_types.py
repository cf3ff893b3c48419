"""Shared HTTP type definitions to avoid circular imports."""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class HttpRequest:
    """Represents a parsed HTTP request."""

    method: str
    path: str
    headers: dict[str, str]
    body: bytes
    query: dict[str, str] = field(default_factory=dict)
    raw_head: bytes = b""

    def query_param(self, name: str) -> Optional[str]:
        """Return a decoded query string value, or None when absent."""
        return self.query.get(name)


@dataclass
class HttpResponse:
    """Represents an HTTP response to be sent to a client."""

    status_line: str
    headers: dict[str, str]
    body: bytes
    close_connection: bool


def should_close(headers: dict[str, str]) -> bool:
    """Determine whether the connection should be closed after responding."""
    return headers.get("connection", "").lower() == "close"


def is_websocket_upgrade(headers: dict[str, str]) -> bool:
    """Return True when the request asks to switch to the WebSocket protocol."""
    connection_tokens = {
        token.strip().lower() for token in headers.get("connection", "").split(",")
    }
    return (
        "upgrade" in connection_tokens
        and headers.get("upgrade", "").lower() == "websocket"
    )
