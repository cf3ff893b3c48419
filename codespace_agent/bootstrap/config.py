"""Agent configuration and CLI argument parsing."""

import argparse
import os
from dataclasses import dataclass

from codespace_agent.security.auth import AUTH_MODE_TOKEN, AUTH_MODES


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value is not None else default


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: list[str]) -> list[str]:
    value = os.getenv(name)
    if value is None:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


def split_csv(value: str) -> list[str]:
    """Split a comma-separated CLI value into trimmed, non-empty items."""
    return [item.strip() for item in value.split(",") if item.strip()]


MAX_BODY_BYTES = _env_int("AGENT_MAX_BODY_BYTES", 10 * 1024 * 1024)
DEFAULT_PORT = _env_int("PORT", 3001)
DEFAULT_MAX_CONNECTIONS = _env_int("AGENT_MAX_CONNECTIONS", 64)
DEFAULT_MAX_CONNECTIONS_PER_IP = _env_int("AGENT_MAX_CONNECTIONS_PER_IP", 16)
DEFAULT_SOCKET_TIMEOUT = _env_int("AGENT_SOCKET_TIMEOUT", 60)
DEFAULT_SHUTDOWN_GRACE_SECONDS = _env_int("AGENT_SHUTDOWN_GRACE_SECONDS", 10)
DEFAULT_TERMINAL_ROWS = _env_int("AGENT_TERMINAL_ROWS", 24)
DEFAULT_TERMINAL_COLS = _env_int("AGENT_TERMINAL_COLS", 80)
DEFAULT_TERMINAL_BUFFER_CHUNKS = _env_int("AGENT_TERMINAL_BUFFER_CHUNKS", 256)
DEFAULT_MAX_MESSAGE_BYTES = _env_int("AGENT_MAX_MESSAGE_BYTES", 1024 * 1024)
DEFAULT_PROTECT_FILES = _env_bool("AGENT_PROTECT_FILES", False)
DEFAULT_CORS_ALLOWED_ORIGINS = _env_list(
    "AGENT_CORS_ALLOWED_ORIGINS",
    [
        "http://localhost",
        "http://localhost:*",
        "http://127.0.0.1",
        "http://127.0.0.1:*",
        "https://*.app.github.dev",
    ],
)
DEFAULT_CORS_ALLOWED_METHODS = _env_list(
    "AGENT_CORS_ALLOWED_METHODS", ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
)
DEFAULT_CORS_ALLOWED_HEADERS = _env_list(
    "AGENT_CORS_ALLOWED_HEADERS", ["Content-Type", "Authorization"]
)
DEFAULT_CORS_EXPOSE_HEADERS = _env_list(
    "AGENT_CORS_EXPOSE_HEADERS", ["X-Request-ID"]
)
DEFAULT_CORS_ALLOW_CREDENTIALS = _env_bool("AGENT_CORS_ALLOW_CREDENTIALS", False)
DEFAULT_CORS_MAX_AGE = _env_int("AGENT_CORS_MAX_AGE", 86400)

HEADER_DELIMITER = b"\r\n\r\n"
HEALTH_ROUTE = "/health"
FILES_ROUTE = "/api/files"
LIST_ROUTE = "/api/list"
TERMINAL_ROUTE = "/ws/terminal"
ALLOWED_METHODS = {"GET", "POST", "DELETE", "OPTIONS"}

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "Cache-Control": "no-store",
}


@dataclass
class ServerConfig:
    """Server configuration including timeouts and shutdown settings."""

    socket_timeout: int
    shutdown_grace_seconds: int
    max_body_bytes: int = MAX_BODY_BYTES
    protect_files: bool = False


def parse_cli_args(argv: list[str]) -> argparse.Namespace:
    """Return parsed CLI arguments for agent configuration."""
    parser = argparse.ArgumentParser(
        description="Remote development agent: sandboxed file API and web terminal"
    )
    parser.add_argument("--host", default=os.getenv("AGENT_HOST", "localhost"))
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    parser.add_argument(
        "--workdir",
        default=os.getenv("AGENT_WORKDIR"),
        help="Confined root directory (default: discovered from the current directory)",
    )
    parser.add_argument(
        "--auth",
        default=os.getenv("AGENT_AUTH", AUTH_MODE_TOKEN),
        choices=AUTH_MODES,
        type=str.lower,
        help="Authorization policy for terminal connections",
    )
    parser.add_argument(
        "--token",
        default=os.getenv("AGENT_TOKEN"),
        help="Pre-shared bearer token (required with --auth token)",
    )
    parser.add_argument(
        "--protect-files",
        action=argparse.BooleanOptionalAction,
        default=DEFAULT_PROTECT_FILES,
        help="Apply the authorization policy to the file API as well",
    )
    parser.add_argument(
        "--shell",
        default=os.getenv("AGENT_SHELL"),
        help="Shell command for terminal sessions (default: chosen by platform)",
    )
    parser.add_argument("--terminal-rows", type=int, default=DEFAULT_TERMINAL_ROWS)
    parser.add_argument("--terminal-cols", type=int, default=DEFAULT_TERMINAL_COLS)
    parser.add_argument(
        "--terminal-buffer-chunks",
        type=int,
        default=DEFAULT_TERMINAL_BUFFER_CHUNKS,
        help="Output chunks buffered per terminal before the oldest are dropped",
    )
    parser.add_argument(
        "--max-message-bytes",
        type=int,
        default=DEFAULT_MAX_MESSAGE_BYTES,
        help="Largest inbound terminal message accepted",
    )
    parser.add_argument(
        "--max-body-bytes",
        type=int,
        default=MAX_BODY_BYTES,
        help="Largest request body accepted by the file API",
    )
    parser.add_argument("--cert", help="Path to TLS certificate file")
    parser.add_argument("--key", help="Path to TLS private key file")
    default_log_level = os.getenv("AGENT_LOG_LEVEL", "INFO").upper()
    default_destination = os.getenv("AGENT_LOG_DESTINATION", "stdout")
    parser.add_argument(
        "--log-level",
        default=default_log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
    )
    parser.add_argument(
        "--log-destination",
        default=default_destination,
        help="stdout or a file path",
    )
    parser.add_argument(
        "--max-connections",
        type=int,
        default=DEFAULT_MAX_CONNECTIONS,
        help="Maximum concurrent connections (0 for unlimited)",
    )
    parser.add_argument(
        "--max-connections-per-ip",
        type=int,
        default=DEFAULT_MAX_CONNECTIONS_PER_IP,
        help="Maximum concurrent connections per client IP (0 for unlimited)",
    )
    parser.add_argument(
        "--socket-timeout",
        type=int,
        default=DEFAULT_SOCKET_TIMEOUT,
        help="Socket timeout in seconds for request processing",
    )
    parser.add_argument(
        "--shutdown-grace-seconds",
        type=int,
        default=DEFAULT_SHUTDOWN_GRACE_SECONDS,
        help="Grace period in seconds for graceful shutdown",
    )
    parser.add_argument(
        "--cors-allowed-origins",
        default=",".join(DEFAULT_CORS_ALLOWED_ORIGINS),
        help="Comma-separated list of allowed CORS origins or patterns",
    )
    parser.add_argument(
        "--cors-allowed-methods",
        default=",".join(DEFAULT_CORS_ALLOWED_METHODS),
        help="Comma-separated list of allowed CORS methods",
    )
    parser.add_argument(
        "--cors-allowed-headers",
        default=",".join(DEFAULT_CORS_ALLOWED_HEADERS),
        help="Comma-separated list of allowed CORS headers",
    )
    parser.add_argument(
        "--cors-expose-headers",
        default=",".join(DEFAULT_CORS_EXPOSE_HEADERS),
        help="Comma-separated list of exposed CORS headers",
    )
    parser.add_argument(
        "--cors-allow-credentials",
        action=argparse.BooleanOptionalAction,
        default=DEFAULT_CORS_ALLOW_CREDENTIALS,
        help="Allow credentials in CORS requests",
    )
    parser.add_argument(
        "--cors-max-age",
        type=int,
        default=DEFAULT_CORS_MAX_AGE,
        help="CORS preflight cache duration in seconds",
    )
    return parser.parse_args(argv)
