"""Remote development agent: sandboxed file API and web terminal over HTTP."""

import argparse
import logging
import os
import signal
import sys

from codespace_agent.bootstrap.config import ServerConfig, parse_cli_args
from codespace_agent.bootstrap.logging_setup import configure_logging
from codespace_agent.domain.correlation_id import CorrelationLoggerAdapter
from codespace_agent.domain.sandbox import ConfinedRoot
from codespace_agent.domain.workspace import FileGateway
from codespace_agent.lifecycle.state import ServerLifecycle
from codespace_agent.security.auth import build_authorizer
from codespace_agent.terminal.bridge import SessionBridge
from codespace_agent.terminal.shell import TerminalSettings
from codespace_agent.transport.accept_loop import run_server

SERVER_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("codespace_agent.server"), {}
)

EXIT_CONFIG_ERROR = 2


def resolve_workdir(workdir) -> ConfinedRoot:
    """Build the confined root from ``--workdir`` or the launch directory."""
    if workdir:
        root = ConfinedRoot(os.path.abspath(workdir))
    else:
        root = ConfinedRoot.discover(os.getcwd())
    if not os.path.isdir(root.path):
        raise ValueError(f"Workspace directory does not exist: {root.path}")
    return root


def terminal_settings(args: argparse.Namespace) -> TerminalSettings:
    return TerminalSettings(
        shell=args.shell,
        rows=args.terminal_rows,
        cols=args.terminal_cols,
        buffer_chunks=args.terminal_buffer_chunks,
        max_message_bytes=args.max_message_bytes,
    )


def main(argv=None) -> None:
    """Start the agent and spawn a worker thread per connection."""
    args = parse_cli_args(sys.argv[1:] if argv is None else argv)
    configure_logging(args.log_level, args.log_destination)

    try:
        root = resolve_workdir(args.workdir)
        authorizer = build_authorizer(args.auth, args.token)
    except ValueError as error:
        SERVER_LOGGER.critical(
            "Invalid agent configuration",
            extra={"event": "config_error", "error": str(error)},
        )
        sys.exit(EXIT_CONFIG_ERROR)

    config = ServerConfig(
        socket_timeout=args.socket_timeout,
        shutdown_grace_seconds=args.shutdown_grace_seconds,
        max_body_bytes=args.max_body_bytes,
        protect_files=args.protect_files,
    )
    lifecycle = ServerLifecycle()

    def shutdown_handler(signum: int, _frame) -> None:
        SERVER_LOGGER.info(
            "Received shutdown signal", extra={"event": "signal", "signal": signum}
        )
        lifecycle.begin_draining()

    signal.signal(signal.SIGTERM, shutdown_handler)
    signal.signal(signal.SIGINT, shutdown_handler)

    SERVER_LOGGER.info(
        "Starting agent",
        extra={
            "event": "server_starting",
            "host": args.host,
            "port": args.port,
            "workdir": root.path,
            "auth_mode": args.auth,
            "log_destination": args.log_destination,
            "log_level": args.log_level,
            "tls": bool(args.cert and args.key),
            "socket_timeout": config.socket_timeout,
            "shutdown_grace_seconds": config.shutdown_grace_seconds,
        },
    )

    bridge = SessionBridge(
        root, terminal_settings(args), should_stop=lifecycle.should_stop
    )
    run_server(args, config, lifecycle, FileGateway(root), bridge, authorizer)


if __name__ == "__main__":
    main()
