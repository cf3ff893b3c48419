"""Context object shared across worker threads."""

from dataclasses import dataclass
from typing import Optional

from codespace_agent.bootstrap.config import MAX_BODY_BYTES, ServerConfig
from codespace_agent.domain.workspace import FileGateway
from codespace_agent.lifecycle.state import ServerLifecycle
from codespace_agent.security.auth import Authorizer
from codespace_agent.security.cors import CorsConfig
from codespace_agent.terminal.bridge import SessionBridge
from codespace_agent.transport.connection_limiter import ConnectionLimiter


@dataclass
class WorkerContext:
    """Dependencies shared across handler threads."""

    gateway: FileGateway
    bridge: SessionBridge
    authorizer: Authorizer
    connection_limiter: Optional[ConnectionLimiter] = None
    lifecycle: Optional[ServerLifecycle] = None
    config: Optional[ServerConfig] = None
    cors_config: Optional[CorsConfig] = None

    @property
    def max_body_bytes(self) -> int:
        if self.config is None:
            return MAX_BODY_BYTES
        return self.config.max_body_bytes

    @property
    def files_authorizer(self) -> Optional[Authorizer]:
        """The authorizer guarding the file API, or None when it is open."""
        if self.config is not None and self.config.protect_files:
            return self.authorizer
        return None
