"""Concurrent connection quotas for the agent listener."""

import threading
from collections import Counter
from typing import Optional

LIMIT_GLOBAL = "global"
LIMIT_PER_IP = "ip"


class ConnectionLimiter:
    """Caps open connections overall and per client address.

    Terminal sessions hold their connection for as long as the shell lives,
    so these quotas also bound the number of concurrent shells. A limit of
    zero disables that quota.
    """

    def __init__(self, max_connections: int, max_connections_per_ip: int) -> None:
        self._max_connections = max(0, max_connections)
        self._max_connections_per_ip = max(0, max_connections_per_ip)
        self._lock = threading.Lock()
        self._per_ip: Counter[str] = Counter()

    @property
    def active(self) -> int:
        with self._lock:
            return sum(self._per_ip.values())

    def active_for(self, client_ip: str) -> int:
        with self._lock:
            return self._per_ip[client_ip]

    def acquire(self, client_ip: str) -> Optional[str]:
        """Claim a slot for ``client_ip``.

        Returns None on success, or the name of the exhausted quota.
        """
        with self._lock:
            if (
                self._max_connections_per_ip
                and self._per_ip[client_ip] >= self._max_connections_per_ip
            ):
                return LIMIT_PER_IP
            if (
                self._max_connections
                and sum(self._per_ip.values()) >= self._max_connections
            ):
                return LIMIT_GLOBAL
            self._per_ip[client_ip] += 1
            return None

    def release(self, client_ip: str) -> None:
        """Return a slot claimed by ``acquire``; unknown addresses are ignored."""
        with self._lock:
            if self._per_ip[client_ip] <= 1:
                self._per_ip.pop(client_ip, None)
            else:
                self._per_ip[client_ip] -= 1
