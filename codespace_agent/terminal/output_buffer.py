"""Bounded hand-off queue between a shell's output and its connection."""

import threading
from collections import deque
from typing import Optional


class OutputBuffer:
    """FIFO of output chunks that discards the oldest chunk when full.

    The producer never blocks: a slow consumer loses the stalest output
    rather than stalling the shell. ``dropped`` counts discarded chunks.
    """

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError("OutputBuffer capacity must be at least 1")
        self._chunks: deque[bytes] = deque(maxlen=capacity)
        self._condition = threading.Condition()
        self._closed = False
        self._dropped = 0

    @property
    def dropped(self) -> int:
        with self._condition:
            return self._dropped

    @property
    def closed(self) -> bool:
        with self._condition:
            return self._closed

    def __len__(self) -> int:
        with self._condition:
            return len(self._chunks)

    def put(self, chunk: bytes) -> bool:
        """Queue ``chunk``; return False if an older chunk had to be dropped."""
        with self._condition:
            if self._closed or not chunk:
                return True
            overflowed = len(self._chunks) == self._chunks.maxlen
            if overflowed:
                self._dropped += 1
            self._chunks.append(chunk)
            self._condition.notify()
            return not overflowed

    def get(self, timeout: Optional[float] = None) -> Optional[bytes]:
        """Return the next chunk, or None on timeout or once closed and empty."""
        with self._condition:
            if not self._chunks and not self._closed:
                self._condition.wait(timeout)
            if self._chunks:
                return self._chunks.popleft()
            return None

    def close(self) -> None:
        """Stop accepting chunks and wake any waiting consumer."""
        with self._condition:
            self._closed = True
            self._condition.notify_all()
