"""
Stream Registry — tracks every open stream connection by stream id.
"""

from __future__ import annotations
import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from exchange.transport import Transport

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class StreamHandle:
    """A registered connection. Callers only ever see `stream_id`."""
    stream_id: int
    connection: "Transport"
    user_stream: bool = False


class StreamIdAllocator:
    """Hands out stream ids 1, 2, 3, ... and never reuses them."""

    def __init__(self):
        self._last_id = 0
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            self._last_id += 1
            return self._last_id


class StreamRegistry:
    """
    Thread-safe set of StreamHandles.
    Every read and write happens under a single lock; connections are
    never closed while holding it, so close callbacks can re-enter.
    """

    def __init__(self):
        self._handles: List[StreamHandle] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    def add(self, handle: StreamHandle):
        with self._lock:
            self._handles.append(handle)

    def remove_by_connection(self, connection: "Transport") -> bool:
        """Remove the handle owning `connection`. Returns False if none did."""
        with self._lock:
            for i, handle in enumerate(self._handles):
                if handle.connection is connection:
                    del self._handles[i]
                    return True
        return False

    def find_by_id(self, stream_id: int) -> Optional[StreamHandle]:
        with self._lock:
            for handle in self._handles:
                if handle.stream_id == stream_id:
                    return handle
        return None

    def find_user_stream(self) -> Optional[StreamHandle]:
        with self._lock:
            for handle in self._handles:
                if handle.user_stream:
                    return handle
        return None

    def detach_user_stream(self) -> Optional[StreamHandle]:
        """
        Unmark the user stream handle and return it.
        The handle stays registered until its connection reports closed,
        but a new user stream can be opened alongside it meanwhile.
        """
        with self._lock:
            for handle in self._handles:
                if handle.user_stream:
                    handle.user_stream = False
                    return handle
        return None

    def snapshot(self) -> List[StreamHandle]:
        with self._lock:
            return list(self._handles)

    def close_all(self):
        """
        Request close on every connection.
        Entries are removed by each connection's close event, not here.
        """
        for handle in self.snapshot():
            handle.connection.close()
