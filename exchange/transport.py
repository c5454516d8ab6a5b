"""
Websocket transport for stream connections.
Each connection runs its own reader thread and reports open, message,
error and close events to the callbacks registered with `on()`.
"""

from __future__ import annotations
import logging
import ssl
import threading
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Protocol, Union

from websockets.exceptions import ConnectionClosed
from websockets.sync.client import ClientConnection, connect

if TYPE_CHECKING:
    from config import SocketConfig

logger = logging.getLogger(__name__)

EVENTS = ("open", "message", "error", "close")

# Callbacks receive the transport first: (transport), (transport, data), (transport, exc)
TransportCallback = Callable[..., None]


class Transport(Protocol):
    """Capability the stream client needs from a connection."""

    url: str

    @property
    def closed(self) -> bool: ...

    def on(self, event: str, callback: TransportCallback) -> None: ...

    def set_ssl_context(self, context: Optional[ssl.SSLContext]) -> None: ...

    def connect(self) -> None: ...

    def send(self, data: Union[str, bytes]) -> None: ...

    def close(self) -> None: ...


class SocketFactory(Protocol):
    def create_websocket(self, url: str) -> Transport: ...


class WebSocketTransport:
    """Threaded websocket connection built on `websockets.sync`."""

    def __init__(
        self,
        url: str,
        open_timeout: float = 10.0,
        close_timeout: float = 5.0,
        ping_interval: Optional[float] = 20.0,
        ping_timeout: Optional[float] = 10.0,
    ):
        self.url = url
        self.open_timeout = open_timeout
        self.close_timeout = close_timeout
        self.ping_interval = ping_interval
        self.ping_timeout = ping_timeout

        self._ssl_context: Optional[ssl.SSLContext] = None
        self._ws: Optional[ClientConnection] = None
        self._reader: Optional[threading.Thread] = None
        self._callbacks: Dict[str, List[TransportCallback]] = {e: [] for e in EVENTS}
        self._lock = threading.Lock()
        self._closing = False
        self._closed = False
        self._handshake_done = threading.Event()
        self._connect_error: Optional[BaseException] = None

    @property
    def closed(self) -> bool:
        return self._closed

    def on(self, event: str, callback: TransportCallback):
        """Register a callback for one of: open, message, error, close."""
        if event not in self._callbacks:
            raise ValueError(f"Unknown transport event: {event}")
        self._callbacks[event].append(callback)

    def set_ssl_context(self, context: Optional[ssl.SSLContext]):
        self._ssl_context = context

    def connect(self):
        """
        Start the reader thread and wait for the opening handshake.
        Raises whatever the handshake raises; nothing keeps running on failure.
        """
        with self._lock:
            if self._closing or self._reader is not None:
                raise ConnectionError(f"Socket to {self.url} was already used")
            self._reader = threading.Thread(
                target=self._run,
                name=f"ws-reader-{self.url}",
                daemon=True,
            )

        self._reader.start()
        self._handshake_done.wait()
        if self._connect_error is not None:
            raise self._connect_error

    def send(self, data: Union[str, bytes]):
        ws = self._ws
        if ws is None or self._closing:
            raise ConnectionError(f"Socket to {self.url} is not open")
        ws.send(data)

    def close(self):
        """Request close. Safe in any state, including never connected."""
        with self._lock:
            if self._closing:
                return
            self._closing = True
            ws = self._ws

        if ws is None:
            return

        try:
            ws.close()
        except Exception as e:
            logger.warning(f"[WS] Error while closing {self.url}: {e}")

    # ==================== Reader Thread ====================

    def _run(self):
        secure = self.url.startswith("wss://")
        try:
            with connect(
                self.url,
                ssl=self._ssl_context if secure else None,
                open_timeout=self.open_timeout,
                close_timeout=self.close_timeout,
                ping_interval=self.ping_interval,
                ping_timeout=self.ping_timeout,
            ) as ws:
                with self._lock:
                    self._ws = ws
                    closing = self._closing
                self._handshake_done.set()

                # close() arrived during the handshake
                if closing:
                    ws.close()

                self._emit("open")
                self._read(ws)
        except Exception as e:
            if not self._handshake_done.is_set():
                self._connect_error = e
                self._handshake_done.set()
                return
            self._emit("error", e)

        self._finish()

    def _read(self, ws: ClientConnection):
        try:
            for message in ws:
                if self._closing:
                    break
                self._emit("message", message)
        except ConnectionClosed as e:
            if not self._closing:
                self._emit("error", e)
        except Exception as e:
            self._emit("error", e)

    def _finish(self):
        with self._lock:
            if self._closed:
                return
            self._closing = True
            self._closed = True

        self._emit("close")

    def _emit(self, event: str, *args):
        for callback in list(self._callbacks[event]):
            try:
                callback(self, *args)
            except Exception as e:
                logger.error(
                    f"[WS] {event} callback error for {self.url}: {e}",
                    exc_info=True,
                )


class WebSocketFactory:
    """Creates `WebSocketTransport`s sharing the same connection options."""

    def __init__(
        self,
        open_timeout: float = 10.0,
        close_timeout: float = 5.0,
        ping_interval: Optional[float] = 20.0,
        ping_timeout: Optional[float] = 10.0,
    ):
        self.open_timeout = open_timeout
        self.close_timeout = close_timeout
        self.ping_interval = ping_interval
        self.ping_timeout = ping_timeout

    @classmethod
    def from_config(cls, config: "SocketConfig") -> "WebSocketFactory":
        return cls(
            open_timeout=config.open_timeout,
            close_timeout=config.close_timeout,
            ping_interval=config.ping_interval,
            ping_timeout=config.ping_timeout,
        )

    def create_websocket(self, url: str) -> WebSocketTransport:
        return WebSocketTransport(
            url,
            open_timeout=self.open_timeout,
            close_timeout=self.close_timeout,
            ping_interval=self.ping_interval,
            ping_timeout=self.ping_timeout,
        )
