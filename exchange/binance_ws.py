"""
Binance WebSocket Client.
One connection per market stream (klines, depth, trades) plus a single
shared user stream carrying both account and order updates.
No auto-reconnect: a stream that closes is simply dropped.
"""

from __future__ import annotations
import logging
import threading
from typing import Any, Callable, List, Optional, Type, TypeVar, Union

from config import SocketConfig
from exchange.errors import ConnectionFailed, DecodeFailed, MissingListenKey
from exchange.models import (
    KlineInterval,
    StreamAccountInfo,
    StreamDepth,
    StreamKline,
    StreamOrderUpdate,
    StreamTrade,
    decode,
)
from exchange.registry import StreamHandle, StreamIdAllocator, StreamRegistry
from exchange.transport import SocketFactory, Transport, WebSocketFactory
from exchange.user_stream import UserStreamRouter

logger = logging.getLogger(__name__)

T = TypeVar("T")

KLINE_STREAM_ENDPOINT = "@kline"
DEPTH_STREAM_ENDPOINT = "@depth"
TRADES_STREAM_ENDPOINT = "@aggTrade"


class BinanceSocketClient:
    """
    Manages Binance websocket stream subscriptions.

    Every subscribe call opens its own connection and returns a stream id
    that can later be passed to `unsubscribe_from_stream`. Account and
    order updates share one user stream connection, which stays open
    while at least one of the two is subscribed.

    Call `shutdown()` (or use the client as a context manager) when done.
    """

    def __init__(
        self,
        config: Optional[SocketConfig] = None,
        socket_factory: Optional[SocketFactory] = None,
    ):
        self.config = config or SocketConfig()
        self.base_url = self.config.base_url
        self.socket_factory: SocketFactory = socket_factory or WebSocketFactory.from_config(self.config)

        self._ssl_context = self.config.ssl_context()
        self._registry = StreamRegistry()
        self._ids = StreamIdAllocator()
        self._router = UserStreamRouter()
        # Serialises user stream subscribe/unsubscribe so at most one is ever open
        self._user_stream_lock = threading.Lock()

    def __enter__(self) -> "BinanceSocketClient":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()

    @property
    def active_streams(self) -> List[int]:
        """Ids of all currently registered streams."""
        return [h.stream_id for h in self._registry.snapshot()]

    # ==================== Market Streams ====================

    def subscribe_to_kline_stream(
        self,
        symbol: str,
        interval: Union[KlineInterval, str],
        on_message: Callable[[StreamKline], Any],
    ) -> int:
        """
        Subscribe to candlestick updates for `symbol`.
        Returns the stream id. Raises ConnectionFailed if the socket can't open.
        """
        symbol = symbol.lower()
        interval = KlineInterval(interval)
        stream = self._create_stream(
            f"{self.base_url}{symbol}{KLINE_STREAM_ENDPOINT}_{interval.value}",
            self._typed_handler(StreamKline, on_message),
        )
        logger.debug(f"[STREAM] Started kline stream for {symbol}: {interval.value}")
        return stream.stream_id

    def subscribe_to_depth_stream(
        self,
        symbol: str,
        on_message: Callable[[StreamDepth], Any],
    ) -> int:
        """Subscribe to order book diff updates for `symbol`. Returns the stream id."""
        symbol = symbol.lower()
        stream = self._create_stream(
            f"{self.base_url}{symbol}{DEPTH_STREAM_ENDPOINT}",
            self._typed_handler(StreamDepth, on_message),
        )
        logger.debug(f"[STREAM] Started depth stream for {symbol}")
        return stream.stream_id

    def subscribe_to_trades_stream(
        self,
        symbol: str,
        on_message: Callable[[StreamTrade], Any],
    ) -> int:
        """Subscribe to aggregated trades for `symbol`. Returns the stream id."""
        symbol = symbol.lower()
        stream = self._create_stream(
            f"{self.base_url}{symbol}{TRADES_STREAM_ENDPOINT}",
            self._typed_handler(StreamTrade, on_message),
        )
        logger.debug(f"[STREAM] Started trade stream for {symbol}")
        return stream.stream_id

    # ==================== User Streams ====================

    def subscribe_to_account_update_stream(
        self,
        listen_key: str,
        on_message: Callable[[StreamAccountInfo], Any],
    ):
        """
        Subscribe to account updates on the user stream.
        `listen_key` comes from the REST user stream endpoint.
        """
        if not listen_key:
            raise MissingListenKey(
                "Cannot start stream without listen key. Start a user stream and try again"
            )

        with self._user_stream_lock:
            previous = self._router.set_account_handler(on_message)
            try:
                self._ensure_user_stream(listen_key)
            except ConnectionFailed:
                self._router.set_account_handler(previous)
                raise

    def subscribe_to_order_update_stream(
        self,
        listen_key: str,
        on_message: Callable[[StreamOrderUpdate], Any],
    ):
        """
        Subscribe to order updates on the user stream.
        `listen_key` comes from the REST user stream endpoint.
        """
        if not listen_key:
            raise MissingListenKey(
                "Cannot start stream without listen key. Start a user stream and try again"
            )

        with self._user_stream_lock:
            previous = self._router.set_order_handler(on_message)
            try:
                self._ensure_user_stream(listen_key)
            except ConnectionFailed:
                self._router.set_order_handler(previous)
                raise

    def unsubscribe_from_account_update_stream(self):
        """Stop account updates. Closes the user stream if order updates are off too."""
        with self._user_stream_lock:
            if self._router.clear_account_handler():
                self._close_user_stream()

    def unsubscribe_from_order_update_stream(self):
        """Stop order updates. Closes the user stream if account updates are off too."""
        with self._user_stream_lock:
            if self._router.clear_order_handler():
                self._close_user_stream()

    # ==================== Lifecycle ====================

    def unsubscribe_from_stream(self, stream_id: int):
        """Close the stream with `stream_id`. Unknown ids are ignored."""
        stream = self._registry.find_by_id(stream_id)
        if stream is None:
            logger.debug(f"[STREAM] No stream with id {stream_id}")
            return
        stream.connection.close()

    def unsubscribe_all_streams(self):
        """Close every stream and drop the user stream handlers."""
        with self._user_stream_lock:
            self._registry.detach_user_stream()
            self._registry.close_all()
            self._router.clear()

    def shutdown(self):
        """Close every stream. Safe to call more than once."""
        logger.debug(f"[STREAM] Shutting down {len(self._registry)} stream(s)")
        self._registry.close_all()

    # ==================== Internal Connection Management ====================

    def _ensure_user_stream(self, listen_key: str):
        # Callers hold _user_stream_lock
        existing = self._registry.find_user_stream()
        if existing is not None:
            if existing.connection.url != self.base_url + listen_key:
                logger.debug("[USER] User stream already open, ignoring new listen key")
            return

        self._create_stream(
            self.base_url + listen_key,
            self._on_user_message,
            user_stream=True,
        )
        logger.debug("[USER] User stream started")

    def _close_user_stream(self):
        # Unmarked before close; a subscribe racing the close event opens a fresh stream
        stream = self._registry.detach_user_stream()
        if stream is not None:
            logger.debug("[USER] No user stream handlers left, closing user stream")
            stream.connection.close()

    def _create_stream(
        self,
        url: str,
        on_message: Callable[[Transport, Union[str, bytes]], Any],
        user_stream: bool = False,
    ) -> StreamHandle:
        """
        Open a connection to `url` and register it.
        Only registered once the socket connected; raises ConnectionFailed otherwise.
        """
        try:
            stream_id = self._ids.next()
            socket = self.socket_factory.create_websocket(url)
            socket.set_ssl_context(self._ssl_context)
            socket.on("open", self._on_open)
            socket.on("error", self._on_error)
            socket.on("close", self._on_close)
            socket.on("message", on_message)
            socket.connect()
        except Exception as e:
            error_message = f"Couldn't open socket stream: {e}"
            logger.error(f"[STREAM] {error_message}")
            raise ConnectionFailed(error_message) from e

        stream = StreamHandle(stream_id=stream_id, connection=socket, user_stream=user_stream)
        self._registry.add(stream)
        # The socket may already have died before it was registered
        if socket.closed:
            self._registry.remove_by_connection(socket)
        return stream

    def _typed_handler(
        self,
        model: Type[T],
        on_message: Callable[[T], Any],
    ) -> Callable[[Transport, Union[str, bytes]], None]:
        """Wrap a caller handler: decode the raw payload into `model` first."""
        def handle(socket: Transport, raw: Union[str, bytes]):
            try:
                message = decode(model, raw)
            except DecodeFailed as e:
                logger.error(f"[STREAM] Dropping message from {socket.url}: {e}")
                return

            try:
                on_message(message)
            except Exception as e:
                logger.error(
                    f"[STREAM] {model.__name__} handler error: {e}",
                    exc_info=True,
                )

        return handle

    def _on_user_message(self, socket: Transport, raw: Union[str, bytes]):
        self._router.route(raw)

    def _on_open(self, socket: Transport):
        logger.debug(f"[STREAM] Socket opened to {socket.url}")

    def _on_error(self, socket: Transport, error: Exception):
        logger.error(f"[STREAM] Socket error on {socket.url}: {error}")

    def _on_close(self, socket: Transport):
        if self._registry.remove_by_connection(socket):
            logger.debug(f"[STREAM] Socket closed: {socket.url}")
