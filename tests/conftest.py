"""
Pytest configuration and shared fixtures for the stream client tests.

Provides an in-memory transport/factory pair that stands in for real
websocket connections, plus sample Binance stream payloads.
"""

import json
import threading

import pytest

from config import SocketConfig
from exchange.binance_ws import BinanceSocketClient

BASE_URL = "wss://stream.test:9443/ws/"


class FakeTransport:
    """In-memory Transport. Events fire synchronously on the calling thread."""

    def __init__(self, url, connect_error=None, defer_close=False):
        self.url = url
        self.connect_error = connect_error
        self.defer_close = defer_close
        self.callbacks = {e: [] for e in ("open", "message", "error", "close")}
        self.ssl_context = None
        self.connected = False
        self.close_calls = 0
        self.sent = []
        self._closed = False

    @property
    def closed(self):
        return self._closed

    def on(self, event, callback):
        self.callbacks[event].append(callback)

    def set_ssl_context(self, context):
        self.ssl_context = context

    def connect(self):
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True
        self.fire("open")

    def send(self, data):
        self.sent.append(data)

    def close(self):
        self.close_calls += 1
        # With defer_close the test reports the close later via report_closed()
        if not self._closed and not self.defer_close:
            self.report_closed()

    def report_closed(self):
        """Simulate the remote side (or the network) closing the connection."""
        self._closed = True
        self.fire("close")

    def deliver(self, payload):
        """Deliver an inbound message unless the connection is closed."""
        if self._closed:
            return
        self.fire("message", payload)

    def fire(self, event, *args):
        for callback in list(self.callbacks[event]):
            callback(self, *args)


class FakeSocketFactory:
    """Records every transport it creates."""

    def __init__(self):
        self.created = []
        self.create_error = None
        self.connect_error = None
        self.defer_close = False
        self._lock = threading.Lock()

    def create_websocket(self, url):
        if self.create_error is not None:
            raise self.create_error
        transport = FakeTransport(
            url, connect_error=self.connect_error, defer_close=self.defer_close
        )
        with self._lock:
            self.created.append(transport)
        return transport

    def for_url(self, url):
        return [t for t in self.created if t.url == url]

    @property
    def last(self):
        return self.created[-1]


@pytest.fixture
def base_url():
    return BASE_URL


@pytest.fixture
def factory():
    return FakeSocketFactory()


@pytest.fixture
def client(factory):
    """Client wired to the fake factory."""
    client = BinanceSocketClient(SocketConfig(base_url=BASE_URL), socket_factory=factory)
    yield client
    client.shutdown()


@pytest.fixture
def kline_payload():
    return json.dumps({
        "e": "kline", "E": 1672515782136, "s": "BTCUSDT",
        "k": {
            "t": 1672515780000, "T": 1672515839999, "s": "BTCUSDT", "i": "1m",
            "f": 100, "L": 200, "o": "16500.10", "c": "16510.00",
            "h": "16512.50", "l": "16499.90", "v": "12.5", "n": 100,
            "x": False, "q": "206328.15", "V": "6.1", "Q": "100700.52", "B": "0",
        },
    })


@pytest.fixture
def depth_payload():
    return json.dumps({
        "e": "depthUpdate", "E": 1672515782136, "s": "BNBBTC",
        "U": 157, "u": 160,
        "b": [["0.0024", "10", []]],
        "a": [["0.0026", "100", []], ["0.0027", "5", []]],
    })


@pytest.fixture
def trade_payload():
    return json.dumps({
        "e": "aggTrade", "E": 1672515782136, "s": "BNBBTC", "a": 12345,
        "p": "0.001", "q": "100", "f": 100, "l": 105, "T": 1672515782100,
        "m": True, "M": True,
    })


@pytest.fixture
def account_payload():
    return json.dumps({
        "e": "outboundAccountInfo", "E": 1499405658849,
        "m": 10, "t": 10, "b": 0, "s": 0,
        "T": True, "W": True, "D": False, "u": 1499405658848,
        "B": [
            {"a": "LTC", "f": "17366.18538083", "l": "0.00000000"},
            {"a": "BTC", "f": "10537.85314051", "l": "2.19464093"},
        ],
    })


@pytest.fixture
def order_payload():
    return json.dumps({
        "e": "executionReport", "E": 1499405658658, "s": "ETHBTC",
        "c": "mUvoqJxFIILMdfAW5iGSOW", "S": "BUY", "o": "LIMIT", "f": "GTC",
        "q": "1.00000000", "p": "0.10264410", "P": "0.00000000", "F": "0.00000000",
        "g": -1, "C": "", "x": "NEW", "X": "NEW", "r": "NONE", "i": 4293153,
        "l": "0.00000000", "z": "0.00000000", "L": "0.00000000", "n": "0",
        "N": None, "T": 1499405658657, "t": -1, "I": 8641984,
        "w": True, "m": False, "M": False,
    })
