"""
Tests for the entry point's run loop.
"""

import threading

import pytest

import main
from config import AppConfig
from exchange.binance_ws import BinanceSocketClient


@pytest.fixture
def patched_client(monkeypatch, factory):
    monkeypatch.setattr(
        main,
        "BinanceSocketClient",
        lambda config: BinanceSocketClient(config, socket_factory=factory),
    )
    return factory


def _stopped():
    stop = threading.Event()
    stop.set()
    return stop


class TestRun:

    def test_subscribes_market_streams_and_closes_on_stop(self, patched_client):
        config = AppConfig()
        config.demo.symbols = ["BTCUSDT", "ETHUSDT"]

        assert main.run(config, _stopped()) == 0

        urls = [t.url for t in patched_client.created]
        assert len(urls) == 6
        assert "wss://stream.binance.com:9443/ws/ethusdt@kline_1m" in urls
        assert all(t.close_calls == 1 for t in patched_client.created)

    def test_user_streams_share_connection(self, patched_client):
        config = AppConfig()
        config.demo.symbols = []
        config.demo.listen_key = "listenkey"

        assert main.run(config, _stopped()) == 0

        assert [t.url for t in patched_client.created] == [
            "wss://stream.binance.com:9443/ws/listenkey"
        ]

    def test_subscription_failure_returns_error(self, patched_client):
        patched_client.connect_error = OSError("no route")
        config = AppConfig()

        assert main.run(config, _stopped()) == 1
