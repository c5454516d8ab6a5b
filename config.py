"""
Binance Streams — Configuration
All tunable parameters in one place.
"""

import os
import ssl
from dataclasses import dataclass, field
from typing import List


@dataclass
class SocketConfig:
    base_url: str = "wss://stream.binance.com:9443/ws/"
    open_timeout: float = 10.0          # Seconds for the opening handshake
    close_timeout: float = 5.0          # Seconds to wait for the closing handshake
    ping_interval: float = 20.0         # Keepalive ping every N seconds
    ping_timeout: float = 10.0
    min_tls_version: str = "TLSv1_2"    # ssl.TLSVersion member name

    def ssl_context(self) -> ssl.SSLContext:
        """Default client context pinned to `min_tls_version` or newer."""
        context = ssl.create_default_context()
        context.minimum_version = ssl.TLSVersion[self.min_tls_version]
        return context


@dataclass
class DemoConfig:
    symbols: List[str] = field(default_factory=lambda: ["BTCUSDT"])
    kline_interval: str = "1m"
    listen_key: str = ""                # From the REST user stream endpoint


@dataclass
class AppConfig:
    socket: SocketConfig = field(default_factory=SocketConfig)
    demo: DemoConfig = field(default_factory=DemoConfig)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Load config with environment variable overrides."""
        config = cls()
        config.socket.base_url = os.getenv("BINANCE_WS_BASE_URL", config.socket.base_url)
        config.socket.open_timeout = float(os.getenv("BINANCE_WS_OPEN_TIMEOUT", "10"))
        config.socket.close_timeout = float(os.getenv("BINANCE_WS_CLOSE_TIMEOUT", "5"))
        config.socket.ping_interval = float(os.getenv("BINANCE_WS_PING_INTERVAL", "20"))
        config.socket.ping_timeout = float(os.getenv("BINANCE_WS_PING_TIMEOUT", "10"))
        config.socket.min_tls_version = os.getenv("BINANCE_WS_MIN_TLS", "TLSv1_2")

        symbols = os.getenv("BINANCE_SYMBOLS", "")
        if symbols:
            config.demo.symbols = [s.strip() for s in symbols.split(",") if s.strip()]
        config.demo.kline_interval = os.getenv("BINANCE_KLINE_INTERVAL", "1m")
        config.demo.listen_key = os.getenv("BINANCE_LISTEN_KEY", "")

        config.log_level = os.getenv("LOG_LEVEL", "INFO")
        return config
