"""
Binance Streams — Entry Point.
Subscribes to the configured market (and optionally user) streams,
logs every message, and shuts down cleanly on SIGINT/SIGTERM.
"""

from __future__ import annotations
import signal
import sys
import threading
import logging

from dotenv import load_dotenv

from config import AppConfig
from exchange.binance_ws import BinanceSocketClient
from exchange.errors import StreamError
from exchange.models import (
    KlineInterval,
    StreamAccountInfo,
    StreamDepth,
    StreamKline,
    StreamOrderUpdate,
    StreamTrade,
)

logger = logging.getLogger(__name__)


def setup_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-7s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def on_kline(kline: StreamKline):
    k = kline.data
    logger.info(
        f"[KLINE] {kline.symbol} {k.interval.value} "
        f"O={k.open} H={k.high} L={k.low} C={k.close} final={k.final}"
    )


def on_depth(depth: StreamDepth):
    best_bid = depth.bids[0].price if depth.bids else None
    best_ask = depth.asks[0].price if depth.asks else None
    logger.info(f"[DEPTH] {depth.symbol} bid={best_bid} ask={best_ask} ({depth.final_update_id})")


def on_trade(trade: StreamTrade):
    side = "SELL" if trade.buyer_is_maker else "BUY"
    logger.info(f"[TRADE] {trade.symbol} {side} {trade.quantity} @ {trade.price}")


def on_account(info: StreamAccountInfo):
    non_zero = [b for b in info.balances if b.total > 0]
    logger.info(f"[ACCOUNT] {len(non_zero)} non-zero balance(s)")
    for b in non_zero:
        logger.info(f"[ACCOUNT]   {b.asset}: free={b.free} locked={b.locked}")


def on_order(update: StreamOrderUpdate):
    logger.info(
        f"[ORDER] {update.symbol} #{update.order_id} {update.side.value} "
        f"{update.execution_type.value} -> {update.status.value} "
        f"filled={update.accumulated_quantity_of_filled_trades}/{update.quantity}"
    )


def run(config: AppConfig, stop: threading.Event) -> int:
    """Subscribe to everything configured and block until `stop` is set."""
    interval = KlineInterval(config.demo.kline_interval)

    with BinanceSocketClient(config.socket) as client:
        try:
            for symbol in config.demo.symbols:
                client.subscribe_to_kline_stream(symbol, interval, on_kline)
                client.subscribe_to_depth_stream(symbol, on_depth)
                client.subscribe_to_trades_stream(symbol, on_trade)

            if config.demo.listen_key:
                client.subscribe_to_account_update_stream(config.demo.listen_key, on_account)
                client.subscribe_to_order_update_stream(config.demo.listen_key, on_order)
        except StreamError as e:
            logger.critical(f"[BOOT] Subscription failed: {e}")
            return 1

        logger.info(f"[BOOT] Running with streams {client.active_streams}")
        stop.wait()
        logger.info("[SHUTDOWN] Closing streams...")

    logger.info("[SHUTDOWN] Complete.")
    return 0


def main() -> int:
    """Entry point."""
    load_dotenv()
    config = AppConfig.from_env()
    setup_logging(config.log_level)

    stop = threading.Event()

    def handle_signal(sig, frame):
        logger.info(f"Received signal {sig}. Initiating shutdown...")
        stop.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, handle_signal)

    return run(config, stop)


if __name__ == "__main__":
    sys.exit(main())
