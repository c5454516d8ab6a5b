"""
Data models for Binance websocket stream payloads.
Uses Decimal for all price/quantity fields, no floating point errors.
"""

from __future__ import annotations
import json
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Type, TypeVar, Union

from exchange.errors import DecodeFailed

T = TypeVar("T")


class KlineInterval(Enum):
    ONE_MINUTE = "1m"
    THREE_MINUTES = "3m"
    FIVE_MINUTES = "5m"
    FIFTEEN_MINUTES = "15m"
    THIRTY_MINUTES = "30m"
    ONE_HOUR = "1h"
    TWO_HOURS = "2h"
    FOUR_HOURS = "4h"
    SIX_HOURS = "6h"
    EIGHT_HOURS = "8h"
    TWELVE_HOURS = "12h"
    ONE_DAY = "1d"
    THREE_DAYS = "3d"
    ONE_WEEK = "1w"
    ONE_MONTH = "1M"


class OrderSide(Enum):
    BUY = "BUY"
    SELL = "SELL"


class OrderType(Enum):
    LIMIT = "LIMIT"
    MARKET = "MARKET"
    STOP_LOSS = "STOP_LOSS"
    STOP_LOSS_LIMIT = "STOP_LOSS_LIMIT"
    TAKE_PROFIT = "TAKE_PROFIT"
    TAKE_PROFIT_LIMIT = "TAKE_PROFIT_LIMIT"
    LIMIT_MAKER = "LIMIT_MAKER"


class TimeInForce(Enum):
    GTC = "GTC"
    IOC = "IOC"
    FOK = "FOK"


class ExecutionType(Enum):
    NEW = "NEW"
    CANCELED = "CANCELED"
    REPLACED = "REPLACED"
    REJECTED = "REJECTED"
    TRADE = "TRADE"
    EXPIRED = "EXPIRED"


class OrderStatus(Enum):
    NEW = "NEW"
    PARTIALLY_FILLED = "PARTIALLY_FILLED"
    FILLED = "FILLED"
    CANCELED = "CANCELED"
    PENDING_CANCEL = "PENDING_CANCEL"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"


def _dec(value: Any) -> Decimal:
    return Decimal(str(value))


@dataclass
class KlineData:
    """Candle body of a kline event (the nested "k" object)."""
    start_time: int         # Unix ms
    close_time: int
    symbol: str
    interval: KlineInterval
    first_trade_id: int
    last_trade_id: int
    open: Decimal
    close: Decimal
    high: Decimal
    low: Decimal
    volume: Decimal
    trade_count: int
    final: bool             # True once the candle is closed
    quote_asset_volume: Decimal
    taker_buy_base_asset_volume: Decimal
    taker_buy_quote_asset_volume: Decimal

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KlineData":
        return cls(
            start_time=int(data["t"]),
            close_time=int(data["T"]),
            symbol=data["s"],
            interval=KlineInterval(data["i"]),
            first_trade_id=int(data["f"]),
            last_trade_id=int(data["L"]),
            open=_dec(data["o"]),
            close=_dec(data["c"]),
            high=_dec(data["h"]),
            low=_dec(data["l"]),
            volume=_dec(data["v"]),
            trade_count=int(data["n"]),
            final=bool(data["x"]),
            quote_asset_volume=_dec(data["q"]),
            taker_buy_base_asset_volume=_dec(data["V"]),
            taker_buy_quote_asset_volume=_dec(data["Q"]),
        )


@dataclass
class StreamKline:
    """Kline/candlestick stream event."""
    event: str
    event_time: int
    symbol: str
    data: KlineData

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StreamKline":
        return cls(
            event=data["e"],
            event_time=int(data["E"]),
            symbol=data["s"],
            data=KlineData.from_dict(data["k"]),
        )


@dataclass
class OrderBookEntry:
    price: Decimal
    quantity: Decimal

    @classmethod
    def from_list(cls, entry: List[Any]) -> "OrderBookEntry":
        # Binance sends [price, qty, []]; the trailing list is ignored
        return cls(price=_dec(entry[0]), quantity=_dec(entry[1]))


@dataclass
class StreamDepth:
    """Order book diff stream event."""
    event: str
    event_time: int
    symbol: str
    first_update_id: int
    final_update_id: int
    bids: List[OrderBookEntry] = field(default_factory=list)
    asks: List[OrderBookEntry] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StreamDepth":
        return cls(
            event=data["e"],
            event_time=int(data["E"]),
            symbol=data["s"],
            first_update_id=int(data["U"]),
            final_update_id=int(data["u"]),
            bids=[OrderBookEntry.from_list(b) for b in data.get("b", [])],
            asks=[OrderBookEntry.from_list(a) for a in data.get("a", [])],
        )


@dataclass
class StreamTrade:
    """Aggregated trade stream event."""
    event: str
    event_time: int
    symbol: str
    aggregate_trade_id: int
    price: Decimal
    quantity: Decimal
    first_trade_id: int
    last_trade_id: int
    trade_time: int
    buyer_is_maker: bool
    ignore: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StreamTrade":
        return cls(
            event=data["e"],
            event_time=int(data["E"]),
            symbol=data["s"],
            aggregate_trade_id=int(data["a"]),
            price=_dec(data["p"]),
            quantity=_dec(data["q"]),
            first_trade_id=int(data["f"]),
            last_trade_id=int(data["l"]),
            trade_time=int(data["T"]),
            buyer_is_maker=bool(data["m"]),
            ignore=bool(data.get("M", False)),
        )


@dataclass
class StreamBalance:
    asset: str
    free: Decimal
    locked: Decimal

    @property
    def total(self) -> Decimal:
        return self.free + self.locked

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StreamBalance":
        return cls(asset=data["a"], free=_dec(data["f"]), locked=_dec(data["l"]))


@dataclass
class StreamAccountInfo:
    """Account update pushed on the user stream (outboundAccountInfo)."""
    event: str
    event_time: int
    maker_commission: int
    taker_commission: int
    buyer_commission: int
    seller_commission: int
    can_trade: bool
    can_withdraw: bool
    can_deposit: bool
    balances: List[StreamBalance] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StreamAccountInfo":
        return cls(
            event=data["e"],
            event_time=int(data["E"]),
            maker_commission=int(data["m"]),
            taker_commission=int(data["t"]),
            buyer_commission=int(data["b"]),
            seller_commission=int(data["s"]),
            can_trade=bool(data["T"]),
            can_withdraw=bool(data["W"]),
            can_deposit=bool(data["D"]),
            balances=[StreamBalance.from_dict(b) for b in data.get("B", [])],
        )


@dataclass
class StreamOrderUpdate:
    """Order update pushed on the user stream (executionReport)."""
    event: str
    event_time: int
    symbol: str
    client_order_id: str
    side: OrderSide
    type: OrderType
    time_in_force: TimeInForce
    quantity: Decimal
    price: Decimal
    stop_price: Decimal
    iceberg_quantity: Decimal
    original_client_order_id: str
    execution_type: ExecutionType
    status: OrderStatus
    reject_reason: str
    order_id: int
    last_quantity_filled: Decimal
    accumulated_quantity_of_filled_trades: Decimal
    last_price_filled: Decimal
    commission: Decimal
    commission_asset: Optional[str]
    time: int
    trade_id: int
    is_working: bool
    buyer_is_maker: bool

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StreamOrderUpdate":
        return cls(
            event=data["e"],
            event_time=int(data["E"]),
            symbol=data["s"],
            client_order_id=data["c"],
            side=OrderSide(data["S"]),
            type=OrderType(data["o"]),
            time_in_force=TimeInForce(data["f"]),
            quantity=_dec(data["q"]),
            price=_dec(data["p"]),
            stop_price=_dec(data.get("P", "0")),
            iceberg_quantity=_dec(data.get("F", "0")),
            original_client_order_id=data.get("C", ""),
            execution_type=ExecutionType(data["x"]),
            status=OrderStatus(data["X"]),
            reject_reason=data.get("r", "NONE"),
            order_id=int(data["i"]),
            last_quantity_filled=_dec(data["l"]),
            accumulated_quantity_of_filled_trades=_dec(data["z"]),
            last_price_filled=_dec(data["L"]),
            commission=_dec(data.get("n", "0")),
            commission_asset=data.get("N"),
            time=int(data["T"]),
            trade_id=int(data["t"]),
            is_working=bool(data.get("w", False)),
            buyer_is_maker=bool(data.get("m", False)),
        )


def decode(model: Type[T], raw: Union[str, bytes]) -> T:
    """
    Parse a raw stream payload into `model`.
    Raises DecodeFailed for malformed JSON or a payload of the wrong shape.
    """
    try:
        return model.from_dict(json.loads(raw))  # type: ignore[attr-defined]
    except (ValueError, KeyError, TypeError, IndexError, ArithmeticError, RecursionError) as e:
        raise DecodeFailed(f"Couldn't decode {model.__name__}: {e!r}") from e
