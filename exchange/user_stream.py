"""
User stream router.
Account updates and order updates arrive on the same user stream
connection; this splits them back out to their own handlers.
"""

from __future__ import annotations
import logging
import threading
from typing import Any, Callable, Optional, Union

from exchange.errors import DecodeFailed
from exchange.models import StreamAccountInfo, StreamOrderUpdate, decode

logger = logging.getLogger(__name__)

ACCOUNT_UPDATE_EVENT = "outboundAccountInfo"
EXECUTION_UPDATE_EVENT = "executionReport"

AccountHandler = Callable[[StreamAccountInfo], Any]
OrderHandler = Callable[[StreamOrderUpdate], Any]


class UserStreamRouter:
    """Holds the account/order handler slots and routes raw user stream payloads."""

    def __init__(self):
        self._account_handler: Optional[AccountHandler] = None
        self._order_handler: Optional[OrderHandler] = None
        self._lock = threading.Lock()

    @property
    def has_account_handler(self) -> bool:
        return self._account_handler is not None

    @property
    def has_order_handler(self) -> bool:
        return self._order_handler is not None

    def set_account_handler(self, handler: Optional[AccountHandler]) -> Optional[AccountHandler]:
        """Fill the account slot. Returns the handler it replaced."""
        with self._lock:
            previous, self._account_handler = self._account_handler, handler
            return previous

    def set_order_handler(self, handler: Optional[OrderHandler]) -> Optional[OrderHandler]:
        """Fill the order slot. Returns the handler it replaced."""
        with self._lock:
            previous, self._order_handler = self._order_handler, handler
            return previous

    def clear_account_handler(self) -> bool:
        """Clear the account slot. Returns True if both slots are now empty."""
        with self._lock:
            self._account_handler = None
            return self._order_handler is None

    def clear_order_handler(self) -> bool:
        """Clear the order slot. Returns True if both slots are now empty."""
        with self._lock:
            self._order_handler = None
            return self._account_handler is None

    def clear(self):
        with self._lock:
            self._account_handler = None
            self._order_handler = None

    def route(self, raw: Union[str, bytes]):
        """
        Deliver one user stream payload.
        Payloads matching neither event, or whose handler slot is empty,
        are dropped. This is normal while an unsubscribe races in-flight messages.
        """
        text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw

        with self._lock:
            if ACCOUNT_UPDATE_EVENT in text:
                handler, model = self._account_handler, StreamAccountInfo
            elif EXECUTION_UPDATE_EVENT in text:
                handler, model = self._order_handler, StreamOrderUpdate
            else:
                return

        if handler is None:
            return

        try:
            message = decode(model, text)
        except DecodeFailed as e:
            logger.error(f"[USER] Dropping {model.__name__}: {e}")
            return

        try:
            handler(message)
        except Exception as e:
            logger.error(f"[USER] {model.__name__} handler error: {e}", exc_info=True)
