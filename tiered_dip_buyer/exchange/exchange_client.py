"""CCXT-based spot exchange client.

Exposes the narrow contract the engine consumes: current price, free quote
balance, and market buy/sell returning the fill. Every ccxt failure surfaces as
ExchangeError so callers can treat it as a transient, skip-this-cycle event.
"""
import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import ccxt

from ..config.models import ExchangeConfig
from ..exceptions import ExchangeError
from ..models import Fill

logger = logging.getLogger(__name__)


class ExchangeClient(ABC):
    """Exchange feed and order executor used by the engine."""

    @abstractmethod
    def fetch_price(self, symbol: str) -> float:
        """Last traded price for a symbol."""

    @abstractmethod
    def fetch_free_balance(self) -> float:
        """Free balance of the quote currency."""

    @abstractmethod
    def market_buy(self, symbol: str, amount: float, reference_price: Optional[float] = None) -> Fill:
        """Buy `amount` base units at market."""

    @abstractmethod
    def market_sell(self, symbol: str, amount: float, reference_price: Optional[float] = None) -> Fill:
        """Sell `amount` base units at market."""

    def fetch_order_book(self, symbol: str, limit: int = 20) -> Dict[str, List[list]]:
        raise ExchangeError(f"fetch_order_book({symbol}) not supported by {type(self).__name__}")


class CcxtExchangeClient(ExchangeClient):
    """Spot trading client wrapping a CCXT exchange instance."""

    def __init__(self, config: ExchangeConfig, exchange: Optional[Any] = None):
        """
        Args:
            config: Exchange settings.
            exchange: Pre-built ccxt exchange (mainly for tests). Built from
                      `config.name` and environment credentials when omitted.
        """
        self.config = config
        self.exchange = exchange
        self._markets_loaded = exchange is not None

    # ── connection ──────────────────────────────────────────────

    def connect(self) -> None:
        """Initialize the CCXT exchange instance.

        Credentials are read from `<NAME>_API_KEY` and `<NAME>_API_SECRET`.
        """
        name = self.config.name.lower()
        exchange_class = getattr(ccxt, name, None)
        if exchange_class is None:
            raise ExchangeError(f"Unknown exchange: {name}")

        env_prefix = name.upper()
        api_key = os.environ.get(f"{env_prefix}_API_KEY", "")
        secret = os.environ.get(f"{env_prefix}_API_SECRET", "")

        params: Dict[str, Any] = {
            "enableRateLimit": True,
            "timeout": self.config.timeout_ms,
        }
        if api_key:
            params["apiKey"] = api_key
            params["secret"] = secret

        self.exchange = exchange_class(params)
        self._markets_loaded = False
        logger.info("Connected to %s (authenticated=%s)", name, bool(api_key))

    def _ensure_markets(self) -> None:
        if self.exchange is None:
            self.connect()
        if not self._markets_loaded:
            try:
                self.exchange.load_markets()
            except ccxt.BaseError as e:
                raise ExchangeError("load_markets", e) from e
            self._markets_loaded = True

    # ── market data ─────────────────────────────────────────────

    def fetch_price(self, symbol: str) -> float:
        self._ensure_markets()
        try:
            ticker = self.exchange.fetch_ticker(symbol)
        except ccxt.BaseError as e:
            logger.error("fetch_ticker(%s) failed: %s", symbol, e)
            raise ExchangeError(f"fetch_ticker({symbol})", e) from e

        price = ticker.get("last") or ticker.get("close")
        if not price:
            raise ExchangeError(f"fetch_ticker({symbol}) returned no price")
        return float(price)

    def fetch_order_book(self, symbol: str, limit: int = 20) -> Dict[str, List[list]]:
        self._ensure_markets()
        try:
            return self.exchange.fetch_order_book(symbol, limit)
        except ccxt.BaseError as e:
            logger.error("fetch_order_book(%s) failed: %s", symbol, e)
            raise ExchangeError(f"fetch_order_book({symbol})", e) from e

    # ── account data ────────────────────────────────────────────

    def fetch_free_balance(self) -> float:
        self._ensure_markets()
        try:
            balance = self.exchange.fetch_balance()
        except ccxt.BaseError as e:
            logger.error("fetch_balance() failed: %s", e)
            raise ExchangeError("fetch_balance", e) from e
        free = balance.get("free") or {}
        return float(free.get(self.config.quote_currency) or 0.0)

    # ── order management ────────────────────────────────────────

    def market_buy(self, symbol: str, amount: float, reference_price: Optional[float] = None) -> Fill:
        self._ensure_markets()
        logger.info("MARKET BUY %s qty=%.8f", symbol, amount)
        try:
            order = self.exchange.create_market_buy_order(symbol, amount)
        except ccxt.BaseError as e:
            raise ExchangeError(f"market buy {symbol}", e) from e
        return self._to_fill(symbol, order, amount, reference_price)

    def market_sell(self, symbol: str, amount: float, reference_price: Optional[float] = None) -> Fill:
        self._ensure_markets()
        logger.info("MARKET SELL %s qty=%.8f", symbol, amount)
        try:
            order = self.exchange.create_market_sell_order(symbol, amount)
        except ccxt.BaseError as e:
            raise ExchangeError(f"market sell {symbol}", e) from e
        return self._to_fill(symbol, order, amount, reference_price)

    def _to_fill(self, symbol: str, order: Dict[str, Any], amount: float,
                 reference_price: Optional[float]) -> Fill:
        """Build a Fill, falling back to the requested amount and reference price
        when the exchange does not report them on the order response."""
        filled_price = order.get("average") or order.get("price") or reference_price
        if not filled_price:
            filled_price = self.fetch_price(symbol)
        filled_amount = order.get("filled") or amount
        return Fill(filled_price=float(filled_price), filled_amount=float(filled_amount))
