"""Paper trading executor.

Reads real prices from a live client but simulates fills and the quote
balance locally, so the engine can run end-to-end without placing orders.
"""
import logging
from collections import defaultdict
from typing import Dict, List, Optional

from .exchange_client import ExchangeClient
from ..exceptions import ExchangeError
from ..models import Fill

logger = logging.getLogger(__name__)


class PaperExchangeClient(ExchangeClient):
    """Simulated executor on top of a live price feed."""

    def __init__(self, price_feed: ExchangeClient, starting_balance: float):
        self.price_feed = price_feed
        self.balance = starting_balance
        self.holdings: Dict[str, float] = defaultdict(float)
        logger.info("Paper trading with starting balance $%.2f", starting_balance)

    def fetch_price(self, symbol: str) -> float:
        return self.price_feed.fetch_price(symbol)

    def fetch_order_book(self, symbol: str, limit: int = 20) -> Dict[str, List[list]]:
        return self.price_feed.fetch_order_book(symbol, limit)

    def fetch_free_balance(self) -> float:
        return self.balance

    def market_buy(self, symbol: str, amount: float, reference_price: Optional[float] = None) -> Fill:
        price = reference_price or self.fetch_price(symbol)
        cost = price * amount
        if cost > self.balance:
            raise ExchangeError(f"paper buy {symbol}: cost ${cost:.2f} exceeds balance ${self.balance:.2f}")
        self.balance -= cost
        self.holdings[symbol] += amount
        logger.info("PAPER BUY %s qty=%.8f price=%.8f", symbol, amount, price)
        return Fill(filled_price=price, filled_amount=amount)

    def market_sell(self, symbol: str, amount: float, reference_price: Optional[float] = None) -> Fill:
        held = self.holdings[symbol]
        # Positions restored from a previous run are not in the simulated holdings
        if held and amount > held + 1e-12:
            raise ExchangeError(f"paper sell {symbol}: qty {amount:.8f} exceeds holdings {held:.8f}")
        price = reference_price or self.fetch_price(symbol)
        self.holdings[symbol] = max(0.0, held - amount)
        self.balance += price * amount
        logger.info("PAPER SELL %s qty=%.8f price=%.8f", symbol, amount, price)
        return Fill(filled_price=price, filled_amount=amount)
