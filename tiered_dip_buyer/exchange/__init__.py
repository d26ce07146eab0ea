"""
Exchange collaborators: CCXT feed/executor, paper executor and order book advisor.
"""

from .exchange_client import ExchangeClient, CcxtExchangeClient
from .paper_exchange import PaperExchangeClient
from .orderbook_advisor import OrderBookAdvisor
from .models import OrderBookAnalysis, OrderBookLevel, PriceAdvice

__all__ = [
    "ExchangeClient",
    "CcxtExchangeClient",
    "PaperExchangeClient",
    "OrderBookAdvisor",
    "OrderBookAnalysis",
    "OrderBookLevel",
    "PriceAdvice",
]
