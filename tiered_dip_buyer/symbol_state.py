"""
Per-symbol mutable state for the dip-accumulation engine.

Everything the engine tracks per symbol between cycles lives on one
SymbolState record so that related fields are always updated together.
"""

import logging
from datetime import datetime
from typing import Dict, Iterator, List, Optional

from pydantic import BaseModel, Field

from .models import PriceSample

logger = logging.getLogger(__name__)


class SymbolState(BaseModel):
    """Mutable per-symbol state record."""

    symbol: str
    history: List[PriceSample] = Field(default_factory=list)
    flash_crash_active: bool = False
    flash_crash_started_at: Optional[datetime] = None
    rapid_buy_count: int = 0
    highest_price_since_buy: float = 0.0
    last_buy_time: Optional[datetime] = None

    def reset_flash_crash(self) -> None:
        """Return the symbol to normal mode."""
        self.flash_crash_active = False
        self.flash_crash_started_at = None
        self.rapid_buy_count = 0

    def reset_trailing(self) -> None:
        self.highest_price_since_buy = 0.0

    def seconds_since_last_buy(self, now: datetime) -> Optional[float]:
        if self.last_buy_time is None:
            return None
        return (now - self.last_buy_time).total_seconds()


class SymbolStateBook:
    """Indexed collection of SymbolState records keyed by symbol."""

    def __init__(self, symbols: List[str]):
        self._states: Dict[str, SymbolState] = {
            symbol: SymbolState(symbol=symbol) for symbol in symbols
        }
        logger.debug(f"SymbolStateBook initialized for {', '.join(symbols)}")

    def __getitem__(self, symbol: str) -> SymbolState:
        try:
            return self._states[symbol]
        except KeyError:
            raise KeyError(f"Symbol {symbol} is not tracked") from None

    def __contains__(self, symbol: str) -> bool:
        return symbol in self._states

    def __iter__(self) -> Iterator[SymbolState]:
        return iter(self._states.values())

    def __len__(self) -> int:
        return len(self._states)

    @property
    def symbols(self) -> List[str]:
        return list(self._states)

    def any_flash_crash_active(self) -> bool:
        return any(state.flash_crash_active for state in self._states.values())
