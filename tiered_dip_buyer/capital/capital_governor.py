"""
Account- and strategy-level capital checks performed before every buy.
"""

import logging
from datetime import datetime
from typing import Optional

from .models import BuyAuthorization, CapitalSnapshot, RefusalReason
from ..config.models import DipBuyerConfig
from ..dip_detection import FlashCrashController
from ..exchange import ExchangeClient
from ..ledger import PositionLedger
from ..symbol_state import SymbolStateBook

logger = logging.getLogger(__name__)


class CapitalGovernor:
    """Authorizes or refuses buys.

    Refusals are expected outcomes and are returned, not raised. A failing
    balance fetch raises ExchangeError and is treated by the caller as a
    transient skip.
    """

    def __init__(self, config: DipBuyerConfig, states: SymbolStateBook, ledger: PositionLedger,
                 flash_crash: FlashCrashController, client: ExchangeClient):
        self.config = config
        self.states = states
        self.ledger = ledger
        self.flash_crash = flash_crash
        self.client = client

    def current_reserve(self) -> float:
        """Reserve kept uncommitted, larger while any symbol is in a flash crash."""
        reserve_config = self.config.dynamic_reserve
        if not reserve_config.enabled:
            return self.config.min_usd_reserve
        if self.states.any_flash_crash_active():
            return reserve_config.high_volatility_reserve
        return reserve_config.low_volatility_reserve

    @staticmethod
    def compute_capital(free_balance: float, reserve: float, max_total_deployed: float,
                        total_deployed: float) -> CapitalSnapshot:
        return CapitalSnapshot(
            free_balance=free_balance,
            reserve=reserve,
            available_capital=max(0.0, free_balance - reserve),
            remaining_budget=max_total_deployed - total_deployed,
        )

    def capital_snapshot(self) -> CapitalSnapshot:
        free_balance = self.client.fetch_free_balance()
        return self.compute_capital(
            free_balance,
            self.current_reserve(),
            self.config.max_total_deployed,
            self.ledger.total_deployed,
        )

    def authorize(self, symbol: str, size_usd: float, now: datetime) -> BuyAuthorization:
        """
        Decide whether a buy of `size_usd` may be placed for `symbol`.

        Policy checks that need no exchange call run first: inter-buy cooldown,
        flash-crash rapid-buy cap and the per-symbol position cap. The capital
        check then requires size <= min(available capital, remaining budget).
        """
        state = self.states[symbol]

        min_interval = self.flash_crash.min_time_between_buys(state, self.config.min_time_between_buys_seconds)
        elapsed = state.seconds_since_last_buy(now)
        if elapsed is not None and elapsed < min_interval:
            return self._refuse(symbol, size_usd, RefusalReason.COOLDOWN,
                                f"Too soon since last {symbol} buy ({elapsed:.0f}s < {min_interval:.0f}s)")

        if self.flash_crash.rapid_buy_cap_reached(state):
            return self._refuse(symbol, size_usd, RefusalReason.RAPID_BUY_CAP,
                                f"Max rapid buys reached for {symbol} flash crash")

        position = self.ledger.get(symbol)
        if position is not None and position.value >= self.config.max_position_usd:
            return self._refuse(symbol, size_usd, RefusalReason.MAX_POSITION,
                                f"Max position reached for {symbol} (${position.value:,.2f})")

        capital = self.capital_snapshot()
        if size_usd > capital.authorized_usd:
            return self._refuse(symbol, size_usd, RefusalReason.INSUFFICIENT_CAPITAL,
                                f"Insufficient capital (${capital.authorized_usd:,.2f} < ${size_usd:,.2f})",
                                capital)

        return BuyAuthorization(approved=True, size_usd=size_usd, capital=capital)

    def _refuse(self, symbol: str, size_usd: float, reason: RefusalReason, message: str,
                capital: Optional[CapitalSnapshot] = None) -> BuyAuthorization:
        logger.info(f"Buy refused for {symbol}: {message}")
        return BuyAuthorization(approved=False, size_usd=size_usd, reason=reason,
                                message=message, capital=capital)
