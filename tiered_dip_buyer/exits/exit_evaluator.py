"""
Exit strategy evaluation for open dip positions.
"""

import logging
from datetime import datetime
from typing import Optional

from .models import ExitDecision, ExitOutcome
from ..config.models import DipBuyerConfig
from ..exceptions import ExchangeError
from ..exchange import ExchangeClient
from ..ledger import PositionLedger
from ..models import ExitReason, Position
from ..symbol_state import SymbolStateBook

logger = logging.getLogger(__name__)


class ExitStrategyEvaluator:
    """Checks trailing stop, take profit, stop loss and time-based exits, in that order."""

    def __init__(self, config: DipBuyerConfig, ledger: PositionLedger,
                 states: SymbolStateBook, client: ExchangeClient):
        self.config = config
        self.ledger = ledger
        self.states = states
        self.client = client

    def evaluate(self, position: Position, current_price: float, highest_price: float,
                 now: datetime) -> Optional[ExitDecision]:
        """
        Decide whether a position should be closed.

        The first matching condition wins:
        1. trailing stop, armed once pnl >= activation, fires at a trail_pct
           retracement from the highest price since buy
        2. take profit for the position's entry tier
        3. hard stop loss
        4. time-based exit, only when held long enough and at or above the
           minimum acceptable profit

        Args:
            position: Open position
            current_price: Latest price
            highest_price: Highest price seen since the position was opened
            now: Evaluation time

        Returns:
            ExitDecision or None
        """
        pnl_pct = position.pnl_pct(current_price)

        trailing = self.config.trailing_stop
        if trailing.enabled and pnl_pct >= trailing.activation_pct:
            trail_price = highest_price * (1 - trailing.trail_pct / 100)
            if current_price <= trail_price:
                return ExitDecision(
                    reason=ExitReason.TRAILING_STOP,
                    pnl_pct=pnl_pct,
                    message=f"Trailing stop triggered (+{pnl_pct:.2f}%, peak ${highest_price:,.2f})",
                )

        target = self.config.take_profit_target(position.entry_tier)
        if pnl_pct >= target:
            return ExitDecision(
                reason=ExitReason.TAKE_PROFIT,
                pnl_pct=pnl_pct,
                message=f"Take profit (tier {position.entry_tier}) triggered (+{pnl_pct:.2f}% >= {target}%)",
            )

        if pnl_pct <= self.config.stop_loss_pct:
            return ExitDecision(
                reason=ExitReason.STOP_LOSS,
                pnl_pct=pnl_pct,
                message=f"Stop loss triggered ({pnl_pct:.2f}%)",
            )

        if self.config.max_hold_hours is not None:
            hold_hours = position.hold_hours(now)
            if hold_hours >= self.config.max_hold_hours and pnl_pct >= self.config.time_based_exit_pct:
                return ExitDecision(
                    reason=ExitReason.TIME_BASED,
                    pnl_pct=pnl_pct,
                    message=f"Time-based exit after {hold_hours:.1f}h (+{pnl_pct:.2f}%)",
                )

        return None

    def check_position(self, symbol: str, current_price: float, now: datetime) -> Optional[ExitOutcome]:
        """
        Evaluate the symbol's open position and liquidate it if an exit fires.

        Returns:
            None when there is no position or no exit fired. Otherwise an
            ExitOutcome; `closed_position` is None if the sell failed, in which
            case the position stays open.
        """
        position = self.ledger.get(symbol)
        if position is None:
            return None

        highest = self.states[symbol].highest_price_since_buy
        decision = self.evaluate(position, current_price, highest, now)
        if decision is None:
            return None

        logger.info(f"{symbol}: {decision.message}")

        try:
            fill = self.client.market_sell(symbol, position.amount, reference_price=current_price)
        except ExchangeError as e:
            logger.error(f"Sell failed for {symbol}, position stays open: {e}")
            return ExitOutcome(decision=decision)

        closed = self.ledger.close(symbol, fill.filled_price, decision.reason, now)
        return ExitOutcome(decision=decision, closed_position=closed)
