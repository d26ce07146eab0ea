"""
Authoritative record of open and closed dip positions.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..exceptions import PositionStoreError
from ..models import ExitReason, Position, PositionStatus
from ..persistence import PositionStore
from ..symbol_state import SymbolStateBook

logger = logging.getLogger(__name__)


class PositionLedger:
    """Owns positions and the total deployed capital.

    Every mutation records an exchange fill that has already happened, so the
    in-memory state always follows the fill. If the store write fails the
    write is queued and retried by `flush_pending`; until then the cache is
    ahead of the store. A position not yet inserted carries a negative
    placeholder id.
    """

    def __init__(self, store: PositionStore, states: SymbolStateBook):
        self.store = store
        self.states = states
        self._positions: Dict[str, Position] = {}
        self._total_deployed = 0.0
        self._unsaved_inserts: Dict[int, Position] = {}
        self._unsaved_updates: Dict[int, Dict[str, Any]] = {}
        self._next_placeholder_id = -1

    @property
    def pending_writes(self) -> int:
        """Number of store writes still waiting to be retried."""
        return len(self._unsaved_inserts) + len(self._unsaved_updates)

    @property
    def total_deployed(self) -> float:
        """Sum of entry_price * amount over open positions."""
        return self._total_deployed

    def load(self) -> List[Position]:
        """
        Rebuild the cache from persisted open rows.

        Restores total_deployed and seeds each symbol's trailing-stop high-water
        mark with its entry price, so a restart mid-trade keeps capital tracking.

        Returns:
            The open positions loaded.
        """
        self.store.initialize()
        open_positions = self.store.select_open()

        if self.pending_writes:
            logger.warning(f"Discarding {self.pending_writes} unsaved position writes on reload")
        self._positions = {}
        self._total_deployed = 0.0
        self._unsaved_inserts = {}
        self._unsaved_updates = {}
        for position in open_positions:
            if position.symbol in self._positions:
                logger.warning(f"Duplicate open position for {position.symbol} (id {position.id}), ignoring")
                continue
            self._positions[position.symbol] = position
            self._total_deployed += position.value
            if position.symbol in self.states:
                self.states[position.symbol].highest_price_since_buy = position.entry_price
            else:
                logger.warning(f"Open position {position.id} for untracked symbol {position.symbol}")

        if open_positions:
            logger.info(f"Loaded {len(self._positions)} open dip positions (${self._total_deployed:,.2f} deployed)")
        return list(self._positions.values())

    def get(self, symbol: str) -> Optional[Position]:
        return self._positions.get(symbol)

    def open_positions(self) -> List[Position]:
        return list(self._positions.values())

    def closed_positions(self) -> List[Position]:
        return self.store.select_closed()

    def open_or_merge(self, symbol: str, filled_price: float, filled_amount: float,
                      tier: int, now: datetime) -> Position:
        """
        Record a buy fill.

        Creates a position if the symbol has none open; otherwise merges the fill
        into it with an amount-weighted average entry price and the max tier.

        Returns:
            The updated open position.
        """
        existing = self._positions.get(symbol)
        fill_value = filled_price * filled_amount

        if existing is None:
            position = Position(
                symbol=symbol,
                entry_price=filled_price,
                amount=filled_amount,
                entry_time=now,
                entry_tier=tier,
            )
            position.id = self._insert(position)
        else:
            total_amount = existing.amount + filled_amount
            avg_price = (existing.value + fill_value) / total_amount
            entry_tier = max(existing.entry_tier, tier)

            changes = {
                "entry_price": avg_price,
                "amount": total_amount,
                "entry_tier": entry_tier,
            }
            self._update(existing.id, changes)
            position = existing.model_copy(update=changes)

        self._positions[symbol] = position
        self._total_deployed += fill_value

        state = self.states[symbol]
        state.highest_price_since_buy = max(state.highest_price_since_buy, position.entry_price)

        logger.info(
            f"{symbol} position {position.id}: {position.amount:.6f} @ ${position.entry_price:,.2f} "
            f"(tier {position.entry_tier})"
        )
        return position

    def close(self, symbol: str, exit_price: float, reason: ExitReason, now: datetime) -> Position:
        """
        Close the open position for a symbol.

        Clears the symbol's flash-crash and trailing-stop tracking.

        Raises:
            KeyError: If the symbol has no open position.

        Returns:
            The closed position.
        """
        position = self._positions.get(symbol)
        if position is None:
            raise KeyError(f"No open position for {symbol}")

        profit = (exit_price - position.entry_price) * position.amount
        changes = {
            "status": PositionStatus.CLOSED,
            "exit_price": exit_price,
            "exit_time": now,
            "profit": profit,
            "exit_reason": reason,
        }
        self._update(position.id, changes)

        closed = position.model_copy(update=changes)
        del self._positions[symbol]
        self._total_deployed -= position.value
        if not self._positions:
            # Avoid float drift once nothing is deployed
            self._total_deployed = 0.0

        state = self.states[symbol]
        state.reset_flash_crash()
        state.reset_trailing()

        logger.info(f"Closed {symbol} position {position.id} at ${exit_price:,.2f}: "
                    f"profit ${profit:,.2f} ({reason.value})")
        return closed

    def flush_pending(self) -> int:
        """
        Retry store writes that failed after a fill.

        Returns:
            The number of writes still pending.
        """
        for placeholder_id, position in list(self._unsaved_inserts.items()):
            try:
                position_id = self.store.insert(position)
            except PositionStoreError as e:
                logger.warning(f"Still cannot persist {position.symbol} position: {e}")
                continue
            del self._unsaved_inserts[placeholder_id]
            cached = self._positions.get(position.symbol)
            if cached is not None and cached.id == placeholder_id:
                self._positions[position.symbol] = cached.model_copy(update={"id": position_id})
            logger.info(f"Persisted {position.symbol} position as id {position_id}")

        for position_id, fields in list(self._unsaved_updates.items()):
            try:
                self.store.update(position_id, fields)
            except PositionStoreError as e:
                logger.warning(f"Still cannot persist update to position {position_id}: {e}")
                continue
            del self._unsaved_updates[position_id]
            logger.info(f"Persisted pending update to position {position_id}")

        return self.pending_writes

    def _insert(self, position: Position) -> int:
        try:
            return self.store.insert(position)
        except PositionStoreError as e:
            placeholder_id = self._next_placeholder_id
            self._next_placeholder_id -= 1
            self._unsaved_inserts[placeholder_id] = position
            logger.error(f"Failed to persist new {position.symbol} position, will retry: {e}")
            return placeholder_id

    def _update(self, position_id: int, fields: Dict[str, Any]) -> None:
        if position_id in self._unsaved_inserts:
            # Not inserted yet: fold the change into the pending row
            pending = self._unsaved_inserts[position_id]
            self._unsaved_inserts[position_id] = pending.model_copy(update=fields)
            return

        try:
            self.store.update(position_id, fields)
        except PositionStoreError as e:
            self._unsaved_updates.setdefault(position_id, {}).update(fields)
            logger.error(f"Failed to persist update to position {position_id}, will retry: {e}")
            return

        pending = self._unsaved_updates.get(position_id)
        if pending is not None:
            for column in fields:
                pending.pop(column, None)
            if not pending:
                del self._unsaved_updates[position_id]
