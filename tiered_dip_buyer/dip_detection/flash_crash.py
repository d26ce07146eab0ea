"""
Flash-crash mode controller.

A small per-symbol state machine: NORMAL -> ACTIVE when a fired tier's change
breaches the flash-crash trigger, ACTIVE -> NORMAL when the change across the
whole retained history recovers above the recovery threshold (or the optional
episode limit elapses). While ACTIVE the buy cadence is shortened and capped.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from .models import FlashCrashTransition
from ..config.models import FlashCrashConfig
from ..models import DipSignal
from ..price_history import PriceHistoryTracker
from ..symbol_state import SymbolState

logger = logging.getLogger(__name__)


class FlashCrashController:
    """Drives the flash-crash fields of each SymbolState."""

    def __init__(self, config: FlashCrashConfig, tracker: PriceHistoryTracker):
        self.config = config
        self.tracker = tracker

    def update(self, state: SymbolState, signal: Optional[DipSignal],
               now: datetime) -> Optional[FlashCrashTransition]:
        """
        Advance the state machine for one cycle.

        Args:
            state: The symbol's state record
            signal: Dip fired this cycle, or None
            now: Cycle time

        Returns:
            The transition that happened, or None.
        """
        transition = None

        if state.flash_crash_active and self._episode_expired(state, now):
            logger.info(f"Flash crash episode for {state.symbol} expired after {self.config.max_episode_minutes} min")
            state.reset_flash_crash()
            transition = FlashCrashTransition.EXPIRED

        if signal is not None:
            if self.config.enabled and signal.change_pct <= self.config.trigger_pct and not state.flash_crash_active:
                state.flash_crash_active = True
                state.flash_crash_started_at = now
                state.rapid_buy_count = 0
                logger.info(f"FLASH CRASH MODE ACTIVATED for {state.symbol} ({signal.change_pct:.2f}%)")
                return FlashCrashTransition.ACTIVATED
            return transition

        if state.flash_crash_active:
            change_pct = self.tracker.full_history_change_pct(state.symbol)
            if change_pct is not None and change_pct > self.config.recovery_pct:
                logger.info(f"Flash crash ended for {state.symbol} (history change {change_pct:.2f}%)")
                state.reset_flash_crash()
                return FlashCrashTransition.ENDED

        return transition

    def min_time_between_buys(self, state: SymbolState, normal_seconds: float) -> float:
        """Minimum seconds between buys for the symbol's current mode."""
        if state.flash_crash_active:
            return self.config.min_time_between_buys_seconds
        return normal_seconds

    def rapid_buy_cap_reached(self, state: SymbolState) -> bool:
        return state.flash_crash_active and state.rapid_buy_count >= self.config.max_rapid_buys

    def record_buy(self, state: SymbolState) -> None:
        if state.flash_crash_active:
            state.rapid_buy_count += 1

    def _episode_expired(self, state: SymbolState, now: datetime) -> bool:
        if self.config.max_episode_minutes is None or state.flash_crash_started_at is None:
            return False
        return now - state.flash_crash_started_at >= timedelta(minutes=self.config.max_episode_minutes)
