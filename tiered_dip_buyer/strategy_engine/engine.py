"""
Strategy engine orchestrating the tiered dip-accumulation cycle.
"""

import logging
import threading
import time
from datetime import datetime
from typing import Callable, Optional

from ..capital import CapitalGovernor, PositionSizer
from ..config.models import DipBuyerConfig
from ..dip_detection import DipTierDetector, FlashCrashController, FlashCrashTransition
from ..exceptions import DipBuyerError, ExchangeError, PositionStoreError
from ..exchange import CcxtExchangeClient, ExchangeClient, OrderBookAdvisor, PaperExchangeClient
from ..exits import ExitStrategyEvaluator
from ..ledger import PositionLedger
from ..models import DipSignal, EngineStats, ExitReason, utc_now
from ..persistence import PositionStore, create_position_store
from ..price_history import PriceHistoryTracker
from ..symbol_state import SymbolStateBook

logger = logging.getLogger(__name__)


class DipBuyerEngine:
    """Runs the per-symbol decision pipeline on a fixed polling interval.

    Symbols are processed sequentially within a cycle: refresh price history,
    evaluate exits on any open position, detect the dip tier, update the
    flash-crash state machine and, if a tier fired, size and attempt a buy
    subject to the capital governor.
    """

    def __init__(
        self,
        config: DipBuyerConfig,
        client: ExchangeClient,
        store: PositionStore,
        advisor: Optional[OrderBookAdvisor] = None,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            config: Validated engine configuration
            client: Exchange feed and order executor
            store: Persistent position store
            advisor: Optional order book advisor, consulted for logging only
            clock: Source of the current time
            sleep: Used for the inter-symbol delay
        """
        self.config = config
        self.client = client
        self.advisor = advisor
        self.clock = clock
        self.sleep = sleep

        self.states = SymbolStateBook(config.symbols)
        self.tracker = PriceHistoryTracker(self.states, config.price_retention_hours)
        self.detector = DipTierDetector(config.tiers, self.tracker)
        self.flash_crash = FlashCrashController(config.flash_crash, self.tracker)
        self.sizer = PositionSizer(config)
        self.ledger = PositionLedger(store, self.states)
        self.governor = CapitalGovernor(config, self.states, self.ledger, self.flash_crash, client)
        self.exits = ExitStrategyEvaluator(config, self.ledger, self.states, client)

        self.stats = EngineStats()
        self._stop_event = threading.Event()
        self._running = False
        self._initialized = False

    @property
    def is_running(self) -> bool:
        return self._running

    def initialize(self) -> None:
        """Load persisted open positions. Must run before the first cycle."""
        self.ledger.load()
        self._initialized = True
        logger.info(f"Dip buyer initialized for {', '.join(self.config.symbols)}")

    def warm_up(self) -> None:
        """Record one price per symbol so the first cycle has a baseline."""
        for symbol in self.config.symbols:
            self.tracker.refresh(symbol, self.client, self.clock())

    def run_cycle(self) -> None:
        """Process every symbol once, in configured order."""
        if not self._initialized:
            raise RuntimeError("Dip buyer engine not initialized")

        self.stats.cycles += 1
        if self.ledger.pending_writes:
            self.ledger.flush_pending()
        for index, symbol in enumerate(self.config.symbols):
            self.process_symbol(symbol, self.clock())
            if index < len(self.config.symbols) - 1 and self.config.inter_symbol_delay_seconds > 0:
                self.sleep(self.config.inter_symbol_delay_seconds)

    def process_symbol(self, symbol: str, now: datetime) -> None:
        """
        Run the decision pipeline for one symbol.

        Exchange and store failures are logged and skip the symbol for this
        cycle; they never abort the cycle.
        """
        try:
            self._process_symbol(symbol, now)
        except (ExchangeError, PositionStoreError) as e:
            logger.warning(f"Skipping {symbol} this cycle: {e}")
        except DipBuyerError as e:
            logger.error(f"Error processing {symbol}: {e}")

    def _process_symbol(self, symbol: str, now: datetime) -> None:
        price = self.tracker.refresh(symbol, self.client, now)
        if price is None:
            return

        outcome = self.exits.check_position(symbol, price, now)
        if outcome is not None:
            if outcome.executed:
                closed = outcome.closed_position
                self.stats.sell_orders += 1
                self.stats.total_profit += closed.profit
                if closed.exit_reason == ExitReason.TRAILING_STOP:
                    self.stats.trailing_stop_triggers += 1
            return

        signal = self.detector.detect(symbol, now)
        state = self.states[symbol]
        transition = self.flash_crash.update(state, signal, now)
        if transition == FlashCrashTransition.ACTIVATED:
            self.stats.flash_crash_events += 1

        if signal is None:
            return

        self.stats.dips_detected += 1
        logger.info(
            f"TIER {signal.tier} DIP DETECTED: {symbol} dropped {signal.change_pct:.2f}% in "
            f"{signal.lookback_minutes} min (${signal.old_price:,.2f} -> ${signal.current_price:,.2f})"
        )
        self._buy_dip(symbol, signal, price, now)

    def _buy_dip(self, symbol: str, signal: DipSignal, price: float, now: datetime) -> None:
        sizing = self.sizer.calculate_order_size(symbol, signal, price)
        if sizing.size_usd <= 0:
            logger.info(f"Order size for {symbol} rounded to zero, skipping")
            return

        authorization = self.governor.authorize(symbol, sizing.size_usd, now)
        if not authorization.approved:
            self.stats.buys_refused += 1
            return

        if self.advisor is not None:
            advice = self.advisor.get_optimal_price(symbol, "buy", price)
            if advice.adjusted:
                logger.info(f"Order book suggests ${advice.price:,.2f} for {symbol} ({advice.reason})")

        amount = sizing.size_usd / price
        logger.info(f"Buying ${sizing.size_usd} of {symbol} ({amount:.6f} @ ~${price:,.2f})")
        fill = self.client.market_buy(symbol, amount, reference_price=price)

        self.ledger.open_or_merge(symbol, fill.filled_price, fill.filled_amount, signal.tier, now)

        state = self.states[symbol]
        state.last_buy_time = now
        self.flash_crash.record_buy(state)

        self.stats.buy_orders += 1
        if sizing.support_level is not None:
            self.stats.support_level_buys += 1

    def start(self) -> None:
        """Warm up price history and loop until stop() is called."""
        if self._running:
            return
        if not self._initialized:
            self.initialize()

        self._running = True
        self._stop_event.clear()
        logger.info("Starting tiered dip buyer")

        self.warm_up()

        try:
            while not self._stop_event.is_set():
                try:
                    self.run_cycle()
                except Exception:
                    logger.exception("Cycle error")
                self._stop_event.wait(self.config.check_interval_seconds)
        finally:
            self._running = False
            logger.info("Tiered dip buyer stopped")

    def stop(self) -> None:
        """Request the loop to exit after the in-flight cycle."""
        self._stop_event.set()

    def get_stats(self) -> EngineStats:
        return self.stats.model_copy()


def format_stats(engine: DipBuyerEngine) -> str:
    """Format engine statistics and open positions for display."""
    stats = engine.stats
    lines = []
    lines.append("")
    lines.append("=" * 60)
    lines.append("  TIERED DIP BUYER STATISTICS")
    lines.append("=" * 60)
    lines.append(f"  Cycles: {stats.cycles}")
    lines.append(f"  Dips Detected: {stats.dips_detected}")
    lines.append(f"  Flash Crash Events: {stats.flash_crash_events}")
    lines.append(f"  Buy Orders: {stats.buy_orders}")
    lines.append(f"  Refused Buys: {stats.buys_refused}")
    lines.append(f"  Sell Orders: {stats.sell_orders}")
    lines.append(f"  Support Level Buys: {stats.support_level_buys}")
    lines.append(f"  Trailing Stop Triggers: {stats.trailing_stop_triggers}")
    lines.append(f"  Total Profit: ${stats.total_profit:,.2f}")
    lines.append(f"  Currently Deployed: ${engine.ledger.total_deployed:,.2f}")

    positions = engine.ledger.open_positions()
    if positions:
        lines.append("")
        lines.append("  Open Positions:")
        for pos in positions:
            lines.append(
                f"    {pos.symbol}: Tier {pos.entry_tier} | {pos.amount:.6f} @ ${pos.entry_price:,.2f} "
                f"(${pos.value:,.2f})"
            )

    lines.append("=" * 60)
    return "\n".join(lines)


def build_exchange_client(config: DipBuyerConfig, paper: bool = False) -> ExchangeClient:
    """Create the live CCXT client, wrapped in a paper executor when requested."""
    live = CcxtExchangeClient(config.exchange)
    if paper or config.exchange.paper_trading:
        return PaperExchangeClient(live, config.exchange.paper_balance_usd)
    return live


def build_engine(config: DipBuyerConfig, paper: bool = False) -> DipBuyerEngine:
    """Assemble an engine with its exchange client, store and optional advisor."""
    client = build_exchange_client(config, paper)
    store = create_position_store(config.store.backend, config.store.path)
    advisor = OrderBookAdvisor(client, config.order_book) if config.order_book.enabled else None
    return DipBuyerEngine(config, client, store, advisor=advisor)
