"""
Command-line interface implementation.
"""

import argparse
import logging
import signal
import sys
from typing import Dict, List, Optional

import pandas as pd

from ..config import ConfigurationManager, DipBuyerConfig
from ..exceptions import ConfigurationError, DipBuyerError, ExchangeError
from ..ledger import PositionLedger
from ..models import Position
from ..persistence import create_position_store
from ..strategy_engine import build_engine, build_exchange_client, format_stats
from ..symbol_state import SymbolStateBook


def setup_logging(level: str = "INFO") -> None:
    """Set up logging configuration."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def format_config_summary(config: DipBuyerConfig) -> str:
    """Format the key settings of a validated configuration."""
    lines = []
    lines.append("\n✅ CONFIGURATION VALID")
    lines.append("=" * 50)
    lines.append(f"Exchange: {config.exchange.name} ({config.exchange.quote_currency})")
    lines.append(f"Symbols: {', '.join(config.symbols)}")
    lines.append("")
    lines.append(f"{'Tier':<6} {'Threshold':<11} {'Lookback':<10} {'Order':<10} {'Take Profit':<12}")
    lines.append("-" * 50)
    for tier in sorted(config.tiers, key=lambda t: t.tier):
        threshold = f"{tier.threshold_pct:+.1f}%"
        lookback = f"{tier.lookback_minutes} min"
        order = f"${tier.order_size_usd:,.0f}"
        lines.append(
            f"{tier.tier:<6} {threshold:<11} {lookback:<10} {order:<10} {config.take_profit_target(tier.tier):.1f}%"
        )
    lines.append("")
    lines.append(f"Stop Loss: {config.stop_loss_pct:.1f}%")
    lines.append(f"Max Position: ${config.max_position_usd:,.2f}")
    lines.append(f"Max Total Deployed: ${config.max_total_deployed:,.2f}")
    if config.dynamic_reserve.enabled:
        lines.append(
            f"Reserve: ${config.dynamic_reserve.low_volatility_reserve:,.2f} "
            f"(${config.dynamic_reserve.high_volatility_reserve:,.2f} during flash crashes)"
        )
    else:
        lines.append(f"Reserve: ${config.min_usd_reserve:,.2f}")
    return "\n".join(lines)


def format_status(positions: List[Position], prices: Dict[str, Optional[float]],
                  total_deployed: float) -> str:
    """Format open positions with unrealized P&L for display."""
    lines = []
    lines.append("\n📊 OPEN DIP POSITIONS")
    lines.append("=" * 70)

    if not positions:
        lines.append("No open positions.")
        return "\n".join(lines)

    lines.append(f"{'Symbol':<10} {'Tier':<5} {'Amount':<14} {'Entry':<12} {'Current':<12} {'P&L':<8}")
    lines.append("-" * 70)
    for pos in positions:
        price = prices.get(pos.symbol)
        if price is None:
            current, pnl = "n/a", "n/a"
        else:
            current, pnl = f"${price:,.2f}", f"{pos.pnl_pct(price):+.2f}%"
        lines.append(
            f"{pos.symbol:<10} {pos.entry_tier:<5} {pos.amount:<14.6f} "
            f"${pos.entry_price:<11,.2f} {current:<12} {pnl:<8}"
        )
    lines.append("")
    lines.append(f"Total Deployed: ${total_deployed:,.2f}")
    return "\n".join(lines)


def format_report(positions: List[Position]) -> str:
    """Summarize closed positions by exit reason."""
    lines = []
    lines.append("\n💰 CLOSED POSITION REPORT")
    lines.append("=" * 60)

    if not positions:
        lines.append("No closed positions.")
        return "\n".join(lines)

    frame = pd.DataFrame([
        {
            "symbol": p.symbol,
            "exit_reason": p.exit_reason.value if p.exit_reason else "unknown",
            "profit": p.profit or 0.0,
            "pnl_pct": p.pnl_pct(p.exit_price) if p.exit_price else 0.0,
            "hold_hours": p.hold_hours(p.exit_time) if p.exit_time else 0.0,
        }
        for p in positions
    ])

    summary = frame.groupby("exit_reason").agg(
        trades=("profit", "count"),
        profit=("profit", "sum"),
        avg_pnl_pct=("pnl_pct", "mean"),
        avg_hold_hours=("hold_hours", "mean"),
    ).sort_values("trades", ascending=False)

    lines.append(f"{'Exit Reason':<15} {'Trades':<8} {'Profit':<14} {'Avg P&L':<10} {'Avg Hold':<10}")
    lines.append("-" * 60)
    for reason, row in summary.iterrows():
        lines.append(
            f"{reason:<15} {int(row['trades']):<8} ${row['profit']:<13,.2f} "
            f"{row['avg_pnl_pct']:<+9.2f}% {row['avg_hold_hours']:.1f}h"
        )

    wins = int((frame["profit"] > 0).sum())
    lines.append("")
    lines.append(f"Total Trades: {len(frame)}")
    lines.append(f"Win Rate: {wins / len(frame):.1%}")
    lines.append(f"Total Profit: ${frame['profit'].sum():,.2f}")

    by_symbol = frame.groupby("symbol")["profit"].sum()
    lines.append("")
    lines.append("By Symbol:")
    for symbol, profit in by_symbol.items():
        lines.append(f"  {symbol}: ${profit:,.2f}")

    return "\n".join(lines)


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser."""
    parser = argparse.ArgumentParser(
        description="Tiered Dip Buyer - Automated multi-tier dip accumulation for crypto spot markets"
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file"
    )

    parser.add_argument(
        "--run",
        action="store_true",
        help="Run the engine until interrupted (Ctrl+C)"
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single cycle over all symbols and exit"
    )

    parser.add_argument(
        "--status",
        action="store_true",
        help="Show open positions with current prices"
    )

    parser.add_argument(
        "--report",
        action="store_true",
        help="Summarize closed positions by exit reason"
    )

    parser.add_argument(
        "--validate-config",
        action="store_true",
        help="Validate configuration file and exit"
    )

    parser.add_argument(
        "--paper",
        action="store_true",
        help="Simulate fills and balance instead of placing real orders"
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Set logging level"
    )

    return parser


def load_ledger(config: DipBuyerConfig) -> PositionLedger:
    """Open the configured store and load its open positions."""
    store = create_position_store(config.store.backend, config.store.path)
    ledger = PositionLedger(store, SymbolStateBook(config.symbols))
    ledger.load()
    return ledger


def main() -> None:
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args()

    setup_logging(args.log_level)
    logger = logging.getLogger(__name__)

    try:
        config_manager = ConfigurationManager()
        config = config_manager.load_config(args.config)

        if args.validate_config:
            print(format_config_summary(config))

        elif args.status:
            ledger = load_ledger(config)
            client = build_exchange_client(config, paper=args.paper)
            prices: Dict[str, Optional[float]] = {}
            for position in ledger.open_positions():
                try:
                    prices[position.symbol] = client.fetch_price(position.symbol)
                except ExchangeError as e:
                    logger.warning(f"Could not fetch {position.symbol} price: {e}")
                    prices[position.symbol] = None
            print(format_status(ledger.open_positions(), prices, ledger.total_deployed))

        elif args.report:
            ledger = load_ledger(config)
            print(format_report(ledger.closed_positions()))

        elif args.once:
            engine = build_engine(config, paper=args.paper)
            engine.initialize()
            engine.warm_up()
            engine.run_cycle()
            print(format_stats(engine))

        elif args.run:
            engine = build_engine(config, paper=args.paper)

            def handle_signal(signum, frame):
                logger.info(f"Received signal {signum}, stopping after the current cycle")
                engine.stop()

            signal.signal(signal.SIGINT, handle_signal)
            signal.signal(signal.SIGTERM, handle_signal)

            engine.start()
            print(format_stats(engine))

        else:
            # Default: show help
            parser.print_help()

    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)
    except DipBuyerError as e:
        logger.error(f"Application error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
