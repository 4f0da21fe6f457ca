#!/usr/bin/env python3
"""
Market Desk
============

Main entry point: live watchlist quotes, paper trading and market news.

Usage:
    python main.py run                      # Refresh loop with periodic snapshots
    python main.py run --serve              # ... and serve the JSON API
    python main.py quotes                   # Print watchlist quotes
    python main.py trade buy AAPL 10        # Paper trade at the live price
    python main.py portfolio                # Print portfolio summary
    python main.py news --tickers AAPL,NVDA # Print merged news
    python main.py watch add MSFT           # Validate and track a symbol
    python main.py -c my.yaml run           # Use custom config file
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from core.ledger import LedgerEngine
from core.market_data import MarketDataCache
from core.news import NewsAggregator, NewsAnalyzer, TextGenerator
from core.store import PersistentStore
from core.watchlist import WatchlistRegistry
from market_client import (
    AlphaVantageNewsClient,
    BaseNewsProvider,
    BaseQuoteProvider,
    FinnhubNewsClient,
    MarketDeskError,
    YahooFinanceClient,
)
from utils.config_loader import AppConfig, ConfigError, get_default_config, load_config
from utils.logging_utils import market_logger, setup_logging


logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"


class MarketDesk:
    """
    Owns and wires every component.

    Components are built in the constructor so they can be handed to the
    HTTP API or used by one-shot commands without starting the loops.
    """

    def __init__(
        self,
        config: AppConfig,
        store: Optional[PersistentStore] = None,
        quote_provider: Optional[BaseQuoteProvider] = None,
        news_providers: Optional[list[BaseNewsProvider]] = None,
        generator: Optional[TextGenerator] = None,
    ):
        self.config = config
        self._running = False
        self._shutdown_event = asyncio.Event()
        self._snapshot_task: Optional[asyncio.Task] = None

        self.store = store or PersistentStore(config.storage.db_path)

        self.yahoo = YahooFinanceClient(
            base_url=config.api.yahoo_url,
            timeout=config.api.timeout_seconds,
        )
        self._clients = [self.yahoo]

        if news_providers is None:
            finnhub = FinnhubNewsClient(
                api_key=config.api.finnhub_api_key,
                base_url=config.api.finnhub_url,
                timeout=config.api.timeout_seconds,
            )
            alphavantage = AlphaVantageNewsClient(
                api_key=config.api.alphavantage_api_key,
                base_url=config.api.alphavantage_url,
                max_items=config.news.alphavantage_limit,
                timeout=config.api.timeout_seconds,
            )
            # Priority order: earlier providers win URL collisions
            news_providers = [self.yahoo, finnhub, alphavantage]
            self._clients.extend([finnhub, alphavantage])

            for provider in (finnhub, alphavantage):
                if not provider.enabled:
                    logger.debug(f"{provider.name} disabled: no API key configured")

        self.watchlist = WatchlistRegistry(
            self.store,
            default_symbols=config.market.default_watchlist,
        )
        self.market_data = MarketDataCache(
            provider=quote_provider or self.yahoo,
            watchlist=self.watchlist,
            store=self.store,
            refresh_interval=config.market.refresh_interval_seconds,
        )
        self.ledger = LedgerEngine(
            self.store,
            self.market_data,
            seed_cash=config.ledger.seed_cash,
        )
        self.news = NewsAggregator(
            news_providers,
            self.store,
            cache_ttl_minutes=config.news.cache_ttl_minutes,
        )
        self.analyzer = NewsAnalyzer(generator) if generator is not None else None

    async def open(self) -> None:
        """Connect provider clients and load the persisted watchlist."""
        for client in self._clients:
            await client.connect()
        await self.watchlist.load()

    async def close(self) -> None:
        for client in self._clients:
            await client.disconnect()
        self.store.close()

    async def start(self) -> None:
        """Initialize and start the refresh and snapshot loops."""
        logger.info("=" * 60)
        logger.info("Market Desk Starting")
        logger.info("=" * 60)
        logger.info(f"Database: {self.config.storage.db_path}")
        logger.info(
            f"News providers: yahoo"
            f"{', finnhub' if self.config.finnhub_enabled else ''}"
            f"{', alphavantage' if self.config.alphavantage_enabled else ''}"
        )

        self._running = True
        await self.open()
        logger.info(f"Watchlist: {self.watchlist.get_symbols()}")

        await self.market_data.start()
        self._snapshot_task = asyncio.create_task(self._snapshot_loop(), name="snapshot")

        logger.info("Market Desk started")
        logger.info("-" * 60)

    async def _snapshot_loop(self) -> None:
        """Periodic portfolio logging."""
        interval = self.config.market.snapshot_interval_seconds

        while self._running:
            try:
                await asyncio.sleep(interval)
                summary = await self.ledger.get_summary()
                market_logger.log_snapshot(summary, self.market_data.status.value)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Snapshot error: {e}")

    async def stop(self) -> None:
        """Stop all components gracefully."""
        if not self._running:
            return
        logger.info("Shutting down...")
        self._running = False

        if self._snapshot_task:
            self._snapshot_task.cancel()
            try:
                await self._snapshot_task
            except asyncio.CancelledError:
                pass

        await self.market_data.stop()

        try:
            summary = await self.ledger.get_summary()
            logger.info("=" * 60)
            logger.info("Final Portfolio Summary")
            logger.info("=" * 60)
            logger.info(f"Cash: ${summary['cash']:.2f}")
            logger.info(f"Equity: ${summary['equity']:.2f}")
            logger.info(f"Total Return: ${summary['total_return']:.2f}")
            logger.info(f"Positions: {len(summary['holdings'])}")
            logger.info(f"Total Trades: {summary['total_trades']}")
        except MarketDeskError as e:
            logger.error(f"Could not compute final summary: {e}")

        await self.close()
        logger.info("Market Desk stopped")
        self._shutdown_event.set()

    async def wait_for_shutdown(self) -> None:
        await self._shutdown_event.wait()


async def run_forever(desk: MarketDesk, serve: bool) -> None:
    """Run the desk until SIGINT/SIGTERM, optionally serving the API."""
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        asyncio.create_task(desk.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, signal_handler)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass

    server_task = None
    try:
        await desk.start()

        if serve:
            import uvicorn
            from dashboard.server import create_app

            server = uvicorn.Server(uvicorn.Config(
                create_app(desk),
                host=desk.config.server.host,
                port=desk.config.server.port,
                log_level="warning",
            ))
            # Shutdown is driven by the desk, not by uvicorn
            server.install_signal_handlers = lambda: None
            server_task = asyncio.create_task(server.serve(), name="api_server")
            logger.info(f"API: http://{desk.config.server.host}:{desk.config.server.port}")

        await desk.wait_for_shutdown()
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        await desk.stop()
        sys.exit(1)
    finally:
        if server_task:
            server.should_exit = True
            await server_task


def _print_quotes(quotes) -> None:
    for q in quotes:
        print(f"{q.symbol:<10} {q.price:>12.2f} {q.change_percent:>+8.2f}%  {q.display_name}")


async def run_command(desk: MarketDesk, args: argparse.Namespace) -> int:
    """Run a one-shot command. Returns the process exit code."""
    await desk.open()
    try:
        if args.command == "quotes":
            status = await desk.market_data.refresh()
            print(f"Market status: {status.value}")
            _print_quotes(await desk.market_data.get_watchlist())

        elif args.command == "portfolio":
            await desk.market_data.refresh()
            summary = await desk.ledger.get_summary()
            print(f"Cash:   ${summary['cash']:.2f}")
            print(f"Equity: ${summary['equity']:.2f}  (return ${summary['total_return']:.2f})")
            for symbol, pos in summary["holdings"].items():
                print(
                    f"{symbol:<10} {pos['qty']:>10g} @ {pos['avg_price']:.2f}  "
                    f"now {pos['price']:.2f}  pnl {pos['unrealized_pnl']:+.2f}"
                )

        elif args.command == "trade":
            # Only watchlist symbols get quotes; use `watch add` for others
            await desk.market_data.refresh()
            print(await desk.ledger.execute_trade(args.symbol, args.side, args.qty, note=args.note))

        elif args.command == "reset":
            removed = await desk.ledger.reset_account()
            print(f"Account reset ({removed} trades removed)")

        elif args.command == "news":
            tickers = [t for t in (args.tickers or "").split(",") if t.strip()]
            items = await desk.news.get_news(
                tickers=tickers,
                limit=args.limit or desk.config.news.default_limit,
                force_refresh=args.force,
            )
            for item in items:
                print(f"- [{item.source or '?'}] {item.title}\n  {item.url}")

        elif args.command == "watch":
            if args.action == "add":
                quote = await desk.market_data.add_to_watchlist(args.symbol)
                print(f"Tracking {quote.symbol} ({quote.display_name}) @ {quote.price:.2f}")
            else:
                await desk.market_data.remove_from_watchlist(args.symbol)
                print(f"Removed {args.symbol.upper()}")
            print("Watchlist:", ", ".join(desk.watchlist.get_symbols()))

    except (MarketDeskError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        await desk.close()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Market Desk: watchlist quotes, paper trading and news",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-c", "--config",
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {DEFAULT_CONFIG_PATH})"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging"
    )

    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run the refresh loop")
    run.add_argument("--serve", action="store_true", help="Also serve the JSON API")

    sub.add_parser("quotes", help="Refresh and print watchlist quotes")
    sub.add_parser("portfolio", help="Print the portfolio summary")
    sub.add_parser("reset", help="Delete every paper trade")

    trade = sub.add_parser("trade", help="Paper trade at the live price")
    trade.add_argument("side", choices=["buy", "sell", "BUY", "SELL"])
    trade.add_argument("symbol")
    trade.add_argument("qty", type=float)
    trade.add_argument("--note", default=None)

    news = sub.add_parser("news", help="Print merged news")
    news.add_argument("--tickers", default="", help="Comma separated tickers")
    news.add_argument("--limit", type=int, default=None)
    news.add_argument("--force", action="store_true", help="Bypass the news cache")

    watch = sub.add_parser("watch", help="Edit the watchlist")
    watch.add_argument("action", choices=["add", "remove"])
    watch.add_argument("symbol")

    return parser


def load_app_config(config_path: str) -> AppConfig:
    """Load config, falling back to defaults only when the default file is absent."""
    if config_path == DEFAULT_CONFIG_PATH and not Path(config_path).exists():
        return get_default_config()
    return load_config(config_path)


async def main_async(args: argparse.Namespace) -> int:
    try:
        config = load_app_config(args.config)
    except ConfigError as e:
        logger.error(f"Failed to load config: {e}")
        return 1

    setup_logging(
        log_dir=config.logging.log_dir,
        console_level="DEBUG" if args.verbose else config.logging.console_level,
        file_level=config.logging.file_level,
        main_log_file=config.logging.main_log_file,
        trades_log_file=config.logging.trades_log_file,
        max_size_mb=config.logging.max_log_size_mb,
        backup_count=config.logging.backup_count,
    )

    desk = MarketDesk(config)

    if args.command == "run":
        await run_forever(desk, serve=args.serve)
        return 0
    return await run_command(desk, args)


def main() -> None:
    """Main entry point."""
    args = build_parser().parse_args()

    try:
        sys.exit(asyncio.run(main_async(args)))
    except KeyboardInterrupt:
        print("\nShutdown complete.")


if __name__ == "__main__":
    main()
