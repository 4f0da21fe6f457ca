"""
Logging Utilities
==================

Logging for the market desk: a colored console stream, a rotating main
log, and a rotating ledger log that receives TRADE-level records from
the "trades" logger.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path


# Ledger events, between INFO and WARNING
TRADE = 25

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-22s | %(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-22s | %(funcName)-18s | %(message)s"
LEDGER_FORMAT = "%(asctime)s | %(message)s"

# Third-party loggers that are too chatty at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "asyncio")


def _rotating_handler(
    path: Path,
    level: int,
    fmt: str,
    max_size_mb: int,
    backup_count: int,
) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        path,
        maxBytes=max_size_mb * 1024 * 1024,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def setup_logging(
    log_dir: str = "logs",
    console_level: str = "INFO",
    file_level: str = "DEBUG",
    main_log_file: str = "market_desk.log",
    trades_log_file: str = "trades.log",
    max_size_mb: int = 50,
    backup_count: int = 5,
) -> None:
    """
    Configure the root logger and the ledger log.

    Calling it again replaces the handlers installed by the previous call.
    Ledger records also propagate to the main log and the console.
    """
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)
    logging.addLevelName(TRADE, "TRADE")

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    root.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(logging.getLevelName(console_level.upper()))
    console.setFormatter(ColoredFormatter(CONSOLE_FORMAT, datefmt="%H:%M:%S"))
    root.addHandler(console)

    root.addHandler(_rotating_handler(
        log_path / main_log_file,
        logging.getLevelName(file_level.upper()),
        FILE_FORMAT,
        max_size_mb,
        backup_count,
    ))

    ledger = logging.getLogger("trades")
    ledger.handlers.clear()
    ledger.addHandler(_rotating_handler(
        log_path / trades_log_file,
        TRADE,
        LEDGER_FORMAT,
        max_size_mb,
        backup_count,
    ))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        f"Logging to {log_path.resolve()} (console={console_level}, file={file_level})"
    )


class ColoredFormatter(logging.Formatter):
    """Formatter that adds colors to console output."""

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
        "TRADE": "\033[34m",     # Blue
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        # Color a copy so file handlers keep the plain level name
        record = logging.makeLogRecord(record.__dict__)
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.RESET}"
        return super().format(record)


class TradeLogger:
    """Specialized logger for ledger events."""

    def __init__(self):
        self.logger = logging.getLogger("trades")

    def log_trade_executed(self, trade) -> None:
        """Log an appended trade record."""
        note = f" | note={trade.note}" if trade.note else ""
        self.logger.log(
            TRADE,
            f"TRADE_EXECUTED | id={trade.id} | {trade.side.value} {trade.qty:g} "
            f"{trade.symbol} @ {trade.price:.4f} | notional={trade.notional:.2f}{note}"
        )

    def log_account_reset(self, trades_removed: int) -> None:
        """Log a mass delete of the trade log."""
        self.logger.log(TRADE, f"ACCOUNT_RESET | trades_removed={trades_removed}")


class MarketLogger:
    """Logger for quote feed health."""

    def __init__(self):
        self.logger = logging.getLogger("market")

    def log_status_change(self, old: str, new: str) -> None:
        level = logging.INFO if new == "LIVE" else logging.WARNING
        self.logger.log(level, f"STATUS | {old} -> {new}")

    def log_refresh(self, symbols: int, status: str, latency_ms: float) -> None:
        self.logger.debug(f"REFRESH | symbols={symbols} | status={status} | {latency_ms:.2f}ms")

    def log_snapshot(self, summary: dict, status: str) -> None:
        """Log a portfolio snapshot."""
        self.logger.info(
            f"SNAPSHOT | status={status} | cash={summary.get('cash', 0):.2f} | "
            f"equity={summary.get('equity', 0):.2f} | "
            f"unrealized={summary.get('unrealized_pnl', 0):.2f} | "
            f"positions={len(summary.get('holdings', {}))} | trades={summary.get('total_trades', 0)}"
        )


# Global instances
trade_logger = TradeLogger()
market_logger = MarketLogger()
