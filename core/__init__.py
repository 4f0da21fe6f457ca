"""
Core Engine Module
===================

Contains the market desk components:
- PersistentStore: Durable keyed storage and TTL cache
- WatchlistRegistry: User-curated symbol set
- MarketDataCache: Quote snapshot, refresh loop and market status
- LedgerEngine: Paper trade log and portfolio replay
- NewsAggregator: Multi-provider news with dedupe and caching
"""

from core.store import PersistentStore
from core.observers import ObserverRegistry
from core.watchlist import WatchlistRegistry
from core.market_data import MarketDataCache
from core.ledger import LedgerEngine, PortfolioState, Holding, replay_trades
from core.news import NewsAggregator, NewsAnalyzer

__all__ = [
    "PersistentStore",
    "ObserverRegistry",
    "WatchlistRegistry",
    "MarketDataCache",
    "LedgerEngine",
    "PortfolioState",
    "Holding",
    "replay_trades",
    "NewsAggregator",
    "NewsAnalyzer",
]
