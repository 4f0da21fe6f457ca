"""
Market Client Module
====================

Normalized market data types and adapters for the external quote and
news providers (Yahoo Finance, Finnhub, Alpha Vantage).
"""

from market_client.models import (
    CacheEntry,
    MarketStatus,
    NewsItem,
    Quote,
    TradeRecord,
    TradeSide,
    normalize_symbol,
)
from market_client.errors import (
    InsufficientFunds,
    InsufficientHoldings,
    MarketDeskError,
    ProviderUnavailable,
    StoreUnavailable,
    TickerNotFound,
)
from market_client.api import BaseNewsProvider, BaseQuoteProvider
from market_client.yahoo import YahooFinanceClient
from market_client.finnhub import FinnhubNewsClient
from market_client.alphavantage import AlphaVantageNewsClient

__all__ = [
    "CacheEntry",
    "MarketStatus",
    "NewsItem",
    "Quote",
    "TradeRecord",
    "TradeSide",
    "normalize_symbol",
    "MarketDeskError",
    "ProviderUnavailable",
    "TickerNotFound",
    "InsufficientFunds",
    "InsufficientHoldings",
    "StoreUnavailable",
    "BaseQuoteProvider",
    "BaseNewsProvider",
    "YahooFinanceClient",
    "FinnhubNewsClient",
    "AlphaVantageNewsClient",
]
