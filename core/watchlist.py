"""
Watchlist Registry
==================

The user-curated set of symbols driving quote refresh. The whole set is
persisted as one snapshot in the TTL cache with an effectively
permanent lifetime.
"""

import logging
from typing import Callable, Optional

from core.observers import ObserverRegistry
from core.store import PersistentStore
from market_client.models import normalize_symbol


logger = logging.getLogger(__name__)

WATCHLIST_CACHE_KEY = "user_watchlist_symbols"
WATCHLIST_TTL_MINUTES = 525600  # One year
DEFAULT_WATCHLIST = ["AAPL", "TSLA", "NVDA", "BTC-USD"]


class WatchlistRegistry:
    """Observable, durable set of uppercase symbols."""

    def __init__(
        self,
        store: PersistentStore,
        default_symbols: Optional[list[str]] = None,
    ):
        self.store = store
        seed = DEFAULT_WATCHLIST if default_symbols is None else default_symbols
        # dict keeps insertion order with set semantics
        self._symbols: dict[str, None] = dict.fromkeys(normalize_symbol(s) for s in seed)
        self._observers = ObserverRegistry("watchlist")

    async def load(self) -> None:
        """Replace the seed list with the persisted snapshot, if any."""
        stored = await self.store.get_cache(WATCHLIST_CACHE_KEY)

        if isinstance(stored, list):
            self._symbols = dict.fromkeys(normalize_symbol(s) for s in stored)
            logger.info(f"Watchlist loaded: {len(self._symbols)} symbols")
        else:
            logger.info(f"No stored watchlist, using defaults: {self.get_symbols()}")
        self._observers.notify()

    async def _save(self) -> None:
        await self.store.set_cache(WATCHLIST_CACHE_KEY, self.get_symbols(), WATCHLIST_TTL_MINUTES)

    def subscribe(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Subscribe to changes. The callback fires once immediately."""
        return self._observers.subscribe(callback, replay=True)

    def get_symbols(self) -> list[str]:
        return list(self._symbols)

    def has_symbol(self, symbol: str) -> bool:
        return normalize_symbol(symbol) in self._symbols

    async def add_symbol(self, raw: str) -> bool:
        """Add a symbol. Returns False if it was already present."""
        clean = normalize_symbol(raw)
        if not clean or clean in self._symbols:
            return False

        self._symbols[clean] = None
        try:
            await self._save()
        finally:
            self._observers.notify()
        logger.info(f"Added {clean}")
        return True

    async def remove_symbol(self, symbol: str) -> bool:
        """Remove a symbol. Returns False if it was not present."""
        clean = normalize_symbol(symbol)
        if clean not in self._symbols:
            return False

        del self._symbols[clean]
        try:
            await self._save()
        finally:
            self._observers.notify()
        logger.info(f"Removed {clean}")
        return True

    def __len__(self) -> int:
        return len(self._symbols)

    def __contains__(self, symbol: str) -> bool:
        return self.has_symbol(symbol)
