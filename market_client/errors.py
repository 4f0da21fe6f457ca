"""
Error types shared by the provider adapters and the core engine.
"""


class MarketDeskError(Exception):
    """Base class for market desk errors."""
    pass


class ProviderUnavailable(MarketDeskError):
    """Market data source unreachable, degraded, or returned no usable data."""
    pass


class TickerNotFound(MarketDeskError):
    """A single-symbol lookup returned nothing."""

    def __init__(self, symbol: str):
        self.symbol = symbol
        super().__init__(f"Ticker '{symbol}' not found on the exchange.")


class InsufficientFunds(MarketDeskError):
    """Cash balance does not cover a buy."""

    def __init__(self, required: float, available: float):
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient funds: need ${required:.2f}, have ${available:.2f}"
        )


class InsufficientHoldings(MarketDeskError):
    """Position is smaller than the requested sell quantity."""

    def __init__(self, symbol: str, requested: float, held: float):
        self.symbol = symbol
        self.requested = requested
        self.held = held
        super().__init__(
            f"Insufficient holdings: cannot sell {requested:g} {symbol}, holding {held:g}"
        )


class StoreUnavailable(MarketDeskError):
    """Durable storage layer unreachable."""
    pass
