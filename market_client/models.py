"""
Data Models for the Market Desk
================================

Defines the normalized value types shared by the provider adapters,
the storage layer and the core engine.
"""

import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional


class TradeSide(Enum):
    """Trade side enumeration."""
    BUY = "BUY"
    SELL = "SELL"

    @classmethod
    def parse(cls, value: "str | TradeSide") -> "TradeSide":
        """Parse a side from a string, case-insensitively."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValueError(f"Unknown trade side: {value!r}") from None


class MarketStatus(Enum):
    """State of the quote feed."""
    LOADING = "LOADING"
    LIVE = "LIVE"
    UNAVAILABLE = "UNAVAILABLE"  # Source reachable but returned nothing
    ERROR = "ERROR"              # Transport fault


def normalize_symbol(raw: str) -> str:
    """Uppercase, trimmed form of a ticker symbol."""
    return raw.strip().upper()


@dataclass
class Quote:
    """Point-in-time price snapshot for one symbol."""
    symbol: str
    display_name: str
    price: float
    change_percent: float = 0.0
    sector: Optional[str] = None
    currency: Optional[str] = None

    def __post_init__(self) -> None:
        self.symbol = normalize_symbol(self.symbol)
        self.price = float(self.price)
        self.change_percent = float(self.change_percent)

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "display_name": self.display_name,
            "price": self.price,
            "change_percent": self.change_percent,
            "sector": self.sector,
            "currency": self.currency,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Quote":
        return cls(
            symbol=data["symbol"],
            display_name=data.get("display_name") or data["symbol"],
            price=data.get("price", 0.0),
            change_percent=data.get("change_percent", 0.0),
            sector=data.get("sector"),
            currency=data.get("currency"),
        )


@dataclass(frozen=True)
class TradeRecord:
    """Executed paper trade. Immutable once created."""
    id: str
    symbol: str
    side: TradeSide
    qty: float
    price: float
    timestamp: int  # epoch ms
    note: Optional[str] = None

    def __post_init__(self) -> None:
        if not math.isfinite(self.qty) or self.qty <= 0:
            raise ValueError(f"Trade quantity must be a positive number, got {self.qty}")
        if not math.isfinite(self.price) or self.price <= 0:
            raise ValueError(f"Trade price must be a positive number, got {self.price}")

    @property
    def notional(self) -> float:
        """Trade value (qty * price)."""
        return self.qty * self.price

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "side": self.side.value,
            "qty": self.qty,
            "price": self.price,
            "timestamp": self.timestamp,
            "note": self.note,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TradeRecord":
        return cls(
            id=data["id"],
            symbol=data["symbol"],
            side=TradeSide.parse(data["side"]),
            qty=data["qty"],
            price=data["price"],
            timestamp=int(data["timestamp"]),
            note=data.get("note"),
        )


@dataclass(frozen=True)
class NewsItem:
    """News article, deduplicated by URL."""
    id: str
    title: str
    url: str
    published_at: int  # epoch ms
    summary: Optional[str] = None
    source: Optional[str] = None
    image_url: Optional[str] = None
    tickers: tuple[str, ...] = field(default_factory=tuple)
    ai_summary: Optional[str] = None
    ai_watch_next: Optional[str] = None

    def with_analysis(self, ai_summary: Optional[str], ai_watch_next: Optional[str]) -> "NewsItem":
        return replace(self, ai_summary=ai_summary, ai_watch_next=ai_watch_next)

    def with_tickers(self, tickers: list[str]) -> "NewsItem":
        return replace(self, tickers=tuple(tickers))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "summary": self.summary,
            "url": self.url,
            "source": self.source,
            "published_at": self.published_at,
            "image_url": self.image_url,
            "tickers": list(self.tickers),
            "ai_summary": self.ai_summary,
            "ai_watch_next": self.ai_watch_next,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NewsItem":
        return cls(
            id=data.get("id") or data["url"],
            title=data["title"],
            url=data["url"],
            published_at=int(data["published_at"]),
            summary=data.get("summary"),
            source=data.get("source"),
            image_url=data.get("image_url"),
            tickers=tuple(data.get("tickers") or ()),
            ai_summary=data.get("ai_summary"),
            ai_watch_next=data.get("ai_watch_next"),
        )


@dataclass
class CacheEntry:
    """Cached payload with an absolute expiry."""
    key: str
    payload: Any
    expiry: int  # epoch ms

    def is_expired(self, now_ms: int) -> bool:
        return now_ms >= self.expiry

    def to_dict(self) -> dict[str, Any]:
        return {"key": self.key, "payload": self.payload, "expiry": self.expiry}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CacheEntry":
        return cls(key=data["key"], payload=data.get("payload"), expiry=int(data["expiry"]))
