"""
Market Data Provider Contracts
===============================

Abstract quote and news provider interfaces plus the shared HTTP
plumbing used by the concrete adapters. Adapters are the only code that
sees raw provider payloads; everything they return is already a
normalized Quote or NewsItem.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from market_client.errors import ProviderUnavailable
from market_client.models import NewsItem, Quote


logger = logging.getLogger(__name__)


class BaseQuoteProvider(ABC):
    """Source of live quotes."""

    @abstractmethod
    async def get_quotes(self, symbols: list[str]) -> list[Quote]:
        """
        Fetch quotes for a batch of symbols.

        An empty list is a valid "no data" answer. Transport faults raise
        ProviderUnavailable.
        """
        pass


class BaseNewsProvider(ABC):
    """Source of news items."""

    name: str = "news"

    @property
    def enabled(self) -> bool:
        """False when the provider's credential is missing."""
        return True

    @abstractmethod
    async def fetch_news(self, tickers: list[str], limit: int) -> list[NewsItem]:
        """Fetch news, optionally scoped to tickers."""
        pass


class HttpProvider:
    """
    Shared async HTTP client handling for provider adapters.

    No retry logic: a failed request surfaces as ProviderUnavailable and
    recovery is left to the next scheduled or explicit call.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http_client = http_client
        self._owns_client = http_client is None

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.disconnect()

    async def connect(self) -> None:
        """Initialize HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=self.timeout,
                headers=self._get_headers(),
            )
            self._owns_client = True
        logger.debug(f"{type(self).__name__} connected to {self.base_url}")

    async def disconnect(self) -> None:
        """Close connections."""
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    def _get_headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "User-Agent": "Mozilla/5.0 (market-desk)",
        }

    async def _request(
        self,
        endpoint: str,
        params: Optional[dict] = None,
    ) -> httpx.Response:
        """GET an endpoint, mapping transport errors to ProviderUnavailable."""
        if not self._http_client:
            await self.connect()

        url = f"{self.base_url}{endpoint}"
        try:
            return await self._http_client.get(url, params=params)
        except httpx.RequestError as e:
            logger.warning(f"Request error on {url}: {e}")
            raise ProviderUnavailable(f"{type(self).__name__}: request to {endpoint} failed: {e}") from e

    async def _get_json(self, endpoint: str, params: Optional[dict] = None) -> Any:
        """GET an endpoint and decode JSON, raising on non-2xx status."""
        response = await self._request(endpoint, params=params)
        try:
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.warning(f"HTTP error {e.response.status_code} on {endpoint}")
            raise ProviderUnavailable(
                f"{type(self).__name__}: HTTP {e.response.status_code} on {endpoint}"
            ) from e
        except ValueError as e:
            raise ProviderUnavailable(f"{type(self).__name__}: invalid JSON from {endpoint}") from e
