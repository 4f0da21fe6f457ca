"""
API Server
===========

FastAPI JSON API over the market desk components.
"""

import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from market_client.errors import (
    InsufficientFunds,
    InsufficientHoldings,
    ProviderUnavailable,
    StoreUnavailable,
    TickerNotFound,
)


logger = logging.getLogger(__name__)


class WatchlistRequest(BaseModel):
    symbol: str = Field(..., min_length=1)


class TradeRequest(BaseModel):
    symbol: str = Field(..., min_length=1)
    side: str
    qty: float = Field(..., gt=0, allow_inf_nan=False)
    note: Optional[str] = None


def create_app(desk) -> FastAPI:
    """
    Create the FastAPI application.

    `desk` is a MarketDesk (or anything exposing the same component
    attributes: watchlist, market_data, ledger, news, analyzer, yahoo).
    """
    app = FastAPI(
        title="Market Desk API",
        description="Watchlist quotes, paper trading and market news",
        version="1.0.0",
    )

    @app.exception_handler(StoreUnavailable)
    async def store_unavailable(request: Request, exc: StoreUnavailable):
        logger.error(f"Store unavailable during {request.url.path}: {exc}")
        return JSONResponse(status_code=503, content={"detail": f"Storage unavailable: {exc}"})

    @app.get("/api/status")
    async def get_status():
        """Market feed status."""
        return {
            **desk.market_data.get_stats(),
            "watchlist": desk.watchlist.get_symbols(),
        }

    @app.get("/api/watchlist")
    async def get_watchlist():
        quotes = await desk.market_data.get_watchlist()
        return {
            "symbols": desk.watchlist.get_symbols(),
            "quotes": [q.to_dict() for q in quotes],
        }

    @app.post("/api/watchlist", status_code=201)
    async def add_to_watchlist(body: WatchlistRequest):
        """Validate a ticker with the provider and start tracking it."""
        try:
            quote = await desk.market_data.add_to_watchlist(body.symbol)
        except TickerNotFound as e:
            raise HTTPException(status_code=404, detail=str(e))
        except ProviderUnavailable as e:
            raise HTTPException(status_code=503, detail=str(e))
        return quote.to_dict()

    @app.delete("/api/watchlist/{symbol}")
    async def remove_from_watchlist(symbol: str):
        await desk.market_data.remove_from_watchlist(symbol)
        return {"symbols": desk.watchlist.get_symbols()}

    @app.post("/api/refresh")
    async def refresh():
        status = await desk.market_data.refresh()
        return {"status": status.value, "last_refresh": desk.market_data.last_refresh}

    @app.get("/api/quotes/{symbol}")
    async def get_quote(symbol: str):
        quote = desk.market_data.get_quote(symbol)
        if quote is None:
            raise HTTPException(status_code=404, detail=f"No quote for {symbol.upper()}")
        return quote.to_dict()

    @app.get("/api/portfolio")
    async def get_portfolio():
        """Portfolio valued at current quotes."""
        return await desk.ledger.get_summary()

    @app.get("/api/trades")
    async def get_trades():
        trades = await desk.ledger.get_trades()
        return {"trades": [t.to_dict() for t in trades]}

    @app.post("/api/trades", status_code=201)
    async def execute_trade(body: TradeRequest):
        try:
            message = await desk.ledger.execute_trade(body.symbol, body.side, body.qty, note=body.note)
        except (InsufficientFunds, InsufficientHoldings, ValueError) as e:
            raise HTTPException(status_code=400, detail=str(e))
        except ProviderUnavailable as e:
            raise HTTPException(status_code=503, detail=str(e))
        return {"message": message}

    @app.post("/api/account/reset")
    async def reset_account():
        removed = await desk.ledger.reset_account()
        return {"trades_removed": removed}

    @app.get("/api/news")
    async def get_news(
        tickers: str = "",
        limit: int = 20,
        force_refresh: bool = False,
        analyze: bool = False,
    ):
        symbols = [t for t in tickers.split(",") if t.strip()]
        items = await desk.news.get_news(tickers=symbols, limit=limit, force_refresh=force_refresh)
        # Without a configured generator items are returned as fetched
        if analyze and desk.analyzer is not None:
            items = await desk.analyzer.analyze_all(items)
        return {"items": [item.to_dict() for item in items]}

    @app.get("/api/search")
    async def search(q: str):
        try:
            results = await desk.yahoo.search(q)
        except ProviderUnavailable as e:
            raise HTTPException(status_code=503, detail=str(e))
        return {"results": results}

    return app
