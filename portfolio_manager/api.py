"""
FastAPI application for the portfolio manager.

All routes live under /api. Errors are returned as {"error": "<message>"}.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from portfolio_manager.capital_journal import CapitalJournal
from portfolio_manager.coinmarketcap_client import PriceSource
from portfolio_manager.domain.errors import PortfolioError, StorageError
from portfolio_manager.infrastructure.repositories import Repository
from portfolio_manager.order_engine import OrderEngine, OrderRequest
from portfolio_manager.portfolio import PortfolioAggregator, reset_portfolio
from portfolio_manager.schemas import (
    AmountCreate,
    AssetDetailResponse,
    CapitalCreate,
    CapitalResponse,
    CoinInfoResponse,
    CreatedResponse,
    HoldingResponse,
    MessageResponse,
    OrderCreate,
    OrderExecutedResponse,
    OrderResponse,
    PortfolioOverviewResponse,
    PriceDataResponse,
    WatchlistCreate,
    WatchlistItemResponse,
)
from portfolio_manager.utils import normalize_symbol
from portfolio_manager.watchlist import Watchlist

router = APIRouter(prefix="/api")


# =============================================================
# HELPER: Service dependencies
# =============================================================

def get_journal(request: Request) -> CapitalJournal:
    return request.app.state.journal


def get_order_engine(request: Request) -> OrderEngine:
    return request.app.state.order_engine


def get_aggregator(request: Request) -> PortfolioAggregator:
    return request.app.state.aggregator


def get_watchlist(request: Request) -> Watchlist:
    return request.app.state.watchlist


def get_price_source(request: Request) -> PriceSource:
    return request.app.state.price_source


# =============================================================
# CAPITAL ENDPOINTS
# =============================================================

@router.get("/capitals", response_model=List[CapitalResponse])
def list_capitals(journal: CapitalJournal = Depends(get_journal)):
    return [CapitalResponse.from_domain(e) for e in journal.list_entries()]


@router.post("/capitals", response_model=CreatedResponse)
def add_capital(body: CapitalCreate, journal: CapitalJournal = Depends(get_journal)):
    entry = journal.deposit(body.amount, body.type, body.description)
    return CreatedResponse(id=entry.id, message="Capital added successfully")


@router.delete("/capitals/{capital_id}", response_model=MessageResponse)
def delete_capital(capital_id: int, journal: CapitalJournal = Depends(get_journal)):
    journal.delete_entry(capital_id)
    return MessageResponse(message="Capital deleted successfully")


@router.post("/withdraw", response_model=CreatedResponse)
def withdraw(body: AmountCreate, journal: CapitalJournal = Depends(get_journal)):
    entry = journal.withdraw(body.amount, body.description)
    return CreatedResponse(id=entry.id, message="Withdrawal successful")


@router.post("/realized-loss", response_model=CreatedResponse)
def add_realized_loss(body: AmountCreate, journal: CapitalJournal = Depends(get_journal)):
    entry = journal.record_realized_loss(body.amount, body.description)
    return CreatedResponse(id=entry.id, message="Realized loss recorded successfully")


# =============================================================
# ORDER ENDPOINTS
# =============================================================

@router.get("/orders", response_model=List[OrderResponse])
def list_orders(
    asset: Optional[str] = Query(None, description="Filter by asset"),
    engine: OrderEngine = Depends(get_order_engine),
):
    return [OrderResponse.from_domain(o) for o in engine.list_orders(asset)]


@router.post("/orders", response_model=OrderExecutedResponse)
def create_order(body: OrderCreate, engine: OrderEngine = Depends(get_order_engine)):
    order = engine.execute(
        OrderRequest(
            asset=body.asset,
            side=body.type,
            quantity=body.amount,
            total_quote=body.total_usdt,
            price=body.price,
        )
    )
    return OrderExecutedResponse(
        id=order.id,
        asset=order.asset,
        type=order.side,
        amount=order.quantity,
        price=order.price,
        total=order.total_quote,
        message="Order executed successfully",
    )


@router.delete("/orders/{order_id}", response_model=MessageResponse)
def delete_order(order_id: int, engine: OrderEngine = Depends(get_order_engine)):
    engine.delete_order(order_id)
    return MessageResponse(message="Order deleted successfully")


# =============================================================
# PORTFOLIO ENDPOINTS
# =============================================================

@router.get("/holdings", response_model=List[HoldingResponse])
def list_holdings(aggregator: PortfolioAggregator = Depends(get_aggregator)):
    return [HoldingResponse.from_domain(h) for h in aggregator.list_holdings()]


@router.get("/portfolio", response_model=PortfolioOverviewResponse)
def portfolio_overview(aggregator: PortfolioAggregator = Depends(get_aggregator)):
    return PortfolioOverviewResponse.from_domain(aggregator.overview())


@router.get("/assets/{symbol}", response_model=AssetDetailResponse)
def asset_detail(symbol: str, aggregator: PortfolioAggregator = Depends(get_aggregator)):
    return AssetDetailResponse.from_domain(aggregator.asset_detail(symbol))


@router.post("/reset", response_model=MessageResponse)
def reset_all(request: Request):
    reset_portfolio(request.app.state.repository, request.app.state.logger)
    return MessageResponse(message="All data has been reset successfully")


# =============================================================
# MARKET DATA ENDPOINTS
# =============================================================

@router.get("/prices", response_model=List[PriceDataResponse])
def list_prices(prices: PriceSource = Depends(get_price_source)):
    return [PriceDataResponse.model_validate(p) for p in prices.tracked_prices()]


@router.get("/prices/{symbol}", response_model=PriceDataResponse)
def get_price(symbol: str, prices: PriceSource = Depends(get_price_source)):
    return PriceDataResponse.model_validate(prices.quote(normalize_symbol(symbol)))


@router.get("/coins/top", response_model=List[CoinInfoResponse])
def top_coins(
    limit: int = Query(100, ge=1, le=5000),
    prices: PriceSource = Depends(get_price_source),
):
    return [CoinInfoResponse.model_validate(c) for c in prices.top_coins(limit)]


@router.get("/coins/top20", response_model=List[PriceDataResponse])
def top20_coins(prices: PriceSource = Depends(get_price_source)):
    return [PriceDataResponse.model_validate(p) for p in prices.top_prices(20)]


# =============================================================
# WATCHLIST ENDPOINTS
# =============================================================

@router.get("/watchlist", response_model=List[WatchlistItemResponse])
def list_watchlist(watchlist: Watchlist = Depends(get_watchlist)):
    return [WatchlistItemResponse.model_validate(i) for i in watchlist.items()]


@router.post("/watchlist", response_model=MessageResponse)
def add_to_watchlist(body: WatchlistCreate, watchlist: Watchlist = Depends(get_watchlist)):
    watchlist.add(body.symbol, body.name)
    return MessageResponse(message="Added to watchlist")


@router.get("/watchlist/prices", response_model=List[PriceDataResponse])
def watchlist_prices(watchlist: Watchlist = Depends(get_watchlist)):
    return [PriceDataResponse.model_validate(p) for p in watchlist.prices()]


@router.delete("/watchlist/{symbol}", response_model=MessageResponse)
def remove_from_watchlist(symbol: str, watchlist: Watchlist = Depends(get_watchlist)):
    watchlist.remove(symbol)
    return MessageResponse(message="Removed from watchlist")


# =============================================================
# APPLICATION FACTORY
# =============================================================

def create_app(
    repository: Repository,
    price_source: PriceSource,
    logger: logging.Logger,
    cors_origins: list[str] | None = None,
) -> FastAPI:
    """Build the API with its services bound to the given storage and prices."""
    app = FastAPI(
        title="Portfolio Manager API",
        description="Capital, simulated orders and cost-basis holdings for a crypto portfolio.",
        version="1.0.0",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or [],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Origin", "Content-Type", "Accept", "Authorization"],
        expose_headers=["Content-Length"],
        max_age=12 * 60 * 60,
    )

    app.state.repository = repository
    app.state.price_source = price_source
    app.state.logger = logger
    app.state.journal = CapitalJournal(repository, logger)
    app.state.order_engine = OrderEngine(repository, price_source, logger)
    app.state.aggregator = PortfolioAggregator(repository, price_source, logger)
    app.state.watchlist = Watchlist(repository, price_source, logger)

    async def portfolio_error_handler(request: Request, exc: PortfolioError):
        if isinstance(exc, StorageError):
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
            return JSONResponse(
                status_code=exc.status_code, content={"error": "Storage failure"}
            )
        return JSONResponse(status_code=exc.status_code, content={"error": exc.msg})

    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if errors:
            first = errors[0]
            field = ".".join(str(part) for part in first.get("loc", ())[1:])
            message = f"{field}: {first.get('msg')}" if field else first.get("msg")
        else:
            message = "Invalid request"
        return JSONResponse(status_code=400, content={"error": message})

    app.add_exception_handler(PortfolioError, portfolio_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.include_router(router)

    @app.get("/")
    def root():
        return {"status": "ok", "message": "Portfolio Manager API is running"}

    return app
