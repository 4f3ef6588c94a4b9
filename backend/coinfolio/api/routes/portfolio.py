"""
Portfolio API routes.

Summary and analytics over the caller's active holdings, plus the manual
bulk price update. Each symbol in a bulk update is repriced in its own
session so one failing symbol never rolls back the others.
"""

import asyncio
from dataclasses import asdict
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coinfolio.api.schemas import ApiResponse, CamelModel
from coinfolio.auth import get_current_user
from coinfolio.errors import ValidationError
from coinfolio.models.base import get_session, get_session_factory, utcnow
from coinfolio.models.user import User
from coinfolio.services.collections import CoinCollection
from coinfolio.services.valuation import Holding, analyze, reprice, summarize
from coinfolio.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class PerformerOut(CamelModel):
    symbol: str
    name: str
    profit_loss_percentage: float


class PortfolioOut(CamelModel):
    user_id: str
    total_invested: float
    current_value: float
    total_profit_loss: float
    total_profit_loss_percentage: float
    coin_count: int
    top_performer: Optional[PerformerOut] = None
    worst_performer: Optional[PerformerOut] = None
    last_updated: datetime


class CoinBreakdownOut(CamelModel):
    symbol: str
    name: str
    total_invested: float
    current_value: float
    profit_loss: float
    profit_loss_percentage: float
    allocation: float


class PerformanceOut(CamelModel):
    total_coins: int
    profitable_coins: int
    losing_coins: int
    largest_position: float
    average_position: float


class AnalyticsOut(CamelModel):
    coin_breakdown: list[CoinBreakdownOut]
    performance: PerformanceOut


class PortfolioView(CamelModel):
    portfolio: PortfolioOut
    analytics: AnalyticsOut


class PriceQuote(CamelModel):
    symbol: str
    price: float


class PriceUpdateRequest(CamelModel):
    prices: Optional[list[PriceQuote]] = None


class PriceUpdateResult(CamelModel):
    symbol: str
    success: bool
    updated_count: Optional[int] = None
    error: Optional[str] = None


class PriceUpdateOut(CamelModel):
    update_results: list[PriceUpdateResult]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _apply_price(
    session_factory: async_sessionmaker[AsyncSession],
    user_id: str,
    symbol: str,
    price: float,
) -> PriceUpdateResult:
    """Reprice every active holding of ``symbol`` in one transaction."""
    async with session_factory() as session:
        coins = CoinCollection(session)
        try:
            rows = await coins.list_active_by_symbol(user_id, symbol.strip().upper())
            now = utcnow()
            for coin in rows:
                priced = reprice(Holding.from_model(coin), price, now)
                await coins.update(coin, priced.valuation_fields())
            await session.commit()
        except (SQLAlchemyError, ValueError):
            await session.rollback()
            logger.exception("Price update for %s failed (user %s)", symbol, user_id)
            return _failed(symbol)

    return PriceUpdateResult(symbol=symbol, success=True, updated_count=len(rows))


def _failed(symbol: str, error: str = "Failed to update price") -> PriceUpdateResult:
    return PriceUpdateResult(symbol=symbol, success=False, error=error)


async def _reject_negative(quote: PriceQuote) -> PriceUpdateResult:
    return _failed(quote.symbol, "Price cannot be negative")


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("", response_model=ApiResponse[PortfolioView])
async def get_portfolio(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Portfolio summary and analytics over the caller's active holdings."""
    holdings = await CoinCollection(session).list_active(user.id)
    summary = summarize(holdings)
    analytics = analyze(holdings, summary)

    view = PortfolioView(
        portfolio=PortfolioOut(user_id=user.id, **asdict(summary)),
        analytics=AnalyticsOut.model_validate(asdict(analytics)),
    )
    message = None if holdings else "No coins in portfolio"
    return ApiResponse(data=view, message=message)


@router.put("", response_model=ApiResponse[PriceUpdateOut])
async def update_prices(
    payload: PriceUpdateRequest,
    user: User = Depends(get_current_user),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
):
    """Set the current price of every active holding of each listed symbol.

    Failures are reported per symbol; the request itself succeeds.
    """
    if payload.prices is None:
        raise ValidationError(["Prices array is required"], error="Invalid request")

    outcomes = await asyncio.gather(*(
        _reject_negative(quote) if quote.price < 0
        else _apply_price(session_factory, user.id, quote.symbol, quote.price)
        for quote in payload.prices
    ), return_exceptions=True)

    results = []
    for quote, outcome in zip(payload.prices, outcomes):
        if isinstance(outcome, Exception):
            logger.error("Price update for %s raised %r (user %s)", quote.symbol, outcome, user.id)
            outcome = _failed(quote.symbol)
        results.append(outcome)

    updated = sum(1 for r in results if r.success)
    logger.info(
        "User %s price update: %d of %d symbols updated", user.id, updated, len(results)
    )
    return ApiResponse(message="Price update completed", data=PriceUpdateOut(update_results=results))
