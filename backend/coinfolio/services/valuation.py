"""Valuation engine for Coinfolio holdings.

Pure arithmetic over holdings: per-coin current value and profit/loss,
weighted-average cost on top-ups, repricing, and portfolio aggregation with
top/worst performer selection. Nothing here touches the database or
validates its input; callers reject malformed numbers before they arrive.

Monetary results are rounded half-up to 2 places; weighted-average prices
keep 8 places so fractional units of low-priced assets survive.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional, Protocol

from coinfolio.models.base import utcnow

MONEY_PLACES = 2
PRICE_PLACES = 8


class Valuable(Protocol):
    quantity: float
    current_price: Optional[float]
    total_invested: float


def round_half_up(value: float, places: int = MONEY_PLACES) -> float:
    """Round ``value`` to ``places`` decimals, halves away from zero."""
    if not math.isfinite(value):
        raise ValueError(f"Cannot round non-finite amount {value!r}")
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class Valuation:
    """Derived valuation of a single holding."""

    current_value: float = 0.0
    profit_loss: float = 0.0
    profit_loss_percentage: float = 0.0


@dataclass(frozen=True)
class Holding:
    """Immutable snapshot of the valuation-relevant part of a coin."""

    symbol: str
    name: str
    quantity: float
    average_buy_price: float
    total_invested: float
    current_price: Optional[float] = None
    current_value: float = 0.0
    profit_loss: float = 0.0
    profit_loss_percentage: float = 0.0
    last_price_update: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    id: Optional[str] = None

    @classmethod
    def from_model(cls, coin: Any) -> Holding:
        return cls(
            id=coin.id,
            symbol=coin.symbol,
            name=coin.name,
            quantity=coin.quantity,
            average_buy_price=coin.average_buy_price,
            total_invested=coin.total_invested,
            current_price=coin.current_price,
            current_value=coin.current_value,
            profit_loss=coin.profit_loss,
            profit_loss_percentage=coin.profit_loss_percentage,
            last_price_update=coin.last_price_update,
            updated_at=coin.updated_at,
        )

    def valuation_fields(self) -> dict[str, Any]:
        """Columns a repriced holding writes back to storage."""
        return {
            "current_price": self.current_price,
            "current_value": self.current_value,
            "profit_loss": self.profit_loss,
            "profit_loss_percentage": self.profit_loss_percentage,
            "last_price_update": self.last_price_update,
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True)
class Performer:
    symbol: str
    name: str
    profit_loss_percentage: float


@dataclass
class PortfolioSummary:
    """Aggregate valuation of a set of holdings."""

    total_invested: float = 0.0
    current_value: float = 0.0
    total_profit_loss: float = 0.0
    total_profit_loss_percentage: float = 0.0
    coin_count: int = 0
    top_performer: Optional[Performer] = None
    worst_performer: Optional[Performer] = None
    last_updated: datetime = field(default_factory=utcnow)


@dataclass
class CoinBreakdown:
    symbol: str
    name: str
    total_invested: float
    current_value: float
    profit_loss: float
    profit_loss_percentage: float
    allocation: float


@dataclass
class PerformanceStats:
    total_coins: int = 0
    profitable_coins: int = 0
    losing_coins: int = 0
    largest_position: float = 0.0
    average_position: float = 0.0


@dataclass
class PortfolioAnalytics:
    coin_breakdown: list[CoinBreakdown] = field(default_factory=list)
    performance: PerformanceStats = field(default_factory=PerformanceStats)


# ---------------------------------------------------------------------------
# Per-coin
# ---------------------------------------------------------------------------


def percentage_of(part: float, whole: float) -> float:
    """``part / whole * 100``, or 0 when ``whole`` is not positive."""
    return part / whole * 100 if whole > 0 else 0.0


def value_of(coin: Valuable) -> Valuation:
    """Compute current value, profit/loss and profit/loss percentage.

    A holding without a recorded price has no valuation yet: every derived
    field is 0 rather than a loss equal to its cost basis. A price of 0 is a
    real price and values the holding at nothing.
    """
    if coin.current_price is None:
        return Valuation()

    current_value = coin.quantity * coin.current_price
    profit_loss = current_value - coin.total_invested
    return Valuation(
        current_value=round_half_up(current_value),
        profit_loss=round_half_up(profit_loss),
        profit_loss_percentage=round_half_up(percentage_of(profit_loss, coin.total_invested)),
    )


def reprice(holding: Holding, new_price: float, now: Optional[datetime] = None) -> Holding:
    """Return a copy of ``holding`` valued at ``new_price``."""
    now = now or utcnow()
    priced = replace(holding, current_price=new_price)
    valuation = value_of(priced)
    return replace(
        priced,
        current_value=valuation.current_value,
        profit_loss=valuation.profit_loss,
        profit_loss_percentage=valuation.profit_loss_percentage,
        last_price_update=now,
        updated_at=now,
    )


def weighted_average(
    current_qty: float,
    current_avg_price: float,
    add_qty: float,
    add_price: float,
) -> float:
    """Average buy price after adding ``add_qty`` units at ``add_price``."""
    total_qty = current_qty + add_qty
    if total_qty == 0:
        raise ValueError("Cannot average over a total quantity of zero")
    total_cost = current_qty * current_avg_price + add_qty * add_price
    return round_half_up(total_cost / total_qty, PRICE_PLACES)


# ---------------------------------------------------------------------------
# Portfolio
# ---------------------------------------------------------------------------


def summarize(coins: Iterable[Any]) -> PortfolioSummary:
    """Aggregate holdings in a single pass.

    The top performer has the strictly greatest percentage and the worst the
    strictly least; on ties the first holding seen keeps the title.
    """
    total_invested = 0.0
    current_value = 0.0
    count = 0
    top: Optional[Performer] = None
    worst: Optional[Performer] = None

    for coin in coins:
        valuation = value_of(coin)
        count += 1
        total_invested += coin.total_invested
        current_value += valuation.current_value

        pct = valuation.profit_loss_percentage
        if top is None or pct > top.profit_loss_percentage:
            top = Performer(coin.symbol, coin.name, pct)
        if worst is None or pct < worst.profit_loss_percentage:
            worst = Performer(coin.symbol, coin.name, pct)

    total_profit_loss = current_value - total_invested
    return PortfolioSummary(
        total_invested=round_half_up(total_invested),
        current_value=round_half_up(current_value),
        total_profit_loss=round_half_up(total_profit_loss),
        total_profit_loss_percentage=round_half_up(percentage_of(total_profit_loss, total_invested)),
        coin_count=count,
        top_performer=top,
        worst_performer=worst,
    )


def analyze(coins: list[Any], summary: PortfolioSummary) -> PortfolioAnalytics:
    """Per-coin allocation breakdown plus simple performance statistics."""
    breakdown = []
    profitable = losing = 0
    for coin in coins:
        valuation = value_of(coin)
        if valuation.profit_loss > 0:
            profitable += 1
        elif valuation.profit_loss < 0:
            losing += 1
        breakdown.append(CoinBreakdown(
            symbol=coin.symbol,
            name=coin.name,
            total_invested=coin.total_invested,
            current_value=valuation.current_value,
            profit_loss=valuation.profit_loss,
            profit_loss_percentage=valuation.profit_loss_percentage,
            allocation=round_half_up(percentage_of(valuation.current_value, summary.current_value)),
        ))
    breakdown.sort(key=lambda entry: entry.current_value, reverse=True)

    performance = PerformanceStats(
        total_coins=len(coins),
        profitable_coins=profitable,
        losing_coins=losing,
        largest_position=max((coin.total_invested for coin in coins), default=0.0),
        average_position=(
            round_half_up(summary.total_invested / len(coins)) if coins else 0.0
        ),
    )
    return PortfolioAnalytics(coin_breakdown=breakdown, performance=performance)
