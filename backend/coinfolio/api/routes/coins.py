"""
Coin holding API routes.

CRUD over the authenticated user's holdings plus the top-up operation that
folds additional units into the weighted-average buy price. Every lookup is
scoped to the caller; valuation fields are recomputed on each read and
persisted on each write.
"""

from datetime import datetime
from types import SimpleNamespace
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from coinfolio.api.schemas import ApiResponse, CamelModel
from coinfolio.auth import get_current_user, is_valid_id
from coinfolio.errors import ConflictError, NotFoundError, ValidationError
from coinfolio.models.base import get_session, utcnow
from coinfolio.models.coin import Coin, InvestmentGoal, RiskLevel
from coinfolio.models.user import User
from coinfolio.services.collections import COIN_SORT_FIELDS, CoinCollection
from coinfolio.services.validation import (
    validate_coin,
    validate_coin_update,
    validate_position,
    validate_top_up,
)
from coinfolio.services.valuation import value_of, weighted_average
from coinfolio.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class AlertSettings(CamelModel):
    price_target_high: Optional[float] = None
    price_target_low: Optional[float] = None
    percentage_change_alert: Optional[float] = None


class CoinCreate(CamelModel):
    symbol: Optional[str] = None
    name: Optional[str] = None
    quantity: Optional[float] = None
    average_buy_price: Optional[float] = None
    current_price: Optional[float] = None
    note: str = ""
    purchase_date: Optional[datetime] = None
    is_active: bool = True
    logo: str = ""
    coin_gecko_id: str = ""
    website: str = ""
    category: str = ""
    tags: list[str] = Field(default_factory=list)
    description: str = ""
    risk_level: RiskLevel = RiskLevel.MEDIUM
    investment_goal: InvestmentGoal = InvestmentGoal.LONG_TERM
    alert_settings: Optional[AlertSettings] = None


class CoinUpdate(CamelModel):
    """Partial update; only the keys present in the request are applied."""

    symbol: Optional[str] = None
    name: Optional[str] = None
    quantity: Optional[float] = None
    average_buy_price: Optional[float] = None
    current_price: Optional[float] = None
    note: Optional[str] = None
    purchase_date: Optional[datetime] = None
    is_active: Optional[bool] = None
    logo: Optional[str] = None
    coin_gecko_id: Optional[str] = None
    website: Optional[str] = None
    category: Optional[str] = None
    tags: Optional[list[str]] = None
    description: Optional[str] = None
    risk_level: Optional[RiskLevel] = None
    investment_goal: Optional[InvestmentGoal] = None
    alert_settings: Optional[AlertSettings] = None


class TopUpRequest(CamelModel):
    quantity: Optional[float] = None
    price: Optional[float] = None


class CoinOut(CamelModel):
    id: str
    user_id: str
    symbol: str
    name: str
    quantity: float
    average_buy_price: float
    current_price: Optional[float] = None
    total_invested: float
    current_value: float
    profit_loss: float
    profit_loss_percentage: float
    note: str = ""
    purchase_date: datetime
    last_price_update: Optional[datetime] = None
    is_active: bool
    logo: str = ""
    coin_gecko_id: str = ""
    market_cap: float = 0.0
    rank: int = 0
    volume_24h: float = 0.0
    price_change_24h: float = 0.0
    price_change_7d: float = 0.0
    all_time_high: float = 0.0
    all_time_low: float = 0.0
    circulating_supply: float = 0.0
    total_supply: float = 0.0
    max_supply: float = 0.0
    website: str = ""
    whitepaper: str = ""
    explorer: str = ""
    github: str = ""
    category: str = ""
    tags: list[str] = Field(default_factory=list)
    description: str = ""
    risk_level: RiskLevel = RiskLevel.MEDIUM
    investment_goal: InvestmentGoal = InvestmentGoal.LONG_TERM
    alert_settings: AlertSettings = Field(default_factory=AlertSettings)
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def get_coin_collection(session: AsyncSession = Depends(get_session)) -> CoinCollection:
    return CoinCollection(session)


def _coin_to_response(coin: Coin) -> CoinOut:
    """Serialise a holding with its valuation recomputed from current inputs."""
    valuation = value_of(coin)
    return CoinOut.model_validate(coin).model_copy(update={
        "current_value": valuation.current_value,
        "profit_loss": valuation.profit_loss,
        "profit_loss_percentage": valuation.profit_loss_percentage,
    })


def _valuation_fields(coin: Any) -> dict[str, float]:
    valuation = value_of(coin)
    return {
        "current_value": valuation.current_value,
        "profit_loss": valuation.profit_loss,
        "profit_loss_percentage": valuation.profit_loss_percentage,
    }


def _revalued(coin: Coin, fields: dict[str, Any]) -> dict[str, Any]:
    """``fields`` plus the valuation they imply once applied to ``coin``."""
    inputs = SimpleNamespace(
        quantity=fields.get("quantity", coin.quantity),
        current_price=fields.get("current_price", coin.current_price),
        total_invested=fields.get("total_invested", coin.total_invested),
    )
    return fields | _valuation_fields(inputs)


def _require_valid_id(coin_id: str) -> None:
    if not is_valid_id(coin_id):
        raise ValidationError(error="Invalid coin ID")


async def _get_owned_coin(coins: CoinCollection, coin_id: str, user: User) -> Coin:
    _require_valid_id(coin_id)
    coin = await coins.find_for_owner(coin_id, user.id)
    if not coin:
        raise NotFoundError("Coin not found")
    return coin


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("", response_model=ApiResponse[list[CoinOut]])
async def list_coins(
    active: Optional[bool] = Query(None),
    sort: str = Query("createdAt"),
    order: str = Query("desc", pattern="^(asc|desc)$"),
    user: User = Depends(get_current_user),
    coins: CoinCollection = Depends(get_coin_collection),
):
    """List the caller's holdings with freshly computed valuations."""
    if sort not in COIN_SORT_FIELDS:
        raise ValidationError([f"Cannot sort by '{sort}'"], error="Invalid sort field")

    rows = await coins.list_for_owner(user.id, active=active, sort=sort, order=order)
    data = [_coin_to_response(c) for c in rows]
    return ApiResponse(data=data, total=len(data))


@router.post("", response_model=ApiResponse[CoinOut], status_code=201)
async def create_coin(
    payload: CoinCreate,
    user: User = Depends(get_current_user),
    coins: CoinCollection = Depends(get_coin_collection),
):
    """Record a new holding."""
    result = validate_coin(
        symbol=payload.symbol,
        name=payload.name,
        quantity=payload.quantity,
        average_buy_price=payload.average_buy_price,
        current_price=payload.current_price,
    )
    if not result.is_valid:
        raise ValidationError(result.errors)

    symbol = payload.symbol.strip().upper()
    if payload.is_active and await coins.find_active_by_symbol(user.id, symbol):
        raise ConflictError(
            "Coin already exists",
            f"You already have {symbol} in your portfolio. Use update to modify existing coin.",
        )

    now = utcnow()
    coin = Coin(
        user_id=user.id,
        symbol=symbol,
        name=payload.name.strip(),
        quantity=payload.quantity,
        average_buy_price=payload.average_buy_price,
        current_price=payload.current_price,
        total_invested=payload.quantity * payload.average_buy_price,
        note=payload.note,
        purchase_date=payload.purchase_date or now,
        last_price_update=now if payload.current_price is not None else None,
        is_active=payload.is_active,
        logo=payload.logo,
        coin_gecko_id=payload.coin_gecko_id,
        website=payload.website,
        category=payload.category,
        tags=payload.tags,
        description=payload.description,
        risk_level=payload.risk_level,
        investment_goal=payload.investment_goal,
        alert_settings=payload.alert_settings.model_dump(exclude_none=True) if payload.alert_settings else {},
    )
    for key, value in _valuation_fields(coin).items():
        setattr(coin, key, value)

    await coins.insert(coin)
    logger.info("User %s added %s holding %s", user.id, coin.symbol, coin.id)
    return ApiResponse(message="Coin added successfully", data=_coin_to_response(coin))


@router.get("/{coin_id}", response_model=ApiResponse[CoinOut])
async def get_coin(
    coin_id: str,
    user: User = Depends(get_current_user),
    coins: CoinCollection = Depends(get_coin_collection),
):
    coin = await _get_owned_coin(coins, coin_id, user)
    return ApiResponse(data=_coin_to_response(coin))


@router.put("/{coin_id}", response_model=ApiResponse[CoinOut])
async def update_coin(
    coin_id: str,
    payload: CoinUpdate,
    user: User = Depends(get_current_user),
    coins: CoinCollection = Depends(get_coin_collection),
):
    """Apply a partial update and recompute the derived fields."""
    _require_valid_id(coin_id)
    fields = payload.model_dump(exclude_unset=True)

    result = validate_coin_update(fields)
    if not result.is_valid:
        raise ValidationError(result.errors)

    coin = await _get_owned_coin(coins, coin_id, user)

    if "symbol" in fields:
        fields["symbol"] = fields["symbol"].strip().upper()
    if "name" in fields:
        fields["name"] = fields["name"].strip()
    if "alert_settings" in fields:
        fields["alert_settings"] = {
            k: v for k, v in (fields["alert_settings"] or {}).items() if v is not None
        }
    # Optional metadata sent as null keeps its current value.
    for key in list(fields):
        if fields[key] is None and key != "current_price":
            del fields[key]

    position = validate_position(
        fields.get("quantity", coin.quantity),
        fields.get("average_buy_price", coin.average_buy_price),
        fields.get("current_price", coin.current_price),
    )
    if not position.is_valid:
        raise ValidationError(position.errors)

    symbol = fields.get("symbol", coin.symbol)
    becomes_active = fields.get("is_active", coin.is_active)
    if becomes_active and (symbol != coin.symbol or not coin.is_active):
        if await coins.find_active_by_symbol(user.id, symbol, exclude_id=coin.id):
            raise ConflictError(
                "Coin already exists",
                f"You already have an active {symbol} holding in your portfolio.",
            )

    now = utcnow()
    if fields.get("current_price") is not None:
        fields["last_price_update"] = now
    if "quantity" in fields or "average_buy_price" in fields:
        quantity = fields.get("quantity", coin.quantity)
        average_buy_price = fields.get("average_buy_price", coin.average_buy_price)
        fields["total_invested"] = quantity * average_buy_price
    fields["updated_at"] = now

    await coins.update(coin, _revalued(coin, fields))
    logger.info("User %s updated holding %s (%s)", user.id, coin.id, ", ".join(sorted(fields)))
    return ApiResponse(message="Coin updated successfully", data=_coin_to_response(coin))


@router.post("/{coin_id}/top-up", response_model=ApiResponse[CoinOut])
async def top_up_coin(
    coin_id: str,
    payload: TopUpRequest,
    user: User = Depends(get_current_user),
    coins: CoinCollection = Depends(get_coin_collection),
):
    """Add units bought at ``price`` and re-average the buy price."""
    _require_valid_id(coin_id)
    result = validate_top_up(payload.quantity, payload.price)
    if not result.is_valid:
        raise ValidationError(result.errors)

    coin = await _get_owned_coin(coins, coin_id, user)

    quantity = coin.quantity + payload.quantity
    position = validate_position(
        quantity, max(coin.average_buy_price, payload.price), coin.current_price
    )
    if not position.is_valid:
        raise ValidationError(position.errors)

    average_buy_price = weighted_average(
        coin.quantity, coin.average_buy_price, payload.quantity, payload.price
    )
    await coins.update(coin, _revalued(coin, {
        "quantity": quantity,
        "average_buy_price": average_buy_price,
        "total_invested": quantity * average_buy_price,
    }))
    logger.info(
        "User %s topped up %s by %s @ %s", user.id, coin.symbol, payload.quantity, payload.price
    )
    return ApiResponse(message="Coin topped up successfully", data=_coin_to_response(coin))


@router.delete("/{coin_id}", response_model=ApiResponse[None])
async def delete_coin(
    coin_id: str,
    soft: bool = Query(False, description="Mark inactive instead of deleting"),
    user: User = Depends(get_current_user),
    coins: CoinCollection = Depends(get_coin_collection),
):
    _require_valid_id(coin_id)

    if soft:
        coin = await _get_owned_coin(coins, coin_id, user)
        await coins.update(coin, {"is_active": False})
        logger.info("User %s deactivated holding %s", user.id, coin_id)
        return ApiResponse(message="Coin deactivated successfully")

    if not await coins.delete_for_owner(coin_id, user.id):
        raise NotFoundError("Coin not found")
    logger.info("User %s deleted holding %s", user.id, coin_id)
    return ApiResponse(message="Coin deleted successfully")
