"""Coin holding model.

A ``Coin`` row is one user's position in one asset (quantity plus cost
basis), not a public asset definition. ``current_price`` is ``None`` until a
price has been recorded; a stored ``0.0`` means the asset is priced at zero.
"""

import enum
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, Enum, Float, ForeignKey, Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from coinfolio.models.base import Base, utcnow


class RiskLevel(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    VERY_HIGH = "VERY_HIGH"


class InvestmentGoal(str, enum.Enum):
    SHORT_TERM = "SHORT_TERM"
    MEDIUM_TERM = "MEDIUM_TERM"
    LONG_TERM = "LONG_TERM"


class Coin(Base):
    """A user's holding of a single crypto asset."""

    __tablename__ = "coins"
    __table_args__ = (
        Index("ix_coins_user_id_symbol", "user_id", "symbol"),
        Index("ix_coins_user_id_is_active", "user_id", "is_active"),
        # One active holding per symbol; soft-deleted duplicates are allowed.
        Index(
            "uq_coins_user_id_symbol_active",
            "user_id",
            "symbol",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    user_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    symbol: Mapped[str] = mapped_column(String(10), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    quantity: Mapped[float] = mapped_column(Float, nullable=False)
    average_buy_price: Mapped[float] = mapped_column(Float, nullable=False)
    current_price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Derived on every write
    total_invested: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    current_value: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    profit_loss: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    profit_loss_percentage: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    note: Mapped[str] = mapped_column(Text, nullable=False, default="")
    purchase_date: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    last_price_update: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Descriptive metadata, carried through unchanged
    logo: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    coin_gecko_id: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    market_cap: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    rank: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    volume_24h: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    price_change_24h: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    price_change_7d: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    all_time_high: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    all_time_low: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    circulating_supply: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_supply: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    max_supply: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    website: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    whitepaper: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    explorer: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    github: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    category: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    risk_level: Mapped[RiskLevel] = mapped_column(
        Enum(RiskLevel, name="risk_level", native_enum=False),
        nullable=False,
        default=RiskLevel.MEDIUM,
    )
    investment_goal: Mapped[InvestmentGoal] = mapped_column(
        Enum(InvestmentGoal, name="investment_goal", native_enum=False),
        nullable=False,
        default=InvestmentGoal.LONG_TERM,
    )
    alert_settings: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    def __repr__(self) -> str:
        return (
            f"<Coin(id={self.id!r}, symbol={self.symbol!r}, "
            f"quantity={self.quantity!r}, active={self.is_active!r})>"
        )
