"""Coinfolio database models.

Re-exports all SQLAlchemy models and database utilities
for convenient imports throughout the application.

Usage:
    from coinfolio.models import Coin, User, get_session
    from coinfolio.models import Base, init_db
"""

from coinfolio.models.base import (
    Base,
    create_engine,
    create_session_factory,
    get_session,
    get_session_factory,
    init_db,
    utcnow,
)
from coinfolio.models.coin import Coin, InvestmentGoal, RiskLevel
from coinfolio.models.user import User, UserRole, default_preferences

__all__ = [
    # Base & Database
    "Base",
    "create_engine",
    "create_session_factory",
    "init_db",
    "get_session",
    "get_session_factory",
    "utcnow",
    # User
    "User",
    "UserRole",
    "default_preferences",
    # Coin
    "Coin",
    "RiskLevel",
    "InvestmentGoal",
]
