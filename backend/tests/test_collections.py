"""Data-access layer: how database integrity failures are reported."""

import asyncio
import sqlite3

import pytest
from sqlalchemy.exc import IntegrityError

from coinfolio.errors import ConflictError, InternalError
from coinfolio.models.base import create_engine, create_session_factory, init_db
from coinfolio.models.coin import Coin
from coinfolio.models.user import User
from coinfolio.services.collections import CoinCollection, UserCollection, is_unique_violation


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_with_session(tmp_path, scenario) -> None:
    """Run ``scenario(session)`` against a fresh SQLite database."""

    async def main():
        engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'collections.db'}")
        try:
            assert await init_db(engine, retries=1)
            async with create_session_factory(engine)() as session:
                await scenario(session)
        finally:
            await engine.dispose()

    asyncio.run(main())


async def _owner(session) -> User:
    return await UserCollection(session).insert(
        User(email="owner@example.com", username="owner", hashed_password="x")
    )


def _coin(user: User, **overrides) -> Coin:
    fields = {"user_id": user.id, "symbol": "BTC", "name": "Bitcoin", "quantity": 1.0,
              "average_buy_price": 1.0, "total_invested": 1.0}
    fields.update(overrides)
    return Coin(**fields)


class _PgError(Exception):
    def __init__(self, sqlstate: str) -> None:
        super().__init__(sqlstate)
        self.sqlstate = sqlstate


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestUniqueViolation:
    def test_sqlite_messages(self):
        unique = sqlite3.IntegrityError("UNIQUE constraint failed: coins.user_id, coins.symbol")
        not_null = sqlite3.IntegrityError("NOT NULL constraint failed: coins.quantity")
        assert is_unique_violation(IntegrityError("INSERT", {}, unique))
        assert not is_unique_violation(IntegrityError("INSERT", {}, not_null))

    def test_postgres_sqlstate(self):
        assert is_unique_violation(IntegrityError("INSERT", {}, _PgError("23505")))
        assert not is_unique_violation(IntegrityError("INSERT", {}, _PgError("23502")))
        assert not is_unique_violation(IntegrityError("INSERT", {}, _PgError("23503")))


class TestFlush:
    def test_duplicate_active_holding_is_a_conflict(self, tmp_path):
        async def scenario(session):
            user = await _owner(session)
            coins = CoinCollection(session)
            await coins.insert(_coin(user))
            with pytest.raises(ConflictError):
                await coins.insert(_coin(user))

        _run_with_session(tmp_path, scenario)

    def test_missing_required_column_is_not_a_conflict(self, tmp_path):
        async def scenario(session):
            user = await _owner(session)
            with pytest.raises(InternalError) as excinfo:
                await CoinCollection(session).insert(_coin(user, quantity=None))
            assert excinfo.value.status_code == 500
            assert excinfo.value.message == "Failed to save changes"

        _run_with_session(tmp_path, scenario)

    def test_duplicate_email_is_a_conflict(self, tmp_path):
        async def scenario(session):
            await _owner(session)
            with pytest.raises(ConflictError):
                await UserCollection(session).insert(
                    User(email="owner@example.com", username="other", hashed_password="x")
                )

        _run_with_session(tmp_path, scenario)
