"""Data access for the ``users`` and ``coins`` tables.

Thin set-based wrappers over an ``AsyncSession``. Ownership is enforced in
the queries themselves: coin lookups always filter on the owner's id, so a
holding that belongs to someone else is indistinguishable from a missing one.
Writes are flushed immediately so unique-index violations surface as
``ConflictError`` at the call site rather than at commit time; any other
integrity failure is an ``InternalError``.
"""

from collections.abc import Mapping
from typing import Any, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from coinfolio.errors import ConflictError, InternalError
from coinfolio.models.base import utcnow
from coinfolio.models.coin import Coin
from coinfolio.models.user import User
from coinfolio.utils.logging import get_logger

logger = get_logger(__name__)

UNIQUE_VIOLATION_SQLSTATE = "23505"

# Public sort keys for holdings, as the API spells them.
COIN_SORT_FIELDS = {
    "createdAt": Coin.created_at,
    "updatedAt": Coin.updated_at,
    "symbol": Coin.symbol,
    "name": Coin.name,
    "quantity": Coin.quantity,
    "averageBuyPrice": Coin.average_buy_price,
    "currentPrice": Coin.current_price,
    "totalInvested": Coin.total_invested,
    "currentValue": Coin.current_value,
    "profitLoss": Coin.profit_loss,
    "profitLossPercentage": Coin.profit_loss_percentage,
    "purchaseDate": Coin.purchase_date,
}


def is_unique_violation(exc: IntegrityError) -> bool:
    """True when ``exc`` comes from a unique constraint or index."""
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code:
        return code == UNIQUE_VIOLATION_SQLSTATE
    return "unique constraint" in str(orig).lower()


class _Collection:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _flush(self, conflict_message: str) -> None:
        try:
            await self.session.flush()
        except IntegrityError as exc:
            await self.session.rollback()
            if is_unique_violation(exc):
                raise ConflictError("Conflict", conflict_message)
            logger.error("Integrity error on write: %s", exc.orig)
            raise InternalError(message="Failed to save changes")

    @staticmethod
    def _assign(row: Any, fields: Mapping[str, Any]) -> None:
        for key, value in fields.items():
            setattr(row, key, value)
        row.updated_at = fields.get("updated_at") or utcnow()


class UserCollection(_Collection):

    async def find_by_id(self, user_id: str) -> Optional[User]:
        result = await self.session.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def find_by_email(self, email: str) -> Optional[User]:
        result = await self.session.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def find_by_username(self, username: str) -> Optional[User]:
        result = await self.session.execute(select(User).where(User.username == username))
        return result.scalar_one_or_none()

    async def find_conflict(
        self,
        email: Optional[str] = None,
        username: Optional[str] = None,
        exclude_id: Optional[str] = None,
    ) -> Optional[User]:
        """Another user already holding ``email`` or ``username``, if any."""
        clauses = []
        if email:
            clauses.append(User.email == email)
        if username:
            clauses.append(User.username == username)
        if not clauses:
            return None

        query = select(User).where(or_(*clauses))
        if exclude_id:
            query = query.where(User.id != exclude_id)
        result = await self.session.execute(query.limit(1))
        return result.scalar_one_or_none()

    async def list_all(self, offset: int = 0, limit: Optional[int] = None) -> list[User]:
        query = select(User).order_by(User.created_at.desc()).offset(offset)
        if limit is not None:
            query = query.limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count(self) -> int:
        return (await self.session.execute(select(func.count()).select_from(User))).scalar() or 0

    async def insert(self, user: User) -> User:
        self.session.add(user)
        await self._flush("Email or username already exists")
        return user

    async def update(self, user: User, fields: Mapping[str, Any]) -> User:
        self._assign(user, fields)
        await self._flush("Email or username already exists")
        return user

    async def delete(self, user: User) -> None:
        await self.session.delete(user)
        await self.session.flush()


class CoinCollection(_Collection):

    async def find_for_owner(self, coin_id: str, user_id: str) -> Optional[Coin]:
        result = await self.session.execute(
            select(Coin).where(Coin.id == coin_id, Coin.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def find_active_by_symbol(
        self,
        user_id: str,
        symbol: str,
        exclude_id: Optional[str] = None,
    ) -> Optional[Coin]:
        query = select(Coin).where(
            Coin.user_id == user_id,
            Coin.symbol == symbol,
            Coin.is_active.is_(True),
        )
        if exclude_id:
            query = query.where(Coin.id != exclude_id)
        result = await self.session.execute(query.limit(1))
        return result.scalar_one_or_none()

    async def list_for_owner(
        self,
        user_id: str,
        active: Optional[bool] = None,
        sort: str = "createdAt",
        order: str = "desc",
    ) -> list[Coin]:
        column = COIN_SORT_FIELDS[sort]
        query = select(Coin).where(Coin.user_id == user_id)
        if active is not None:
            query = query.where(Coin.is_active.is_(active))
        query = query.order_by(column.asc() if order == "asc" else column.desc())
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_active(self, user_id: str) -> list[Coin]:
        return await self.list_for_owner(user_id, active=True, sort="createdAt", order="asc")

    async def list_active_by_symbol(self, user_id: str, symbol: str) -> list[Coin]:
        result = await self.session.execute(
            select(Coin).where(
                Coin.user_id == user_id,
                Coin.symbol == symbol,
                Coin.is_active.is_(True),
            )
        )
        return list(result.scalars().all())

    async def insert(self, coin: Coin) -> Coin:
        self.session.add(coin)
        await self._flush(f"You already have {coin.symbol} in your portfolio")
        return coin

    async def update(self, coin: Coin, fields: Mapping[str, Any]) -> Coin:
        self._assign(coin, fields)
        await self._flush(f"You already have an active {coin.symbol} holding")
        return coin

    async def delete_for_owner(self, coin_id: str, user_id: str) -> bool:
        result = await self.session.execute(
            delete(Coin).where(Coin.id == coin_id, Coin.user_id == user_id)
        )
        return result.rowcount > 0

    async def delete_all_by_owner(self, user_id: str) -> int:
        result = await self.session.execute(delete(Coin).where(Coin.user_id == user_id))
        return result.rowcount
