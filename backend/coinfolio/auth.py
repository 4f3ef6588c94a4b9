"""Authentication utilities: password hashing, JWT tokens, and dependencies."""

from datetime import datetime, timedelta, timezone
from uuid import UUID

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession

from coinfolio.config import Settings
from coinfolio.errors import AuthenticationError, AuthorizationError
from coinfolio.models.base import get_session
from coinfolio.models.user import User, UserRole
from coinfolio.services.collections import UserCollection

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str, rounds: int = 12) -> str:
    return pwd_context.handler("bcrypt").using(rounds=rounds).hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

_bearer = HTTPBearer(auto_error=False)


def create_token(
    user_id: str,
    secret: str,
    algorithm: str = "HS256",
    expiry_days: int = 7,
) -> str:
    """Issue a token whose only claim besides expiry is the user id."""
    payload = {
        "sub": user_id,
        "exp": datetime.now(timezone.utc) + timedelta(days=expiry_days),
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_token(token: str, secret: str, algorithm: str = "HS256") -> str:
    """Return the user id carried by ``token``."""
    try:
        payload = jwt.decode(token, secret, algorithms=[algorithm])
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid or expired token")

    user_id = payload.get("sub")
    if not user_id or not is_valid_id(user_id):
        raise AuthenticationError("Invalid or expired token")
    return user_id


def is_valid_id(value: str) -> bool:
    try:
        UUID(str(value))
    except ValueError:
        return False
    return True


# ---------------------------------------------------------------------------
# FastAPI dependencies
# ---------------------------------------------------------------------------


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


async def get_current_user(
    creds: HTTPAuthorizationCredentials | None = Depends(_bearer),
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
) -> User:
    if creds is None:
        raise AuthenticationError("No token provided")

    user_id = decode_token(creds.credentials, settings.jwt_secret, settings.jwt_algorithm)

    user = await UserCollection(session).find_by_id(user_id)
    if not user or not user.is_active:
        raise AuthenticationError("User not found or inactive")

    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != UserRole.ADMIN:
        raise AuthorizationError()
    return user
