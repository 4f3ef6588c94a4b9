"""
Authentication API routes.

Provides register, login, logout, and self-service profile endpoints.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from coinfolio.api.schemas import ApiResponse, CamelModel, ProfileUpdate, UserOut, profile_fields
from coinfolio.auth import create_token, get_current_user, get_settings, hash_password, verify_password
from coinfolio.config import Settings
from coinfolio.errors import AuthenticationError, ConflictError, ValidationError
from coinfolio.models.base import get_session, utcnow
from coinfolio.models.user import User, UserRole
from coinfolio.services.collections import UserCollection
from coinfolio.services.validation import combine, validate_email, validate_password, validate_username
from coinfolio.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class RegisterRequest(CamelModel):
    email: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    full_name: Optional[str] = None


class LoginRequest(CamelModel):
    email: Optional[str] = None
    password: Optional[str] = None


class AuthPayload(CamelModel):
    user: UserOut
    token: str


def normalize_email(email: Optional[str]) -> Optional[str]:
    return email.lower().strip() if email else email


def issue_token(user: User, settings: Settings) -> str:
    return create_token(
        user.id,
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        expiry_days=settings.jwt_expiry_days,
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("/register", response_model=ApiResponse[AuthPayload], status_code=201)
async def register(
    payload: RegisterRequest,
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
):
    """Create a new user account and sign it in."""
    email = normalize_email(payload.email)
    result = combine(
        validate_email(email),
        validate_username(payload.username),
        validate_password(payload.password),
    )
    if not result.is_valid:
        raise ValidationError(result.errors)

    users = UserCollection(session)
    if await users.find_by_email(email):
        raise ConflictError("User already exists", "Email already registered")
    if await users.find_by_username(payload.username):
        raise ConflictError("User already exists", "Username already taken")

    user = await users.insert(User(
        email=email,
        username=payload.username,
        hashed_password=hash_password(payload.password, settings.bcrypt_rounds),
        full_name=payload.full_name or "",
        role=UserRole.USER,
        is_active=True,
    ))
    logger.info("Registered user %s (%s)", user.username, user.id)

    return ApiResponse(
        message="User registered successfully",
        data=AuthPayload(user=UserOut.model_validate(user), token=issue_token(user, settings)),
    )


@router.post("/login", response_model=ApiResponse[AuthPayload])
async def login(
    payload: LoginRequest,
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
):
    """Authenticate and receive a JWT token."""
    email = normalize_email(payload.email)
    result = combine(validate_email(email), validate_password(payload.password))
    if not result.is_valid:
        raise ValidationError(result.errors)

    users = UserCollection(session)
    user = await users.find_by_email(email)
    if not user or not verify_password(payload.password, user.hashed_password):
        raise AuthenticationError("Invalid credentials", "Email or password is incorrect")

    if not user.is_active:
        raise AuthenticationError("Account disabled", "Your account has been disabled")

    now = utcnow()
    await users.update(user, {"last_login_at": now, "updated_at": now})
    logger.info("User %s logged in", user.id)

    return ApiResponse(
        message="Login successful",
        data=AuthPayload(user=UserOut.model_validate(user), token=issue_token(user, settings)),
    )


@router.post("/logout", response_model=ApiResponse[None])
async def logout(user: User = Depends(get_current_user)):
    """Tokens are stateless; the client discards its copy."""
    logger.info("User %s logged out", user.id)
    return ApiResponse(message="Logout successful")


@router.get("/me", response_model=ApiResponse[UserOut])
async def get_profile(user: User = Depends(get_current_user)):
    """Get current authenticated user profile."""
    return ApiResponse(data=UserOut.model_validate(user))


@router.put("/me", response_model=ApiResponse[UserOut])
async def update_profile(
    payload: ProfileUpdate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Update current user profile."""
    await UserCollection(session).update(user, profile_fields(payload, user))
    return ApiResponse(message="Profile updated successfully", data=UserOut.model_validate(user))
