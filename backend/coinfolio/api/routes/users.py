"""
User management API routes (admin only).

List, create, read, update and delete user accounts. Deleting a user removes
their holdings as well.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from coinfolio.api.routes.auth import normalize_email
from coinfolio.api.schemas import (
    ApiResponse,
    CamelModel,
    PaginationMeta,
    ProfileUpdate,
    SocialLinks,
    UserOut,
    UserPreferences,
    profile_fields,
)
from coinfolio.auth import get_settings, hash_password, is_valid_id, require_admin
from coinfolio.config import Settings
from coinfolio.errors import ConflictError, NotFoundError, ValidationError
from coinfolio.models.base import get_session
from coinfolio.models.user import User, UserRole, default_preferences
from coinfolio.services.collections import CoinCollection, UserCollection
from coinfolio.services.validation import combine, validate_email, validate_password, validate_username
from coinfolio.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(dependencies=[Depends(require_admin)])


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class UserCreate(CamelModel):
    email: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    full_name: str = ""
    bio: str = ""
    phone: str = ""
    address: str = ""
    date_of_birth: Optional[date] = None
    country: str = ""
    city: str = ""
    profile_image: str = ""
    cover_image: str = ""
    social_links: Optional[SocialLinks] = None
    preferences: Optional[UserPreferences] = None
    role: UserRole = UserRole.USER


class UserUpdate(ProfileUpdate):
    email: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    role: Optional[UserRole] = None
    is_active: Optional[bool] = None
    is_verified: Optional[bool] = None


def get_user_collection(session: AsyncSession = Depends(get_session)) -> UserCollection:
    return UserCollection(session)


async def _get_user(users: UserCollection, user_id: str) -> User:
    if not is_valid_id(user_id):
        raise ValidationError(error="Invalid user ID")
    user = await users.find_by_id(user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("", response_model=ApiResponse[list[UserOut]])
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    users: UserCollection = Depends(get_user_collection),
):
    """List users, newest first."""
    total = await users.count()
    rows = await users.list_all(offset=(page - 1) * limit, limit=limit)
    return ApiResponse(
        message="Users retrieved successfully",
        data=[UserOut.model_validate(u) for u in rows],
        total=total,
        pagination=PaginationMeta.build(page, limit, total),
    )


@router.post("", response_model=ApiResponse[UserOut], status_code=201)
async def create_user(
    payload: UserCreate,
    users: UserCollection = Depends(get_user_collection),
    settings: Settings = Depends(get_settings),
):
    email = normalize_email(payload.email)
    result = combine(
        validate_email(email),
        validate_username(payload.username),
        validate_password(payload.password),
    )
    if not result.is_valid:
        raise ValidationError(result.errors)

    if await users.find_conflict(email=email, username=payload.username):
        raise ConflictError("User already exists", "User with this username or email already exists")

    fields = payload.model_dump(exclude={"email", "username", "password", "social_links", "preferences"})
    user = await users.insert(User(
        email=email,
        username=payload.username,
        hashed_password=hash_password(payload.password, settings.bcrypt_rounds),
        social_links=payload.social_links.model_dump(exclude_none=True) if payload.social_links else {},
        preferences=(
            payload.preferences.model_dump(exclude_none=True)
            if payload.preferences else default_preferences()
        ),
        is_active=True,
        is_verified=False,
        **fields,
    ))
    logger.info("Admin created user %s (%s) with role %s", user.username, user.id, user.role.value)
    return ApiResponse(message="User created successfully", data=UserOut.model_validate(user))


@router.get("/{user_id}", response_model=ApiResponse[UserOut])
async def get_user(user_id: str, users: UserCollection = Depends(get_user_collection)):
    user = await _get_user(users, user_id)
    return ApiResponse(message="User retrieved successfully", data=UserOut.model_validate(user))


@router.put("/{user_id}", response_model=ApiResponse[UserOut])
async def update_user(
    user_id: str,
    payload: UserUpdate,
    users: UserCollection = Depends(get_user_collection),
    settings: Settings = Depends(get_settings),
):
    """Update any account field; a new password is re-hashed."""
    user = await _get_user(users, user_id)

    sent = payload.model_dump(exclude_unset=True)
    email = normalize_email(sent.get("email"))
    username = sent.get("username")
    password = sent.get("password")

    checks = []
    if email is not None:
        checks.append(validate_email(email))
    if username is not None:
        checks.append(validate_username(username))
    if password is not None:
        checks.append(validate_password(password))
    result = combine(*checks)
    if not result.is_valid:
        raise ValidationError(result.errors)

    if (email or username) and await users.find_conflict(email, username, exclude_id=user.id):
        raise ConflictError("User already exists", "Email or username already exists")

    fields = profile_fields(payload, user)
    for key in ("password", "email"):
        fields.pop(key, None)
    if email:
        fields["email"] = email
    if password:
        fields["hashed_password"] = hash_password(password, settings.bcrypt_rounds)

    await users.update(user, fields)
    logger.info("Admin updated user %s (%s)", user.id, ", ".join(sorted(fields)))
    return ApiResponse(message="User updated successfully", data=UserOut.model_validate(user))


@router.delete("/{user_id}", response_model=ApiResponse[None])
async def delete_user(
    user_id: str,
    users: UserCollection = Depends(get_user_collection),
):
    user = await _get_user(users, user_id)
    removed = await CoinCollection(users.session).delete_all_by_owner(user.id)
    await users.delete(user)
    logger.info("Admin deleted user %s and %d holdings", user_id, removed)
    return ApiResponse(message="User and associated data deleted successfully")
