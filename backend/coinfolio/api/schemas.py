"""Schemas shared by several routers: the response envelope and user views."""

from datetime import date, datetime
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_serializer
from pydantic.alias_generators import to_camel

from coinfolio.models.user import UserRole

T = TypeVar("T")


class CamelModel(BaseModel):
    """Serialises as camelCase; accepts camelCase or snake_case on input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        allow_inf_nan=False,
    )


class PaginationMeta(CamelModel):
    current: int
    page_size: int
    total: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool
    next_page: Optional[int] = None
    prev_page: Optional[int] = None

    @classmethod
    def build(cls, page: int, page_size: int, total: int) -> "PaginationMeta":
        total_pages = (total + page_size - 1) // page_size if page_size else 0
        has_next = page < total_pages
        has_prev = page > 1
        return cls(
            current=page,
            page_size=page_size,
            total=total,
            total_pages=total_pages,
            has_next_page=has_next,
            has_prev_page=has_prev,
            next_page=page + 1 if has_next else None,
            prev_page=page - 1 if has_prev else None,
        )


class ApiResponse(CamelModel, Generic[T]):
    """Envelope every endpoint responds with."""

    success: bool = True
    data: Optional[T] = None
    error: Optional[str] = None
    message: Optional[str] = None
    total: Optional[int] = None
    pagination: Optional[PaginationMeta] = None

    @model_serializer(mode="wrap")
    def _omit_empty_keys(self, handler):
        # Only the envelope keys that apply are sent.
        body = handler(self)
        return {k: v for k, v in body.items() if v is not None or k == "success"}


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class NotificationPreferences(CamelModel):
    email: Optional[bool] = None
    push: Optional[bool] = None
    sms: Optional[bool] = None


class UserPreferences(CamelModel):
    currency: Optional[str] = None
    language: Optional[str] = None
    theme: Optional[str] = None
    notifications: Optional[NotificationPreferences] = None


class SocialLinks(CamelModel):
    twitter: Optional[str] = None
    linkedin: Optional[str] = None
    github: Optional[str] = None
    website: Optional[str] = None


class UserOut(CamelModel):
    """A user as returned by the API; never carries the password hash."""

    id: str
    email: str
    username: str
    full_name: str = ""
    avatar: str = ""
    bio: str = ""
    phone: str = ""
    address: str = ""
    date_of_birth: Optional[date] = None
    country: str = ""
    city: str = ""
    profile_image: str = ""
    cover_image: str = ""
    social_links: dict[str, Any] = Field(default_factory=dict)
    preferences: dict[str, Any] = Field(default_factory=dict)
    role: UserRole = UserRole.USER
    is_active: bool = True
    is_verified: bool = False
    last_login_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class ProfileUpdate(CamelModel):
    """Profile fields a user may change about themselves."""

    full_name: Optional[str] = Field(None, max_length=255)
    avatar: Optional[str] = Field(None, max_length=500)
    bio: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = Field(None, max_length=500)
    date_of_birth: Optional[date] = None
    country: Optional[str] = Field(None, max_length=100)
    city: Optional[str] = Field(None, max_length=100)
    profile_image: Optional[str] = Field(None, max_length=500)
    cover_image: Optional[str] = Field(None, max_length=500)
    social_links: Optional[SocialLinks] = None
    preferences: Optional[UserPreferences] = None


def profile_fields(payload: ProfileUpdate, user: Any) -> dict[str, Any]:
    """Columns to write for the fields the client actually sent.

    JSON profile sections are merged into what the user already has.
    """
    fields = payload.model_dump(exclude_unset=True)
    for key in ("social_links", "preferences"):
        if key in fields:
            fields[key] = {**(getattr(user, key) or {}), **(fields[key] or {})}
    return {k: v for k, v in fields.items() if v is not None or k == "date_of_birth"}
