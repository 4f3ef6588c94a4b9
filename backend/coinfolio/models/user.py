"""User model for authentication and coin ownership."""

import enum
from datetime import date, datetime
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, Date, Enum, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from coinfolio.models.base import Base


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    USER = "user"


def default_preferences() -> dict[str, Any]:
    return {
        "currency": "USD",
        "language": "en",
        "theme": "dark",
        "notifications": {"email": True, "push": True, "sms": False},
    }


class User(Base):
    """User account for authentication and portfolio ownership."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True, index=True
    )
    username: Mapped[str] = mapped_column(
        String(30), nullable=False, unique=True, index=True
    )
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    avatar: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    bio: Mapped[str] = mapped_column(Text, nullable=False, default="")
    phone: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    address: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    date_of_birth: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    country: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    city: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    profile_image: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    cover_image: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    social_links: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    preferences: Mapped[dict[str, Any]] = mapped_column(
        JSON, nullable=False, default=default_preferences
    )
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, name="user_role", native_enum=False),
        nullable=False,
        default=UserRole.USER,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<User(id={self.id!r}, username={self.username!r}, role={self.role!r})>"
