"""Input validation for account and holding data.

Each validator returns a ``ValidationResult``. Violations accumulate in the
order the rules are checked; a validator never stops at the first problem,
so callers can report everything that is wrong with a request at once.
"""

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Optional

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]+$")

PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_LENGTH = 100
USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 30
SYMBOL_MAX_LENGTH = 10
NAME_MAX_LENGTH = 100


@dataclass
class ValidationResult:
    errors: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def combine(*results: ValidationResult) -> ValidationResult:
    """Merge several results, keeping the order of their messages."""
    merged = ValidationResult()
    for result in results:
        merged.errors.extend(result.errors)
    return merged


def validate_email(email: Optional[str]) -> ValidationResult:
    result = ValidationResult()
    if not email:
        result.errors.append("Email is required")
    elif not EMAIL_PATTERN.match(email):
        result.errors.append("Invalid email format")
    return result


def validate_password(password: Optional[str]) -> ValidationResult:
    result = ValidationResult()
    if not password:
        result.errors.append("Password is required")
        return result
    if len(password) < PASSWORD_MIN_LENGTH:
        result.errors.append(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long")
    if len(password) > PASSWORD_MAX_LENGTH:
        result.errors.append(f"Password must be at most {PASSWORD_MAX_LENGTH} characters long")
    return result


def validate_username(username: Optional[str]) -> ValidationResult:
    result = ValidationResult()
    if not username:
        result.errors.append("Username is required")
        return result
    if len(username) < USERNAME_MIN_LENGTH:
        result.errors.append(f"Username must be at least {USERNAME_MIN_LENGTH} characters long")
    if len(username) > USERNAME_MAX_LENGTH:
        result.errors.append(f"Username must be at most {USERNAME_MAX_LENGTH} characters long")
    if not USERNAME_PATTERN.match(username):
        result.errors.append("Username can only contain letters, numbers, and underscores")
    return result


# ---------------------------------------------------------------------------
# Holdings
# ---------------------------------------------------------------------------


def _check_symbol(symbol: Optional[str], errors: list[str]) -> None:
    if symbol is None or not symbol.strip():
        errors.append("Coin symbol is required")
    elif len(symbol.strip()) > SYMBOL_MAX_LENGTH:
        errors.append(f"Coin symbol must be at most {SYMBOL_MAX_LENGTH} characters")


def _check_name(name: Optional[str], errors: list[str]) -> None:
    if name is None or not name.strip():
        errors.append("Coin name is required")
    elif len(name.strip()) > NAME_MAX_LENGTH:
        errors.append(f"Coin name must be at most {NAME_MAX_LENGTH} characters")


def _check_quantity(quantity: Optional[float], errors: list[str]) -> None:
    if quantity is None:
        errors.append("Quantity is required")
    elif not math.isfinite(quantity):
        errors.append("Quantity must be a finite number")
    elif quantity <= 0:
        errors.append("Quantity must be greater than 0")


def _check_average_buy_price(price: Optional[float], errors: list[str]) -> None:
    if price is None:
        errors.append("Average buy price is required")
    elif not math.isfinite(price):
        errors.append("Average buy price must be a finite number")
    elif price <= 0:
        errors.append("Average buy price must be greater than 0")


def _check_current_price(price: Optional[float], errors: list[str]) -> None:
    if price is None:
        return
    if not math.isfinite(price):
        errors.append("Current price must be a finite number")
    elif price < 0:
        errors.append("Current price cannot be negative")


def validate_coin(
    symbol: Optional[str] = None,
    name: Optional[str] = None,
    quantity: Optional[float] = None,
    average_buy_price: Optional[float] = None,
    current_price: Optional[float] = None,
) -> ValidationResult:
    """Validate the fields required to record a new holding."""
    result = ValidationResult()
    _check_symbol(symbol, result.errors)
    _check_name(name, result.errors)
    _check_quantity(quantity, result.errors)
    _check_average_buy_price(average_buy_price, result.errors)
    _check_current_price(current_price, result.errors)
    if not result.errors:
        result.errors.extend(validate_position(quantity, average_buy_price, current_price).errors)
    return result


def validate_position(
    quantity: float,
    average_buy_price: float,
    current_price: Optional[float] = None,
) -> ValidationResult:
    """Check that the amounts derived from already-valid inputs stay finite."""
    result = ValidationResult()
    if not math.isfinite(quantity * average_buy_price):
        result.errors.append("Total invested is too large")
    if current_price is not None and not math.isfinite(quantity * current_price):
        result.errors.append("Current value is too large")
    return result


_UPDATE_CHECKS = (
    ("symbol", _check_symbol),
    ("name", _check_name),
    ("quantity", _check_quantity),
    ("average_buy_price", _check_average_buy_price),
    ("current_price", _check_current_price),
)


def validate_coin_update(fields: Mapping[str, Any]) -> ValidationResult:
    """Validate only the holding fields present in a partial update.

    An explicit ``None`` for symbol, name, quantity or average buy price is
    a violation; ``None`` for the current price clears the price.
    """
    result = ValidationResult()
    for key, check in _UPDATE_CHECKS:
        if key in fields:
            check(fields[key], result.errors)
    return result


def validate_top_up(quantity: Optional[float], price: Optional[float]) -> ValidationResult:
    result = ValidationResult()
    _check_quantity(quantity, result.errors)
    if price is None:
        result.errors.append("Price is required")
    elif not math.isfinite(price):
        result.errors.append("Price must be a finite number")
    elif price <= 0:
        result.errors.append("Price must be greater than 0")
    return result
