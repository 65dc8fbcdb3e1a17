"""Input validation for trade requests. Runs before any I/O."""

import re

from papertrader.config import settings
from papertrader.errors import ValidationError

# 1-10 letters, optionally a class suffix such as BRK.B
SYMBOL_PATTERN = re.compile(r"^[A-Z]{1,10}(\.[A-Z]{1,2})?$")


def sanitize_string(value: str) -> str:
    """Strip null bytes and control characters, then surrounding whitespace."""
    value = value.replace("\x00", "")
    cleaned = "".join(ch for ch in value if ch >= " " or ch in "\n\t\r")
    return cleaned.strip()


def validate_symbol(symbol) -> str:
    """Return the normalised (upper-case) ticker or raise ValidationError."""
    if not isinstance(symbol, str):
        raise ValidationError("symbol must be a string", field="symbol")
    normalized = sanitize_string(symbol).upper()
    if not SYMBOL_PATTERN.match(normalized):
        raise ValidationError(
            "invalid stock symbol format, expected 1-10 letters optionally "
            "followed by . and 1-2 letters (e.g. AAPL, BRK.B)",
            field="symbol",
        )
    return normalized


def validate_quantity(quantity, min_quantity: int = None, max_quantity: int = None) -> int:
    """Check that quantity is an integer share count within configured bounds."""
    min_quantity = settings.MIN_TRADE_QUANTITY if min_quantity is None else min_quantity
    max_quantity = settings.MAX_TRADE_QUANTITY if max_quantity is None else max_quantity

    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be a whole number of shares", field="quantity")
    if quantity < min_quantity:
        raise ValidationError(f"quantity must be at least {min_quantity}", field="quantity")
    if quantity > max_quantity:
        raise ValidationError(f"quantity cannot exceed {max_quantity}", field="quantity")
    return quantity


def validate_idempotency_key(key):
    """Allow None or a short printable token."""
    if key is None:
        return None
    if not isinstance(key, str):
        raise ValidationError("idempotency key must be a string", field="idempotency_key")
    key = sanitize_string(key)
    if not key or len(key) > 64:
        raise ValidationError(
            "idempotency key must be 1-64 printable characters", field="idempotency_key"
        )
    return key
