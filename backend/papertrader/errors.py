"""Trade engine error taxonomy.

Every failure the engine reports carries a ``TradeErrorKind`` so the HTTP layer
can pick a status code without looking at message text.
"""

from enum import Enum
from typing import Optional


class TradeErrorKind(str, Enum):
    VALIDATION = "VALIDATION_ERROR"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    INSUFFICIENT_HOLDINGS = "INSUFFICIENT_HOLDINGS"
    MARKET_DATA_UNAVAILABLE = "MARKET_DATA_UNAVAILABLE"
    PERSISTENCE = "PERSISTENCE_ERROR"
    ACCOUNT_NOT_FOUND = "ACCOUNT_NOT_FOUND"


class TradeError(Exception):
    """Base class for errors raised by the trade engine."""

    kind: TradeErrorKind = TradeErrorKind.PERSISTENCE
    retryable: bool = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(TradeError):
    kind = TradeErrorKind.VALIDATION

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        if field:
            message = f"validation error for {field}: {message}"
        super().__init__(message)


class InsufficientFunds(TradeError):
    kind = TradeErrorKind.INSUFFICIENT_FUNDS

    def __init__(self, balance, required):
        self.balance = balance
        self.required = required
        super().__init__(f"Insufficient funds: have {balance}, need {required}")


class InsufficientHoldings(TradeError):
    kind = TradeErrorKind.INSUFFICIENT_HOLDINGS

    def __init__(self, symbol: str, held: int, requested: int):
        self.symbol = symbol
        self.held = held
        self.requested = requested
        super().__init__(
            f"Insufficient holdings of {symbol}: have {held}, need {requested}"
        )


class MarketDataUnavailable(TradeError):
    kind = TradeErrorKind.MARKET_DATA_UNAVAILABLE
    retryable = True

    def __init__(self, symbol: str, reason: str):
        self.symbol = symbol
        self.reason = reason
        super().__init__(f"Market data unavailable for {symbol}: {reason}")


class PersistenceError(TradeError):
    kind = TradeErrorKind.PERSISTENCE
    retryable = True


class AccountNotFound(TradeError):
    kind = TradeErrorKind.ACCOUNT_NOT_FOUND

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"Account {user_id} not found")
