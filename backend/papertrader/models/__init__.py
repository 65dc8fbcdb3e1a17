"""SQLAlchemy ORM models."""

from papertrader.models.user import User
from papertrader.models.holding import Holding
from papertrader.models.trade import Trade

__all__ = [
    "User",
    "Holding",
    "Trade",
]
