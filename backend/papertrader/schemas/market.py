"""Market data schemas."""

from decimal import Decimal

from pydantic import BaseModel


class Quote(BaseModel):
    symbol: str
    price: Decimal
    as_of_date: str  # MM/DD/YYYY, as reported by the provider
