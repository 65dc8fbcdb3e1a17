"""Trade request/response schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel


class TradeRequest(BaseModel):
    symbol: str
    quantity: int


class TradeResponse(BaseModel):
    id: str
    user_id: str
    symbol: str
    side: str
    quantity: int
    price: Decimal
    total: Decimal
    status: str
    timestamp: datetime


class HoldingResponse(BaseModel):
    user_id: str
    symbol: str
    quantity: int
    avg_cost: Decimal
    total_cost: Decimal  # avg_cost * quantity
    # Live-price fields stay empty when the quote lookup fails
    current_price: Optional[Decimal] = None
    market_value: Optional[Decimal] = None
    unrealized_pnl: Optional[Decimal] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TradeExecutionResponse(BaseModel):
    holding: HoldingResponse
    trade: TradeResponse
    price: Decimal  # price the trade executed at
    balance: Decimal  # cash balance after the trade
    replayed: bool = False  # idempotency key matched an earlier trade


class PortfolioResponse(BaseModel):
    balance: Decimal
    total_invested: Decimal
    market_value: Optional[Decimal] = None
    holdings: list[HoldingResponse]
    recent_trades: list[TradeResponse]
