"""Trades router — buy/sell execution, holdings, history, and portfolio."""

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from papertrader.database import SessionLocal
from papertrader.errors import TradeError, TradeErrorKind
from papertrader.middleware.auth import get_current_user_id
from papertrader.schemas.trade import (
    TradeRequest,
    TradeExecutionResponse,
    TradeResponse,
    HoldingResponse,
    PortfolioResponse,
)
from papertrader.services.trade_executor import TradeExecutor, build_trade_executor

router = APIRouter(prefix="/api", tags=["trades"])

_STATUS_BY_KIND = {
    TradeErrorKind.VALIDATION: 400,
    TradeErrorKind.INSUFFICIENT_FUNDS: 400,
    TradeErrorKind.INSUFFICIENT_HOLDINGS: 400,
    TradeErrorKind.ACCOUNT_NOT_FOUND: 404,
    TradeErrorKind.MARKET_DATA_UNAVAILABLE: 503,
    TradeErrorKind.PERSISTENCE: 500,
}

_executor: Optional[TradeExecutor] = None


def get_trade_executor() -> TradeExecutor:
    """FastAPI dependency; one executor per process, built on first use."""
    global _executor
    if _executor is None:
        _executor = build_trade_executor(SessionLocal)
    return _executor


def _to_http_error(e: TradeError) -> HTTPException:
    return HTTPException(
        status_code=_STATUS_BY_KIND.get(e.kind, 500),
        detail={"error_code": e.kind.value, "message": e.message},
    )


@router.post("/trades/buy", response_model=TradeExecutionResponse)
def buy_stock(
    req: TradeRequest,
    idempotency_key: Optional[str] = Header(default=None),
    user_id: str = Depends(get_current_user_id),
    executor: TradeExecutor = Depends(get_trade_executor),
):
    """Buy shares at the live market price."""
    try:
        return executor.buy_stock(user_id, req.symbol, req.quantity, idempotency_key)
    except TradeError as e:
        raise _to_http_error(e)


@router.post("/trades/sell", response_model=TradeExecutionResponse)
def sell_stock(
    req: TradeRequest,
    idempotency_key: Optional[str] = Header(default=None),
    user_id: str = Depends(get_current_user_id),
    executor: TradeExecutor = Depends(get_trade_executor),
):
    """Sell held shares at the live market price."""
    try:
        return executor.sell_stock(user_id, req.symbol, req.quantity, idempotency_key)
    except TradeError as e:
        raise _to_http_error(e)


@router.get("/holdings/my", response_model=list[HoldingResponse])
def my_holdings(
    user_id: str = Depends(get_current_user_id),
    executor: TradeExecutor = Depends(get_trade_executor),
):
    """Get current user's open positions with live prices where available."""
    return executor.get_holdings(user_id)


@router.get("/trades/my", response_model=list[TradeResponse])
def my_trades(
    user_id: str = Depends(get_current_user_id),
    executor: TradeExecutor = Depends(get_trade_executor),
):
    """Get current user's trade history."""
    return executor.get_trades(user_id)


@router.get("/portfolio/my", response_model=PortfolioResponse)
def my_portfolio(
    user_id: str = Depends(get_current_user_id),
    executor: TradeExecutor = Depends(get_trade_executor),
):
    """Get current user's cash, positions and recent trades."""
    try:
        return executor.get_portfolio(user_id)
    except TradeError as e:
        raise _to_http_error(e)
