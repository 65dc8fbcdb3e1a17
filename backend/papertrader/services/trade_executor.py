"""Trade executor — validates requests, prices them, and hands them to the
transaction coordinator.

Per trade: REQUESTED -> PRICED -> COMMITTED | REJECTED. The quote is fetched
before any transaction opens, so a slow or failing market data call never
holds a lock and never leaves anything behind.
"""

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import sessionmaker

from papertrader.config import settings
from papertrader.errors import TradeError, MarketDataUnavailable
from papertrader.models.trade import SIDE_BUY, SIDE_SELL
from papertrader.pricing import round2
from papertrader.schemas.trade import (
    HoldingResponse,
    PortfolioResponse,
    TradeExecutionResponse,
    TradeResponse,
)
from papertrader.services.account_store import AccountStore
from papertrader.services.market_data import MarketDataProvider, MarketStackProvider
from papertrader.services.portfolio_ledger import PortfolioLedger, holding_to_response
from papertrader.services.trade_journal import TradeJournal, trade_to_response
from papertrader.services.transaction_coordinator import TransactionCoordinator
from papertrader.validation import validate_symbol, validate_quantity, validate_idempotency_key

logger = logging.getLogger(__name__)


class TradeExecutor:
    def __init__(
        self,
        coordinator: TransactionCoordinator,
        session_factory: sessionmaker,
        market_data: MarketDataProvider,
        history_limit: Optional[int] = None,
    ):
        self.coordinator = coordinator
        self.session_factory = session_factory
        self.market_data = market_data
        self.history_limit = settings.TRADE_HISTORY_LIMIT if history_limit is None else history_limit

    def buy_stock(self, user_id: str, symbol: str, quantity: int,
                  idempotency_key: Optional[str] = None) -> TradeExecutionResponse:
        """Buy ``quantity`` shares at the live price.

        Returns the refreshed holding and the price used. Raises ValidationError,
        MarketDataUnavailable, InsufficientFunds, AccountNotFound or
        PersistenceError; none of them leave any persisted trace.
        """
        return self._execute(SIDE_BUY, user_id, symbol, quantity, idempotency_key)

    def sell_stock(self, user_id: str, symbol: str, quantity: int,
                   idempotency_key: Optional[str] = None) -> TradeExecutionResponse:
        """Sell ``quantity`` shares at the live price. Same contract as buy_stock,
        with InsufficientHoldings in place of InsufficientFunds."""
        return self._execute(SIDE_SELL, user_id, symbol, quantity, idempotency_key)

    def get_holdings(self, user_id: str) -> list[HoldingResponse]:
        """Open positions marked to market where a quote is available."""
        with self.session_factory() as db:
            snapshots = [holding_to_response(h) for h in PortfolioLedger(db).get_by_user(user_id)]

        # Quotes are fetched after the session is released
        return [self._mark_to_market(snapshot) for snapshot in snapshots]

    def get_trades(self, user_id: str, limit: Optional[int] = None) -> list[TradeResponse]:
        """Trade history, newest first."""
        limit = self.history_limit if limit is None else limit
        with self.session_factory() as db:
            return [trade_to_response(t) for t in TradeJournal(db).list_by_user(user_id, limit=limit)]

    def get_portfolio(self, user_id: str) -> PortfolioResponse:
        """Cash, open positions and recent trades in one summary."""
        with self.session_factory() as db:
            balance = AccountStore(db).get_balance(user_id)
        holdings = self.get_holdings(user_id)
        recent_trades = self.get_trades(user_id, limit=10)

        total_invested = round2(sum((h.total_cost for h in holdings), Decimal("0")))
        market_value = None
        if all(h.market_value is not None for h in holdings):
            market_value = round2(sum((h.market_value for h in holdings), Decimal("0")))

        return PortfolioResponse(
            balance=balance,
            total_invested=total_invested,
            market_value=market_value,
            holdings=holdings,
            recent_trades=recent_trades,
        )

    def _execute(self, side: str, user_id: str, symbol: str, quantity: int,
                 idempotency_key: Optional[str]) -> TradeExecutionResponse:
        try:
            symbol = validate_symbol(symbol)
            quantity = validate_quantity(quantity)
            idempotency_key = validate_idempotency_key(idempotency_key)

            price = self._fetch_price(symbol)

            if side == SIDE_BUY:
                return self.coordinator.run_buy(user_id, symbol, quantity, price, idempotency_key)
            return self.coordinator.run_sell(user_id, symbol, quantity, price, idempotency_key)
        except TradeError as e:
            logger.warning(f"Rejected {side} {quantity} {symbol} for user {user_id}: [{e.kind.value}] {e}")
            raise

    def _fetch_price(self, symbol: str) -> Decimal:
        """Live price rounded to cents. Collaborator failures become MarketDataUnavailable."""
        try:
            quote = self.market_data.get_price(symbol)
        except MarketDataUnavailable:
            raise
        except Exception as e:
            raise MarketDataUnavailable(symbol, f"{e.__class__.__name__}: {e}") from e

        try:
            price = round2(quote.price)
        except (TypeError, ValueError) as e:
            raise MarketDataUnavailable(symbol, "quote has no usable price") from e
        if price <= 0:
            raise MarketDataUnavailable(symbol, f"quote price {price} is not positive")
        return price

    def _mark_to_market(self, snapshot: HoldingResponse) -> HoldingResponse:
        try:
            price = self._fetch_price(snapshot.symbol)
        except MarketDataUnavailable as e:
            logger.warning(f"Showing {snapshot.symbol} without a live price: {e.reason}")
            return snapshot
        return holding_to_response(snapshot, price)


def build_trade_executor(session_factory: sessionmaker,
                         market_data: Optional[MarketDataProvider] = None) -> TradeExecutor:
    """Wire an executor and its coordinator to one session factory."""
    if market_data is None:
        market_data = MarketStackProvider()
    return TradeExecutor(TransactionCoordinator(session_factory), session_factory, market_data)
