"""Transaction coordinator — runs a trade's balance, position and journal writes
as one all-or-nothing unit.

Lock order inside every scope is: the user's account row, then the holding
row. Taking the account row first serialises all trades of one user, which
also covers the first buy of a symbol when no holding row exists yet to lock.
"""

import logging
from decimal import Decimal
from typing import Callable, Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from papertrader.errors import PersistenceError, ValidationError
from papertrader.models.trade import SIDE_BUY, SIDE_SELL
from papertrader.pricing import round2, trade_total
from papertrader.schemas.trade import TradeExecutionResponse
from papertrader.services.account_store import AccountStore
from papertrader.services.balance_guard import BalanceGuard
from papertrader.services.portfolio_ledger import (
    PortfolioLedger,
    holding_to_response,
    closed_position_response,
)
from papertrader.services.trade_journal import TradeJournal, trade_to_response

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TradeScope:
    """The components of one trade, all bound to the same transaction."""

    def __init__(self, db: Session, accounts: AccountStore, balances: BalanceGuard,
                 ledger: PortfolioLedger, journal: TradeJournal):
        self.db = db
        self.accounts = accounts
        self.balances = balances
        self.ledger = ledger
        self.journal = journal


class TransactionCoordinator:
    def __init__(
        self,
        session_factory: sessionmaker,
        accounts_cls=AccountStore,
        balance_guard_cls=BalanceGuard,
        ledger_cls=PortfolioLedger,
        journal_cls=TradeJournal,
    ):
        self.session_factory = session_factory
        self.accounts_cls = accounts_cls
        self.balance_guard_cls = balance_guard_cls
        self.ledger_cls = ledger_cls
        self.journal_cls = journal_cls

    def run_buy(self, user_id: str, symbol: str, quantity: int, price: Decimal,
                idempotency_key: Optional[str] = None) -> TradeExecutionResponse:
        """Debit the cost, add the shares, journal the BUY. Commits all or nothing."""
        price = self._execution_price(price)
        total = trade_total(price, quantity)

        def operation(scope: TradeScope) -> TradeExecutionResponse:
            replay = self._replay(scope, user_id, SIDE_BUY, symbol, quantity, idempotency_key)
            if replay is not None:
                return replay

            balance = scope.balances.debit(user_id, total)
            holding = scope.ledger.upsert_on_buy(user_id, symbol, quantity, price)
            trade = scope.journal.append(user_id, symbol, SIDE_BUY, quantity, price, idempotency_key)
            return TradeExecutionResponse(
                holding=holding_to_response(holding, price),
                trade=trade_to_response(trade),
                price=price,
                balance=balance,
            )

        result = self._run(user_id, operation)
        self._log_commit(result)
        return result

    def run_sell(self, user_id: str, symbol: str, quantity: int, price: Decimal,
                 idempotency_key: Optional[str] = None) -> TradeExecutionResponse:
        """Remove the shares, credit the proceeds, journal the SELL. Commits all or nothing."""
        price = self._execution_price(price)
        proceeds = trade_total(price, quantity)

        def operation(scope: TradeScope) -> TradeExecutionResponse:
            replay = self._replay(scope, user_id, SIDE_SELL, symbol, quantity, idempotency_key)
            if replay is not None:
                return replay

            existing = scope.ledger.get_by_symbol(user_id, symbol, for_update=True)
            exited_avg_cost = existing.avg_cost if existing else Decimal("0")

            # Holdings are checked before any cash moves
            holding = scope.ledger.upsert_on_sell(user_id, symbol, quantity)
            balance = scope.balances.credit(user_id, proceeds)
            trade = scope.journal.append(user_id, symbol, SIDE_SELL, quantity, price, idempotency_key)

            if holding is None:
                holding_response = closed_position_response(user_id, symbol, exited_avg_cost, price)
            else:
                holding_response = holding_to_response(holding, price)
            return TradeExecutionResponse(
                holding=holding_response,
                trade=trade_to_response(trade),
                price=price,
                balance=balance,
            )

        result = self._run(user_id, operation)
        self._log_commit(result)
        return result

    def _run(self, user_id: str, operation: Callable[[TradeScope], T]) -> T:
        """Run ``operation`` in one transaction holding the user's account lock.

        Any exception rolls the whole transaction back. Store failures surface
        as PersistenceError; engine errors (and anything else, such as a
        cancellation) propagate unchanged.
        """
        db = self.session_factory()
        try:
            with db.begin():
                accounts = self.accounts_cls(db)
                accounts.get_user(user_id, for_update=True)
                scope = TradeScope(
                    db=db,
                    accounts=accounts,
                    balances=self.balance_guard_cls(accounts),
                    ledger=self.ledger_cls(db),
                    journal=self.journal_cls(db),
                )
                return operation(scope)
        except SQLAlchemyError as e:
            logger.error(f"Trade transaction for user {user_id} rolled back: {e}")
            raise PersistenceError(f"Trade could not be saved: {e.__class__.__name__}") from e
        finally:
            db.close()

    def _replay(self, scope: TradeScope, user_id: str, side: str, symbol: str, quantity: int,
                idempotency_key: Optional[str]) -> Optional[TradeExecutionResponse]:
        """Return the earlier outcome when this idempotency key was already executed."""
        if idempotency_key is None:
            return None
        previous = scope.journal.find_by_idempotency_key(user_id, idempotency_key)
        if previous is None:
            return None
        if (previous.side, previous.symbol, previous.quantity) != (side, symbol, quantity):
            raise ValidationError(
                "idempotency key was already used for a different trade",
                field="idempotency_key",
            )

        holding = scope.ledger.get_by_symbol(user_id, symbol)
        if holding is None:
            # Basis of a since-closed position is gone
            holding_response = closed_position_response(user_id, symbol, Decimal("0"), previous.price)
        else:
            holding_response = holding_to_response(holding, previous.price)

        logger.info(f"Replayed trade {previous.id} for idempotency key {idempotency_key}")
        return TradeExecutionResponse(
            holding=holding_response,
            trade=trade_to_response(previous),
            price=round2(previous.price),
            balance=scope.accounts.get_balance(user_id),
            replayed=True,
        )

    @staticmethod
    def _execution_price(price) -> Decimal:
        price = round2(price)
        if price <= 0:
            raise ValidationError("execution price must be positive", field="price")
        return price

    @staticmethod
    def _log_commit(result: TradeExecutionResponse) -> None:
        if result.replayed:
            return
        trade = result.trade
        logger.info(
            f"Committed {trade.side} {trade.quantity} {trade.symbol} @ {trade.price} "
            f"for user {trade.user_id} (total {trade.total}, balance {result.balance})"
        )
