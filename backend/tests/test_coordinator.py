"""Tests for the transaction coordinator: atomic commits, rollbacks and replays."""

import pytest
import sys
import os
from decimal import Decimal

from sqlalchemy.exc import OperationalError

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from papertrader.errors import (
    AccountNotFound, InsufficientFunds, InsufficientHoldings, PersistenceError, ValidationError,
    TradeErrorKind,
)
from papertrader.models.holding import Holding
from papertrader.models.trade import Trade
from papertrader.services.portfolio_ledger import PortfolioLedger
from papertrader.services.trade_journal import TradeJournal
from papertrader.services.transaction_coordinator import TransactionCoordinator


class FailingJournal(TradeJournal):
    """Journal whose insert fails the way a lost connection would."""

    def append(self, *args, **kwargs):
        raise OperationalError("INSERT INTO trades", {}, Exception("connection lost"))


class InterruptedLedger(PortfolioLedger):
    """Ledger that is cut off mid-write, e.g. by a request timeout."""

    def upsert_on_sell(self, user_id, symbol, quantity):
        super().upsert_on_sell(user_id, symbol, quantity)
        raise TimeoutError("request deadline exceeded")


def _counts(session_factory):
    with session_factory() as db:
        return db.query(Holding).count(), db.query(Trade).count()


class TestCommit:
    """Successful trades write all three records."""

    def test_buy_commits_everything(self, coordinator, session_factory, account, balance_of):
        result = coordinator.run_buy(account, "AAPL", 10, Decimal("150.00"))

        assert result.balance == Decimal("8500.00")
        assert result.holding.quantity == 10
        assert result.holding.avg_cost == Decimal("150.00")
        assert result.trade.side == "BUY"
        assert result.trade.status == "COMPLETED"
        assert balance_of() == Decimal("8500.00")
        assert _counts(session_factory) == (1, 1)

    def test_sell_closing_position_reports_exited_basis(self, coordinator, account, balance_of):
        coordinator.run_buy(account, "AAPL", 10, Decimal("150.00"))
        result = coordinator.run_sell(account, "AAPL", 10, Decimal("170.00"))

        assert result.holding.quantity == 0
        assert result.holding.avg_cost == Decimal("150.00")
        assert result.balance == Decimal("10200.00")
        assert balance_of() == Decimal("10200.00")

    def test_price_is_rounded_to_cents(self, coordinator, account):
        result = coordinator.run_buy(account, "AAPL", 3, Decimal("33.3349"))
        assert result.price == Decimal("33.33")
        assert result.balance == Decimal("9900.01")

    def test_non_positive_price_rejected(self, coordinator, account):
        with pytest.raises(ValidationError):
            coordinator.run_buy(account, "AAPL", 1, Decimal("0"))


class TestRollback:
    """Nothing is observable after a failed trade."""

    def test_insufficient_funds_leaves_no_trace(self, coordinator, session_factory, make_account, balance_of):
        user_id = make_account("poor", balance="100.00")
        with pytest.raises(InsufficientFunds):
            coordinator.run_buy(user_id, "XYZ", 100, Decimal("150.00"))
        assert balance_of(user_id) == Decimal("100.00")
        assert _counts(session_factory) == (0, 0)

    def test_insufficient_holdings_leaves_balance(self, coordinator, account, balance_of):
        with pytest.raises(InsufficientHoldings):
            coordinator.run_sell(account, "AAPL", 1, Decimal("150.00"))
        assert balance_of() == Decimal("10000.00")

    def test_journal_failure_rolls_back_debit_and_holding(self, session_factory, account, balance_of):
        coordinator = TransactionCoordinator(session_factory, journal_cls=FailingJournal)

        with pytest.raises(PersistenceError) as exc:
            coordinator.run_buy(account, "AAPL", 10, Decimal("150.00"))

        assert exc.value.kind == TradeErrorKind.PERSISTENCE
        assert exc.value.retryable
        assert isinstance(exc.value.__cause__, OperationalError)
        assert balance_of() == Decimal("10000.00")
        assert _counts(session_factory) == (0, 0)

    def test_interruption_mid_sell_rolls_back(self, coordinator, session_factory, account, balance_of):
        coordinator.run_buy(account, "AAPL", 10, Decimal("150.00"))
        interrupted = TransactionCoordinator(session_factory, ledger_cls=InterruptedLedger)

        with pytest.raises(TimeoutError):
            interrupted.run_sell(account, "AAPL", 10, Decimal("170.00"))

        assert balance_of() == Decimal("8500.00")
        with session_factory() as db:
            holding = db.query(Holding).one()
            assert holding.quantity == 10
            assert db.query(Trade).count() == 1

    def test_unknown_account(self, coordinator, account):
        with pytest.raises(AccountNotFound):
            coordinator.run_buy("nobody", "AAPL", 1, Decimal("150.00"))


class TestIdempotency:
    """Client-supplied keys make retries safe."""

    def test_same_key_is_not_executed_twice(self, coordinator, session_factory, account, balance_of):
        first = coordinator.run_buy(account, "AAPL", 10, Decimal("150.00"), idempotency_key="req-1")
        again = coordinator.run_buy(account, "AAPL", 10, Decimal("155.00"), idempotency_key="req-1")

        assert not first.replayed
        assert again.replayed
        assert again.trade.id == first.trade.id
        assert again.price == Decimal("150.00")
        assert balance_of() == Decimal("8500.00")
        assert _counts(session_factory) == (1, 1)

    def test_key_reused_for_other_trade_rejected(self, coordinator, account):
        coordinator.run_buy(account, "AAPL", 10, Decimal("150.00"), idempotency_key="req-1")
        with pytest.raises(ValidationError):
            coordinator.run_sell(account, "AAPL", 10, Decimal("150.00"), idempotency_key="req-1")

    def test_keys_are_scoped_per_user(self, coordinator, make_account, account):
        other = make_account("user-2")
        coordinator.run_buy(account, "AAPL", 1, Decimal("150.00"), idempotency_key="req-1")
        result = coordinator.run_buy(other, "AAPL", 1, Decimal("150.00"), idempotency_key="req-1")
        assert not result.replayed
