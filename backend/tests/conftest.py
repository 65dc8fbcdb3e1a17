"""Shared fixtures: an in-memory store, a seeded account and a fake quote feed."""

import os
import sys
from decimal import Decimal

import pytest

# Keep the app's module-level engine off the filesystem
os.environ.setdefault("DATABASE_URL", "sqlite://")

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from papertrader.database import create_db_engine, create_session_factory, init_db
from papertrader.errors import MarketDataUnavailable
from papertrader.schemas.market import Quote
from papertrader.services.account_store import AccountStore
from papertrader.services.trade_executor import TradeExecutor
from papertrader.services.transaction_coordinator import TransactionCoordinator

USER_ID = "user-1"


class FakeMarketData:
    """Quote feed driven by a dict; symbols missing from it are unavailable."""

    def __init__(self, prices=None):
        self.prices = {k: Decimal(str(v)) for k, v in (prices or {}).items()}
        self.calls = []

    def set_price(self, symbol, price):
        self.prices[symbol] = Decimal(str(price))

    def get_price(self, symbol):
        self.calls.append(symbol)
        if symbol not in self.prices:
            raise MarketDataUnavailable(symbol, "no quote")
        return Quote(symbol=symbol, price=self.prices[symbol], as_of_date="01/05/2024")


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def make_account(session_factory):
    def _make(user_id=USER_ID, balance="10000.00"):
        with session_factory() as db, db.begin():
            AccountStore(db).create_account(
                email=f"{user_id}@example.com",
                display_name=user_id,
                balance=Decimal(balance),
                user_id=user_id,
            )
        return user_id

    return _make


@pytest.fixture
def account(make_account):
    return make_account()


@pytest.fixture
def market_data():
    return FakeMarketData({"AAPL": "150.00", "MSFT": "300.00", "XYZ": "150.00"})


@pytest.fixture
def coordinator(session_factory):
    return TransactionCoordinator(session_factory)


@pytest.fixture
def executor(coordinator, session_factory, market_data):
    return TradeExecutor(coordinator, session_factory, market_data)


@pytest.fixture
def balance_of(session_factory):
    def _balance(user_id=USER_ID):
        with session_factory() as db:
            return AccountStore(db).get_balance(user_id)

    return _balance
