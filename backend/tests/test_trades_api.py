"""Tests for the HTTP boundary: status codes per error kind and response shapes."""

import pytest
import sys
import os

from fastapi.testclient import TestClient

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from papertrader.main import app
from papertrader.middleware.auth import create_access_token
from papertrader.routers.trades import get_trade_executor


@pytest.fixture
def client(executor):
    app.dependency_overrides[get_trade_executor] = lambda: executor
    yield TestClient(app)
    app.dependency_overrides.clear()


def _auth(user_id):
    return {"Authorization": f"Bearer {create_access_token({'sub': user_id})}"}


class TestTradeEndpoints:
    def test_buy(self, client, account):
        res = client.post("/api/trades/buy", json={"symbol": "AAPL", "quantity": 10}, headers=_auth(account))
        assert res.status_code == 200
        body = res.json()
        assert body["holding"]["quantity"] == 10
        assert body["price"] == "150.00"
        assert body["balance"] == "8500.00"
        assert body["replayed"] is False

    def test_sell_without_holding_is_400(self, client, account):
        res = client.post("/api/trades/sell", json={"symbol": "AAPL", "quantity": 1}, headers=_auth(account))
        assert res.status_code == 400
        assert res.json()["detail"]["error_code"] == "INSUFFICIENT_HOLDINGS"

    def test_insufficient_funds_is_400(self, client, account):
        res = client.post("/api/trades/buy", json={"symbol": "MSFT", "quantity": 1000}, headers=_auth(account))
        assert res.status_code == 400
        assert res.json()["detail"]["error_code"] == "INSUFFICIENT_FUNDS"

    def test_validation_is_400(self, client, account):
        res = client.post("/api/trades/buy", json={"symbol": "AAPL", "quantity": 0}, headers=_auth(account))
        assert res.status_code == 400
        assert res.json()["detail"]["error_code"] == "VALIDATION_ERROR"

    def test_market_data_outage_is_503(self, client, account):
        res = client.post("/api/trades/buy", json={"symbol": "NOPE", "quantity": 1}, headers=_auth(account))
        assert res.status_code == 503
        assert res.json()["detail"]["error_code"] == "MARKET_DATA_UNAVAILABLE"

    def test_unknown_account_is_404(self, client, account):
        res = client.post("/api/trades/buy", json={"symbol": "AAPL", "quantity": 1}, headers=_auth("ghost"))
        assert res.status_code == 404

    def test_idempotency_header_replays(self, client, account):
        headers = {**_auth(account), "Idempotency-Key": "order-42"}
        first = client.post("/api/trades/buy", json={"symbol": "AAPL", "quantity": 2}, headers=headers)
        second = client.post("/api/trades/buy", json={"symbol": "AAPL", "quantity": 2}, headers=headers)
        assert first.json()["trade"]["id"] == second.json()["trade"]["id"]
        assert second.json()["replayed"] is True
        assert second.json()["balance"] == "9700.00"

    def test_missing_token_rejected(self, client, account):
        res = client.post("/api/trades/buy", json={"symbol": "AAPL", "quantity": 1})
        assert res.status_code in (401, 403)

    def test_bad_token_rejected(self, client, account):
        res = client.get("/api/holdings/my", headers={"Authorization": "Bearer not-a-jwt"})
        assert res.status_code == 401


class TestReadEndpoints:
    def test_holdings_trades_and_portfolio(self, client, account):
        client.post("/api/trades/buy", json={"symbol": "AAPL", "quantity": 10}, headers=_auth(account))

        holdings = client.get("/api/holdings/my", headers=_auth(account)).json()
        assert holdings[0]["symbol"] == "AAPL"
        assert holdings[0]["current_price"] == "150.00"

        trades = client.get("/api/trades/my", headers=_auth(account)).json()
        assert trades[0]["side"] == "BUY"

        portfolio = client.get("/api/portfolio/my", headers=_auth(account)).json()
        assert portfolio["balance"] == "8500.00"
        assert portfolio["total_invested"] == "1500.00"

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}
