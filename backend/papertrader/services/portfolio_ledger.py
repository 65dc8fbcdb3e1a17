"""Portfolio ledger — per-(user, symbol) positions with weighted-average cost basis."""

from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from papertrader.errors import InsufficientHoldings
from papertrader.models.holding import Holding
from papertrader.pricing import round2, weighted_average_cost, position_value, unrealized_pnl
from papertrader.schemas.trade import HoldingResponse


class PortfolioLedger:
    def __init__(self, db: Session):
        self.db = db

    def get_by_symbol(self, user_id: str, symbol: str, for_update: bool = False) -> Optional[Holding]:
        query = self.db.query(Holding).filter(Holding.user_id == user_id, Holding.symbol == symbol)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def get_by_user(self, user_id: str) -> list[Holding]:
        """All open positions of a user, ordered by symbol. Read-only."""
        return (
            self.db.query(Holding)
            .filter(Holding.user_id == user_id, Holding.quantity > 0)
            .order_by(Holding.symbol)
            .all()
        )

    def upsert_on_buy(self, user_id: str, symbol: str, quantity: int, price: Decimal) -> Holding:
        """Add bought shares, re-averaging the cost basis."""
        holding = self.get_by_symbol(user_id, symbol, for_update=True)
        held_quantity = holding.quantity if holding else 0
        held_avg_cost = holding.avg_cost if holding else Decimal("0")

        new_quantity, new_avg_cost = weighted_average_cost(
            held_quantity, held_avg_cost, quantity, price
        )

        if holding:
            holding.quantity = new_quantity
            holding.avg_cost = new_avg_cost
        else:
            holding = Holding(
                user_id=user_id,
                symbol=symbol,
                quantity=new_quantity,
                avg_cost=new_avg_cost,
            )
            self.db.add(holding)

        self.db.flush()
        return holding

    def upsert_on_sell(self, user_id: str, symbol: str, quantity: int) -> Optional[Holding]:
        """Remove sold shares. The cost basis is left as it was.

        Returns the updated holding, or None when the position was closed and
        its row deleted. Raises InsufficientHoldings without touching anything
        when the user holds fewer than ``quantity`` shares.
        """
        holding = self.get_by_symbol(user_id, symbol, for_update=True)
        held_quantity = holding.quantity if holding else 0
        if quantity > held_quantity:
            raise InsufficientHoldings(symbol, held_quantity, quantity)

        new_quantity = held_quantity - quantity
        if new_quantity == 0:
            self.db.delete(holding)
            self.db.flush()
            return None

        holding.quantity = new_quantity
        self.db.flush()
        return holding


def holding_to_response(holding, current_price: Optional[Decimal] = None) -> HoldingResponse:
    """Snapshot a holding row, marking it to ``current_price`` when one is known."""
    avg_cost = round2(holding.avg_cost)
    response = HoldingResponse(
        user_id=holding.user_id,
        symbol=holding.symbol,
        quantity=holding.quantity,
        avg_cost=avg_cost,
        total_cost=position_value(holding.quantity, avg_cost),
        created_at=holding.created_at,
        updated_at=holding.updated_at,
    )
    if current_price is not None:
        response.current_price = round2(current_price)
        response.market_value = position_value(holding.quantity, current_price)
        response.unrealized_pnl = unrealized_pnl(holding.quantity, avg_cost, current_price)
    return response


def closed_position_response(user_id: str, symbol: str, avg_cost: Decimal,
                             current_price: Optional[Decimal] = None) -> HoldingResponse:
    """Response for a position that a sell just closed (its row no longer exists)."""
    response = HoldingResponse(
        user_id=user_id,
        symbol=symbol,
        quantity=0,
        avg_cost=round2(avg_cost),
        total_cost=Decimal("0.00"),
    )
    if current_price is not None:
        response.current_price = round2(current_price)
        response.market_value = Decimal("0.00")
        response.unrealized_pnl = Decimal("0.00")
    return response
