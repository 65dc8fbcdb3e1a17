"""Trade journal — append-only record of executed trades."""

from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from papertrader.models.trade import Trade, SIDE_BUY, SIDE_SELL, STATUS_PENDING, STATUS_COMPLETED
from papertrader.pricing import round2, trade_total
from papertrader.schemas.trade import TradeResponse


class TradeJournal:
    def __init__(self, db: Session):
        self.db = db

    def append(
        self,
        user_id: str,
        symbol: str,
        side: str,
        quantity: int,
        price: Decimal,
        idempotency_key: Optional[str] = None,
    ) -> Trade:
        """Insert a trade record and mark it COMPLETED.

        The record passes through PENDING and reaches COMPLETED before the
        surrounding transaction commits, so no PENDING row is ever visible.
        """
        if side not in (SIDE_BUY, SIDE_SELL):
            raise ValueError(f"Unknown trade side {side!r}")

        trade = Trade(
            user_id=user_id,
            symbol=symbol,
            side=side,
            quantity=quantity,
            price=round2(price),
            status=STATUS_PENDING,
            idempotency_key=idempotency_key,
        )
        self.db.add(trade)
        self.db.flush()

        trade.status = STATUS_COMPLETED
        self.db.flush()
        return trade

    def find_by_idempotency_key(self, user_id: str, key: str) -> Optional[Trade]:
        return (
            self.db.query(Trade)
            .filter(Trade.user_id == user_id, Trade.idempotency_key == key)
            .first()
        )

    def list_by_user(self, user_id: str, limit: int = 50) -> list[Trade]:
        """Most recent trades first."""
        return (
            self.db.query(Trade)
            .filter(Trade.user_id == user_id)
            .order_by(Trade.timestamp.desc(), Trade.id.desc())
            .limit(limit)
            .all()
        )


def trade_to_response(trade: Trade) -> TradeResponse:
    return TradeResponse(
        id=trade.id,
        user_id=trade.user_id,
        symbol=trade.symbol,
        side=trade.side,
        quantity=trade.quantity,
        price=round2(trade.price),
        total=trade_total(trade.price, trade.quantity),
        status=trade.status,
        timestamp=trade.timestamp,
    )
