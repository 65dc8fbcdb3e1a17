"""Holding model — one row per (user, symbol) with a weighted-average cost basis.

Rows are only written by the portfolio ledger inside a trade transaction and
exist only while ``quantity > 0``.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column, String, Integer, Numeric, DateTime, ForeignKey, UniqueConstraint, CheckConstraint,
)
from sqlalchemy.orm import relationship

from papertrader.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class Holding(Base):
    __tablename__ = "holdings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    symbol = Column(String(13), nullable=False)
    quantity = Column(Integer, nullable=False)
    avg_cost = Column(Numeric(15, 2), nullable=False)
    created_at = Column(DateTime, nullable=False, default=_utcnow)
    updated_at = Column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "symbol", name="uq_holdings_user_symbol"),
        CheckConstraint("quantity > 0", name="ck_holdings_quantity_positive"),
        CheckConstraint("avg_cost >= 0", name="ck_holdings_avg_cost_non_negative"),
    )

    # Relationships
    user = relationship("User", back_populates="holdings")
