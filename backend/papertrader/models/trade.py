"""Trade model — immutable audit record of every executed trade."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column, String, Integer, Numeric, DateTime, ForeignKey, UniqueConstraint, CheckConstraint,
)
from sqlalchemy.orm import relationship

from papertrader.database import Base

SIDE_BUY = "BUY"
SIDE_SELL = "SELL"

STATUS_PENDING = "PENDING"
STATUS_COMPLETED = "COMPLETED"
STATUS_FAILED = "FAILED"


class Trade(Base):
    __tablename__ = "trades"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    symbol = Column(String(13), nullable=False)
    side = Column(String(4), nullable=False)  # BUY | SELL
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(15, 2), nullable=False)
    status = Column(String(10), nullable=False, default=STATUS_PENDING)  # PENDING | COMPLETED | FAILED
    # Client-supplied token; a retried request with the same key is not re-executed
    idempotency_key = Column(String(64), nullable=True)
    timestamp = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        UniqueConstraint("user_id", "idempotency_key", name="uq_trades_user_idempotency_key"),
        CheckConstraint("quantity > 0", name="ck_trades_quantity_positive"),
        CheckConstraint("price > 0", name="ck_trades_price_positive"),
    )

    # Relationships
    user = relationship("User", back_populates="trades")
