"""User (account) model. Owned by the identity subsystem; the trade engine only
reads and adjusts ``balance``."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, Numeric, DateTime, CheckConstraint
from sqlalchemy.orm import relationship

from papertrader.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, nullable=False, index=True)
    display_name = Column(String(255), nullable=False)
    balance = Column(Numeric(15, 2), nullable=False)
    created_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_users_balance_non_negative"),
    )

    # Relationships
    trades = relationship("Trade", back_populates="user")
    holdings = relationship("Holding", back_populates="user")
