"""Account store — the identity subsystem's balance interface.

Reads and writes ``users.balance`` through the session it is given, so calls
made inside a trade transaction see and change that transaction's state only.
"""

import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from papertrader.config import settings
from papertrader.errors import AccountNotFound
from papertrader.models.user import User
from papertrader.pricing import round2


class AccountStore:
    def __init__(self, db: Session):
        self.db = db

    def get_user(self, user_id: str, for_update: bool = False) -> User:
        """Load a user, optionally taking the row lock that serialises their trades."""
        query = self.db.query(User).filter(User.id == user_id)
        if for_update:
            query = query.with_for_update()
        user = query.first()
        if not user:
            raise AccountNotFound(user_id)
        return user

    def get_balance(self, user_id: str, for_update: bool = False) -> Decimal:
        return round2(self.get_user(user_id, for_update=for_update).balance)

    def set_balance(self, user_id: str, balance: Decimal) -> None:
        user = self.get_user(user_id)
        user.balance = round2(balance)
        self.db.flush()

    def create_account(
        self,
        email: str,
        display_name: str,
        balance: Optional[Decimal] = None,
        user_id: Optional[str] = None,
    ) -> User:
        """Open an account seeded with the starting balance."""
        user = User(
            id=user_id or str(uuid.uuid4()),
            email=email,
            display_name=display_name,
            balance=round2(settings.DEFAULT_BALANCE if balance is None else balance),
        )
        self.db.add(user)
        self.db.flush()
        return user
