"""Balance guard — validates and applies cash movements for a trade."""

from decimal import Decimal
from typing import Optional

from papertrader.config import settings
from papertrader.errors import InsufficientFunds, ValidationError
from papertrader.pricing import round2
from papertrader.services.account_store import AccountStore


class BalanceGuard:
    """Debits and credits a user's balance through an ``AccountStore``.

    Must be used with a store bound to the same transaction as the ledger and
    journal writes of the trade; it never commits on its own.
    """

    def __init__(self, accounts: AccountStore, max_balance: Optional[Decimal] = None):
        self.accounts = accounts
        self.max_balance = settings.MAX_BALANCE if max_balance is None else max_balance

    def debit(self, user_id: str, amount: Decimal) -> Decimal:
        """Take ``amount`` from the balance. Returns the new balance."""
        amount = self._check_amount(amount)
        balance = self.accounts.get_balance(user_id)
        if balance < amount:
            raise InsufficientFunds(balance, amount)
        new_balance = round2(balance - amount)
        self.accounts.set_balance(user_id, new_balance)
        return new_balance

    def credit(self, user_id: str, amount: Decimal) -> Decimal:
        """Add ``amount`` to the balance. Returns the new balance."""
        amount = self._check_amount(amount)
        balance = self.accounts.get_balance(user_id)
        new_balance = round2(balance + amount)
        if new_balance > self.max_balance:
            raise ValidationError(
                f"balance cannot exceed {self.max_balance}", field="balance"
            )
        self.accounts.set_balance(user_id, new_balance)
        return new_balance

    @staticmethod
    def _check_amount(amount) -> Decimal:
        amount = round2(amount)
        if amount < 0:
            raise ValidationError("amount cannot be negative", field="amount")
        return amount
