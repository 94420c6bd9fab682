"""
Account ledger with serialized per-account mutation.

The ledger is the balance of record. Every read-modify-write of a balance
happens inside the ledger while holding that account's key in a KeyedLock:

    - Debits/credits on the SAME account run one at a time, in arrival order
    - Debits/credits on DIFFERENT accounts never wait on each other
    - No I/O happens while a key is held

Accounts are created implicitly with balance 0 on first reference and are
never deleted. Balances are integers in the smallest currency unit.

Usage:
    ledger = AccountLedger(debit_limit=1000, credit_limit=10000)

    ledger.credit("acct1", 100)
    result = ledger.debit("acct1", 30)
    if not result.success:
        # result.error == "InsufficientFunds", balance unchanged
        ...
"""

from __future__ import annotations

from typing import Any, Dict, Mapping

from core.exceptions import InvalidAmountError
from core.keyed_lock import KeyedLock
from models.ledger import LedgerResult, INSUFFICIENT_FUNDS
from logging_config import get_logger


# Module logger
logger = get_logger(__name__)

DEFAULT_DEBIT_LIMIT = 1000
DEFAULT_CREDIT_LIMIT = 10000


class AccountLedger:
    """
    Thread-safe in-memory ledger.

    Attributes:
        debit_limit: Largest amount a single debit may take
        credit_limit: Largest amount a single credit may add
    """

    def __init__(
        self,
        debit_limit: int = DEFAULT_DEBIT_LIMIT,
        credit_limit: int = DEFAULT_CREDIT_LIMIT
    ):
        self._balances: Dict[str, int] = {}
        self._locks = KeyedLock()
        self.debit_limit = debit_limit
        self.credit_limit = credit_limit

        logger.info(
            f"AccountLedger initialized (debit limit {debit_limit}, credit limit {credit_limit})"
        )

    def get_balance(self, account: str) -> int:
        """Current balance; 0 for an account never seen before."""
        return self._balances.get(account, 0)

    def debit(self, account: str, amount: int) -> LedgerResult:
        """
        Take ``amount`` from the account if the balance covers it.

        Returns:
            LedgerResult with success=False and error=INSUFFICIENT_FUNDS
            when the balance is too low (balance unchanged)

        Raises:
            InvalidAmountError: amount not in 1..debit_limit
        """
        _check_amount(amount, self.debit_limit)

        with self._locks.hold(account):
            balance = self._balances.get(account, 0)
            if balance < amount:
                result = LedgerResult(success=False, balance=balance, error=INSUFFICIENT_FUNDS)
            else:
                balance -= amount
                self._balances[account] = balance
                result = LedgerResult(success=True, balance=balance)

        if result.success:
            logger.info(f"Debited {amount} from {account}, balance {result.balance}")
        else:
            logger.info(f"Debit of {amount} refused for {account}: balance {result.balance}")
        return result

    def credit(self, account: str, amount: int) -> LedgerResult:
        """
        Add ``amount`` to the account.

        Raises:
            InvalidAmountError: amount not in 1..credit_limit
        """
        _check_amount(amount, self.credit_limit)

        with self._locks.hold(account):
            balance = self._balances.get(account, 0) + amount
            self._balances[account] = balance

        logger.info(f"Credited {amount} to {account}, balance {balance}")
        return LedgerResult(success=True, balance=balance)

    def seed(self, balances: Mapping[str, int]) -> None:
        """
        Set opening balances (startup only).

        Raises:
            ValueError: A balance is not a non-negative integer
        """
        for account, balance in balances.items():
            if isinstance(balance, bool) or not isinstance(balance, int) or balance < 0:
                raise ValueError(
                    f"Opening balance for {account} must be a non-negative integer, got {balance!r}"
                )
            with self._locks.hold(account):
                self._balances[account] = balance
        if balances:
            logger.info(f"Seeded {len(balances)} account balance(s)")

    def accounts(self) -> Dict[str, int]:
        """Snapshot of all known balances."""
        return dict(self._balances)


def _check_amount(amount: Any, limit: int) -> None:
    # bool is an int subclass; True must not debit 1 unit
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmountError(amount, limit)
    if amount <= 0 or amount > limit:
        raise InvalidAmountError(amount, limit)
