"""
ledger.py — Running balances over an append-only transaction history

================================================================================
CONSISTENCY POLICY
================================================================================

Balances are maintained two ways:

1. INCREMENTAL: every stored transaction adds its deltas to the running
   balances. O(1) per transaction, but float additions accumulate rounding
   error over time.

2. RECONCILIATION: every CONSISTENCY_CHECK_INTERVAL stored transactions the
   ledger replays the whole history from zero and replaces the running
   state with the result. Amortized O(1) per transaction.

After a reconciliation, balances and total spend depend only on the
history, never on the state they replaced.

================================================================================
ATOMICITY
================================================================================

A transaction is applied all-or-nothing. Its deltas are derived and every
referenced user is checked before anything is mutated; a failure leaves
balances, total spend, history and the id counter untouched. A
reconciliation due on that transaction is computed before anything is
committed, so a history that cannot be replayed rejects it too.

Undo never removes history. It appends the reversal of the target
transaction, which is itself undoable.

================================================================================
"""

from __future__ import annotations
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
import json
import logging

from .core import Amount, Benefit, Sum, User, UserName
from .errors import UnknownTransactionId, UnknownUser
from .transaction import Transaction, UserAmountMap


logger = logging.getLogger(__name__)


class Ledger:
    """
    Users, their balances, and the history of transactions between them.

    A positive balance means the user is owed money; a negative one means
    the user owes.
    """

    CONSISTENCY_CHECK_INTERVAL: int = 100

    def __init__(
        self,
        user_names: Iterable[UserName] = (),
        check_interval: Optional[int] = None,
    ):
        names = list(user_names)
        self._users: Dict[UserName, User] = {name: User(name) for name in names}
        self._balances: UserAmountMap = {name: 0.0 for name in names}
        self._transactions: List[Transaction] = []
        self._total_spend: Amount = 0.0
        self._next_id = 1
        self._check_interval = check_interval or self.CONSISTENCY_CHECK_INTERVAL

    # -------------------------------------------------------------------------
    # Read access
    # -------------------------------------------------------------------------

    def get_users(self) -> List[User]:
        return list(self._users.values())

    def get_balances(self) -> UserAmountMap:
        """Snapshot of the balances. Mutating it does not affect the ledger."""
        return dict(self._balances)

    def get_transactions(self) -> List[Transaction]:
        return self._transactions.copy()

    @property
    def total_spend(self) -> Amount:
        """Cumulative spending of all non-direct transactions."""
        return self._total_spend

    @property
    def next_id(self) -> int:
        return self._next_id

    def find_transaction(self, transaction_id: int) -> Optional[Transaction]:
        for transaction in self._transactions:
            if transaction.id == transaction_id:
                return transaction
        return None

    # -------------------------------------------------------------------------
    # Write access
    # -------------------------------------------------------------------------

    def add_user(self, name: UserName) -> User:
        """
        Register a user with a zero balance.

        Re-adding an existing name replaces its User record and keeps its
        balance.
        """
        user = User(name)
        self._users[name] = user
        self._balances.setdefault(name, 0.0)
        logger.info("Added user %r", name)
        return user

    def add_expense(
        self,
        contributions: Sequence[Tuple[UserName, Amount]],
        benefits: Sequence[Tuple[UserName, Benefit]],
        description: str = "",
        time: Optional[datetime] = None,
    ) -> Transaction:
        transaction = Transaction.new(
            contributions,
            benefits,
            description=description,
            is_direct=False,
            time=time,
        )
        return self.add_transaction(transaction)

    def add_transfer(
        self,
        from_user: UserName,
        to_user: UserName,
        amount: Amount,
        description: str = "Transfer",
        time: Optional[datetime] = None,
    ) -> Transaction:
        """Direct payment; does not count toward total spend."""
        transaction = Transaction.new(
            [(from_user, amount)],
            [(to_user, Sum(amount))],
            description=description,
            is_direct=True,
            time=time,
        )
        return self.add_transaction(transaction)

    def add_transaction(self, transaction: Transaction) -> Transaction:
        """
        Apply a transaction and append it to the history.

        Returns the stored copy, carrying its assigned id.

        Raises:
            TransactionError: the split is invalid or a user is unknown.
                Nothing is changed.
        """
        balances = dict(self._balances)
        total_spend = self._apply_transaction(self._total_spend, balances, transaction)
        stored = replace(transaction, id=self._next_id)

        reconcile = self._needs_consistency_check(len(self._transactions) + 1)
        if reconcile:
            balances, total_spend = self._replay([*self._transactions, stored], balances)

        self._balances = balances
        self._total_spend = total_spend
        self._transactions.append(stored)
        self._next_id += 1
        logger.debug("Stored transaction %d: %s", stored.id, stored)
        if reconcile:
            logger.info("Reconciled balances over %d transactions", len(self._transactions))
        return stored

    def reverse_by_id(self, transaction_id: int) -> Transaction:
        """
        Undo a transaction by appending its reversal.

        Raises:
            UnknownTransactionId: no transaction has this id
            TransactionError: the reversal cannot be applied
        """
        original = self.find_transaction(transaction_id)
        if original is None:
            raise UnknownTransactionId(transaction_id)

        stored = self.add_transaction(original.reverse())
        logger.info("Reversed transaction %d as %d", transaction_id, stored.id)
        return stored

    # -------------------------------------------------------------------------
    # Balance application
    # -------------------------------------------------------------------------

    @staticmethod
    def _apply_transaction(
        total_spend: Amount,
        balances: UserAmountMap,
        transaction: Transaction,
    ) -> Amount:
        """
        Add a transaction's deltas to `balances` in place.

        Returns the new total spend. Raises before mutating anything.
        """
        updates = transaction.balance_updates()
        for name in updates:
            if name not in balances:
                raise UnknownUser(name)

        for name, delta in updates.items():
            balances[name] += delta
        if not transaction.is_direct:
            total_spend += transaction.total_spending()
        return total_spend

    @classmethod
    def _replay(
        cls,
        transactions: Sequence[Transaction],
        known: Iterable[UserName],
    ) -> Tuple[UserAmountMap, Amount]:
        """Balances and total spend of `transactions` applied from zero."""
        balances: UserAmountMap = {name: 0.0 for name in known}
        total_spend = 0.0
        for transaction in transactions:
            total_spend = cls._apply_transaction(total_spend, balances, transaction)
        return balances, total_spend

    def reapply_all(self) -> None:
        """Recompute balances and total spend by replaying the history."""
        balances, total_spend = self._replay(self._transactions, self._balances)
        self._balances = balances
        self._total_spend = total_spend
        logger.info("Reconciled balances over %d transactions", len(self._transactions))

    def _needs_consistency_check(self, count: int) -> bool:
        return count % self._check_interval == 0

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "next_id": self._next_id,
            "balances": dict(self._balances),
            "users": {name: user.to_dict() for name, user in self._users.items()},
            "total_spend": self._total_spend,
            "transactions": [t.to_dict() for t in self._transactions],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], check_interval: Optional[int] = None) -> Ledger:
        """
        Restore a ledger snapshot as stored, without replaying it.

        A snapshot without `next_id` continues after its highest stored id.
        """
        ledger = cls(check_interval=check_interval)
        ledger._users = {
            name: User.from_dict(user) for name, user in data.get("users", {}).items()
        }
        ledger._balances = {
            name: float(balance) for name, balance in data.get("balances", {}).items()
        }
        for name in ledger._users:
            ledger._balances.setdefault(name, 0.0)
        ledger._total_spend = float(data.get("total_spend", 0.0))
        ledger._transactions = [
            Transaction.from_dict(t) for t in data.get("transactions", [])
        ]

        next_id = data.get("next_id")
        if next_id is None:
            next_id = max((t.id for t in ledger._transactions), default=0) + 1
        ledger._next_id = int(next_id)
        return ledger

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    def __len__(self) -> int:
        return len(self._transactions)

    def __repr__(self) -> str:
        return f"Ledger(users={len(self._users)}, transactions={len(self._transactions)})"
