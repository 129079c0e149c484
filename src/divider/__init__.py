"""
divider — Shared expense ledger

Track who paid, who benefits, and what everybody owes, among a group of
named participants.

================================================================================
QUICK START
================================================================================

    from divider import Ledger, Sum, EVEN

    ledger = Ledger(["Bilbo", "Frodo", "Legolas", "Gimli"])

    # Bilbo and Frodo pay; Gimli owes 10, Legolas and Frodo split the rest
    ledger.add_expense(
        [("Bilbo", 32), ("Frodo", 12)],
        [("Legolas", EVEN), ("Frodo", EVEN), ("Gimli", Sum(10))],
        "Dinner",
    )
    ledger.get_balances()
    # {'Bilbo': 32.0, 'Frodo': -5.0, 'Legolas': -17.0, 'Gimli': -10.0}

    # Direct transfers settle debts without counting as spending
    ledger.add_transfer("Gimli", "Bilbo", 10)

    # Undo appends the reversal; history is never rewritten
    ledger.reverse_by_id(1)

Persistence:

    from divider import JsonStore

    store = JsonStore("trip.json")
    store.save(ledger)
    ledger = store.read()

================================================================================
"""

from .core import (
    Amount,
    UserName,
    User,
    Benefit,
    Sum,
    Even,
    EVEN,
)

from .errors import (
    DividerError,
    TransactionError,
    InsufficientBenefits,
    ExcessBenefits,
    UnknownUser,
    UnknownTransactionId,
    StoreError,
    ConfigError,
)

from .transaction import Transaction
from .ledger import Ledger
from .store import LedgerStore, JsonStore

__version__ = "0.3.0"

__all__ = [
    # Primitives
    "Amount",
    "UserName",
    "User",
    "Benefit",
    "Sum",
    "Even",
    "EVEN",
    # Errors
    "DividerError",
    "TransactionError",
    "InsufficientBenefits",
    "ExcessBenefits",
    "UnknownUser",
    "UnknownTransactionId",
    "StoreError",
    "ConfigError",
    # Engine
    "Transaction",
    "Ledger",
    # Persistence
    "LedgerStore",
    "JsonStore",
]
