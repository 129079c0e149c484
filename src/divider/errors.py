"""
errors.py — Error taxonomy

All errors are deterministic functions of transaction content and ledger
state, so none of them is retried. They are raised to the immediate caller
of the ledger's write operations and never swallowed inside the core.

    DividerError
    ├── TransactionError
    │   ├── InsufficientBenefits
    │   ├── ExcessBenefits
    │   ├── UnknownUser
    │   └── UnknownTransactionId
    ├── StoreError
    └── ConfigError
"""

from __future__ import annotations
from pathlib import Path
from typing import Optional

from .core import Amount, UserName


class DividerError(Exception):
    """Root of every error raised by this package."""


# ==============================================================================
# TRANSACTION ERRORS
# ==============================================================================

class TransactionError(DividerError):
    """A transaction could not be derived or applied."""


class InsufficientBenefits(TransactionError):
    """
    All benefits are explicit sums, but together they are smaller than the
    total contributed. Nobody is left to absorb the remainder.
    """

    def __init__(self, specified: Amount, spent: Amount):
        self.specified = specified
        self.spent = spent
        super().__init__(
            f"too few benefits specified: {specified:.2f} out of {spent:.2f} spent"
        )


class ExcessBenefits(TransactionError):
    """The explicit benefit sums exceed the total contributed."""

    def __init__(self, specified: Amount, spent: Amount):
        self.specified = specified
        self.spent = spent
        super().__init__(
            f"too many benefits specified: {specified:.2f} out of {spent:.2f} spent"
        )


class UnknownUser(TransactionError):
    """A balance update references a user not registered on the ledger."""

    def __init__(self, name: UserName):
        self.name = name
        super().__init__(f"no such user: {name}")


class UnknownTransactionId(TransactionError):
    """An undo references a transaction id not present in the history."""

    def __init__(self, transaction_id: int):
        self.transaction_id = transaction_id
        super().__init__(f"no such transaction id: {transaction_id}")


# ==============================================================================
# OUTER LAYERS
# ==============================================================================

class StoreError(DividerError):
    """A ledger snapshot could not be read or written."""

    def __init__(self, path: Path, message: str, not_found: bool = False):
        self.path = Path(path)
        self.not_found = not_found
        super().__init__(f"{message}: {self.path}")


class ConfigError(DividerError):
    """The server configuration could not be loaded."""

    def __init__(self, message: str, path: Optional[Path] = None):
        self.path = path
        super().__init__(message if path is None else f"{message}: {path}")
