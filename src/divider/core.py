"""
core.py — Primitives shared by transactions and ledgers

================================================================================
DESIGN PRINCIPLES
================================================================================

1. IDENTITY BY NAME
   A participant is identified by its name string. There is no numeric id:
   two User objects with the same name are the same participant.

2. PLAIN FLOATS
   Amounts are native floats in a single implicit unit. No currency, no
   minor units. Drift from repeated additions is handled by the ledger's
   periodic reconciliation, not here.

3. BENEFIT AS A SUM TYPE
   A beneficiary's share is either an explicit Sum or an Even split of
   what is left. The two variants are frozen dataclasses dispatched with
   `match`; there is no polymorphic "beneficiary" hierarchy.

================================================================================
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Union


Amount = float
UserName = str


# ==============================================================================
# USER
# ==============================================================================

@dataclass(frozen=True, slots=True)
class User:
    """A participant on a ledger. Equality and hashing by name."""
    name: UserName

    def to_dict(self) -> dict:
        return {"name": self.name}

    @classmethod
    def from_dict(cls, data: dict) -> User:
        return cls(name=data["name"])

    def __str__(self) -> str:
        return self.name


# ==============================================================================
# BENEFIT
# ==============================================================================

@dataclass(frozen=True, slots=True)
class Sum:
    """An explicit amount the beneficiary owes."""
    amount: Amount

    def __str__(self) -> str:
        return f"{self.amount:.2f}"


@dataclass(frozen=True, slots=True)
class Even:
    """A share of the spending left after all Sum shares, split evenly."""

    def __str__(self) -> str:
        return "Even"


EVEN = Even()

Benefit = Union[Sum, Even]


def dump_benefit(benefit: Benefit) -> Any:
    """
    Serialize a benefit.

    Format: the string "Even" or {"Sum": <amount>}.
    """
    match benefit:
        case Sum(amount):
            return {"Sum": amount}
        case Even():
            return "Even"
    raise TypeError(f"Not a benefit: {benefit!r}")


def load_benefit(data: Any) -> Benefit:
    """Inverse of dump_benefit()."""
    match data:
        case "Even":
            return EVEN
        case {"Sum": amount} if len(data) == 1:
            return Sum(float(amount))
    raise ValueError(f"Malformed benefit: {data!r}")
