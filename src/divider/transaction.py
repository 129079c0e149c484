"""
transaction.py — One financial event and its split calculation

================================================================================
SPLIT ALGORITHM
================================================================================

Contributors pay in, beneficiaries owe. A beneficiary owes either an
explicit Sum or an Even share of what is left:

    spending   = sum(contributions)
    specified  = sum(Sum benefits)
    per_even   = (spending - specified) / count(Even benefits)

    ExcessBenefits        if specified > spending
    InsufficientBenefits  if spending > specified and there is no Even entry

The balance delta of a user is everything it contributed minus everything
it owes. For a valid transaction the deltas sum to zero.

Example:

    contributions: Bilbo 32, Frodo 12                  -> spending 44
    benefits:      Legolas Even, Frodo Even, Gimli 10  -> per_even 17

    Bilbo +32, Frodo +12-17 = -5, Legolas -17, Gimli -10

================================================================================
REVERSAL
================================================================================

reverse() swaps the roles: beneficiaries pay back what they owed and
contributors receive Sum shares of what they paid. Applying the reversal
cancels the original without removing it from history.

================================================================================
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional, Tuple

from .core import Amount, Benefit, Even, Sum, UserName, dump_benefit, load_benefit
from .errors import ExcessBenefits, InsufficientBenefits


AmountPerUser = Tuple[Tuple[UserName, Amount], ...]
BenefitPerUser = Tuple[Tuple[UserName, Benefit], ...]
UserAmountMap = Dict[UserName, Amount]

# Largest gap between spending and specified benefits treated as equal,
# independent of magnitude. Reversals rebuild their sums from rounded
# per-even shares and drift by a few ulps.
ABS_TOLERANCE = 1e-6


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def _same_amount(a: Amount, b: Amount) -> bool:
    return abs(a - b) <= ABS_TOLERANCE


def _to_utc_seconds(time: datetime) -> datetime:
    """UTC, whole seconds. Naive values are taken as UTC."""
    if time.tzinfo is None:
        time = time.replace(tzinfo=timezone.utc)
    return time.astimezone(timezone.utc).replace(microsecond=0)


@dataclass(frozen=True)
class Transaction:
    """
    Immutable record of one financial event.

    `id` is 0 until a Ledger stores the transaction, at which point the
    ledger keeps a copy carrying the assigned id. User names are not checked
    here; the ledger rejects unknown users when applying balances.
    """
    contributions: AmountPerUser
    benefits: BenefitPerUser
    description: str = ""
    is_direct: bool = False
    id: int = 0
    timestamp: datetime = field(default_factory=_now)

    @classmethod
    def new(
        cls,
        contributions: Iterable[Tuple[UserName, Amount]],
        benefits: Iterable[Tuple[UserName, Benefit]],
        description: str = "",
        is_direct: bool = False,
        id: Optional[int] = None,
        time: Optional[datetime] = None,
    ) -> Transaction:
        """Build a transaction. Does not validate.

        `time` is stored in UTC to the second; a naive value is taken as UTC.
        """
        return cls(
            contributions=tuple((name, float(amount)) for name, amount in contributions),
            benefits=tuple((name, benefit) for name, benefit in benefits),
            description=description,
            is_direct=is_direct,
            id=id or 0,
            timestamp=_to_utc_seconds(time) if time is not None else _now(),
        )

    # -------------------------------------------------------------------------
    # Aggregates
    # -------------------------------------------------------------------------

    def total_spending(self) -> Amount:
        """Sum of all contributions."""
        return sum((amount for _, amount in self.contributions), 0.0)

    def specified_benefits(self) -> Amount:
        """Sum of all explicit Sum benefits. Even entries count as zero."""
        total = 0.0
        for _, benefit in self.benefits:
            match benefit:
                case Sum(amount):
                    total += amount
        return total

    def num_even_benefits(self) -> int:
        return sum(1 for _, benefit in self.benefits if isinstance(benefit, Even))

    # -------------------------------------------------------------------------
    # Split calculation
    # -------------------------------------------------------------------------

    def benefits_per_even(self) -> Amount:
        """
        Share owed by each Even beneficiary.

        Raises:
            ExcessBenefits: explicit sums exceed the spending
            InsufficientBenefits: spending is left over and no Even entry
                exists to absorb it
        """
        spending = self.total_spending()
        specified = self.specified_benefits()
        if specified > spending and not _same_amount(specified, spending):
            raise ExcessBenefits(specified=specified, spent=spending)

        evens = self.num_even_benefits()
        remaining = max(spending - specified, 0.0)
        if evens == 0:
            if remaining > 0 and not _same_amount(specified, spending):
                raise InsufficientBenefits(specified=specified, spent=spending)
            return 0.0

        return remaining / evens

    def _final_benefit(self, benefit: Benefit, per_even: Amount) -> Amount:
        match benefit:
            case Sum(amount):
                return amount
            case Even():
                return per_even
        raise TypeError(f"Not a benefit: {benefit!r}")

    def balance_updates(self) -> UserAmountMap:
        """
        Signed balance delta per user.

        Contributions add, benefits subtract. A user listed more than once
        accumulates all of its entries.
        """
        per_even = self.benefits_per_even()

        deltas: UserAmountMap = {}
        for name, amount in self.contributions:
            deltas[name] = deltas.get(name, 0.0) + amount
        for name, benefit in self.benefits:
            deltas[name] = deltas.get(name, 0.0) - self._final_benefit(benefit, per_even)
        return deltas

    # -------------------------------------------------------------------------
    # Reversal
    # -------------------------------------------------------------------------

    def reverse(self) -> Transaction:
        """
        Transaction cancelling this one's effect on balances.

        Beneficiaries contribute what they owed (Even entries pay the
        per-even share computed here), contributors become Sum
        beneficiaries of what they paid. The result is never direct and
        carries no id until stored.
        """
        per_even = self.benefits_per_even()
        contributions = [
            (name, self._final_benefit(benefit, per_even))
            for name, benefit in self.benefits
        ]
        benefits = [(name, Sum(amount)) for name, amount in self.contributions]
        return Transaction.new(
            contributions,
            benefits,
            description=f"Undo {self.id}",
            is_direct=False,
        )

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "datetime": self.timestamp.isoformat(),
            "contributions": [[name, amount] for name, amount in self.contributions],
            "benefits": [[name, dump_benefit(benefit)] for name, benefit in self.benefits],
            "is_direct": self.is_direct,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Transaction:
        """
        Deserialize a transaction record.

        A missing or null id becomes 0. Naive timestamps are taken as UTC.
        """
        return cls.new(
            contributions=[(name, amount) for name, amount in data["contributions"]],
            benefits=[(name, load_benefit(benefit)) for name, benefit in data["benefits"]],
            description=data.get("description", ""),
            is_direct=bool(data.get("is_direct", False)),
            id=data.get("id"),
            time=datetime.fromisoformat(data["datetime"]),
        )

    def __str__(self) -> str:
        contributions = ", ".join(f"{name}: {amount:.2f}" for name, amount in self.contributions)
        benefits = ", ".join(f"{name}: {benefit}" for name, benefit in self.benefits)
        kind = "transfer" if self.is_direct else "expense"
        line = (
            f"[{self.id:>4}] {self.timestamp:%Y-%m-%d %H:%M} {kind} | "
            f"from {contributions} | to {benefits}"
        )
        if self.description:
            line += f" | {self.description}"
        return line
