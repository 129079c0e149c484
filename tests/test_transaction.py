"""
test_transaction.py — Tests for Transaction split calculation and reversal

================================================================================
STRUCTURE
================================================================================

1. UNIT TESTS
   Aggregates, split edge cases, duplicate users, reversal, serialization.

2. PROPERTY-BASED TESTS (Hypothesis)
   - explicit sums matching the spending always balance to zero
   - excess and insufficient benefits are always rejected
   - a reversal always negates the original deltas

Amounts in the property tests are whole cents so that the expected sums are
exact.

================================================================================
"""

from datetime import datetime, timedelta, timezone

import pytest
from hypothesis import given, settings, HealthCheck
from hypothesis import strategies as st

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from divider import (
    Transaction,
    Sum,
    Even,
    EVEN,
    User,
    ExcessBenefits,
    InsufficientBenefits,
)
from divider.core import dump_benefit, load_benefit


NAMES = ["Bilbo", "Frodo", "Legolas", "Gimli", "Merry", "Pippin"]


@pytest.fixture
def fellowship_transaction() -> Transaction:
    """Two contributors, two Even beneficiaries and one explicit sum."""
    return Transaction.new(
        [("Bilbo", 32.0), ("Frodo", 12.0)],
        [("Legolas", EVEN), ("Frodo", EVEN), ("Gimli", Sum(10.0))],
        "",
        False,
        id=3,
        time=datetime(2022, 5, 1, 11, 0, 0, tzinfo=timezone.utc),
    )


# ==============================================================================
# TEST HELPERS
# ==============================================================================

cents = st.integers(min_value=1, max_value=1_000_000)


@st.composite
def contributions_strategy(draw):
    """Random contributions as (name, amount) with amounts in whole cents."""
    size = draw(st.integers(min_value=1, max_value=5))
    return [
        (draw(st.sampled_from(NAMES)), draw(cents) / 100)
        for _ in range(size)
    ]


@st.composite
def exact_sums_strategy(draw):
    """
    Contributions and Sum-only benefits with identical totals.

    Integer amounts keep every float sum exact.
    """
    amounts = draw(st.lists(st.integers(min_value=1, max_value=100_000), min_size=1, max_size=5))
    total = sum(amounts)
    cuts = sorted(draw(st.lists(st.integers(min_value=0, max_value=total), max_size=4)))
    bounds = [0] + cuts + [total]
    shares = [b - a for a, b in zip(bounds, bounds[1:])]

    contributions = [(draw(st.sampled_from(NAMES)), float(a)) for a in amounts]
    benefits = [(draw(st.sampled_from(NAMES)), Sum(float(s))) for s in shares]
    return Transaction.new(contributions, benefits)


@st.composite
def valid_transaction_strategy(draw):
    """A valid transaction with at least one Even beneficiary."""
    contributions = draw(contributions_strategy())
    spending_cents = round(sum(amount for _, amount in contributions) * 100)

    benefits = []
    budget = spending_cents
    for _ in range(draw(st.integers(min_value=0, max_value=3))):
        share = draw(st.integers(min_value=0, max_value=budget))
        budget -= share
        benefits.append((draw(st.sampled_from(NAMES)), Sum(share / 100)))
    for _ in range(draw(st.integers(min_value=1, max_value=4))):
        benefits.append((draw(st.sampled_from(NAMES)), EVEN))

    return Transaction.new(contributions, draw(st.permutations(benefits)))


# ==============================================================================
# UNIT TESTS: Aggregates
# ==============================================================================

class TestAggregates:
    """Tests for total_spending, specified_benefits and num_even_benefits."""

    def test_total_spending(self, fellowship_transaction):
        assert fellowship_transaction.total_spending() == 44.0

    def test_specified_benefits_ignores_even(self, fellowship_transaction):
        assert fellowship_transaction.specified_benefits() == 10.0

    def test_num_even_benefits(self, fellowship_transaction):
        assert fellowship_transaction.num_even_benefits() == 2

    def test_empty_transaction(self):
        t = Transaction.new([], [])
        assert t.total_spending() == 0.0
        assert t.specified_benefits() == 0.0
        assert t.num_even_benefits() == 0

    def test_aggregates_defined_for_invalid_transaction(self):
        t = Transaction.new([("Bilbo", 5.0)], [("Frodo", Sum(50.0))])
        assert t.total_spending() == 5.0
        assert t.specified_benefits() == 50.0


# ==============================================================================
# UNIT TESTS: Split calculation
# ==============================================================================

class TestBalanceUpdates:
    """Tests for benefits_per_even() and balance_updates()."""

    def test_fellowship_example(self, fellowship_transaction):
        assert fellowship_transaction.benefits_per_even() == 17.0
        assert fellowship_transaction.balance_updates() == {
            "Bilbo": 32.0,
            "Frodo": -5.0,
            "Legolas": -17.0,
            "Gimli": -10.0,
        }

    def test_transfer_shape(self):
        t = Transaction.new([("Bilbo", 32.0)], [("Frodo", Sum(32.0))], is_direct=True)
        assert t.balance_updates() == {"Bilbo": 32.0, "Frodo": -32.0}

    def test_exactly_specified_without_evens_is_valid(self):
        t = Transaction.new([("Bilbo", 30.0)], [("Frodo", Sum(10.0)), ("Gimli", Sum(20.0))])
        assert t.benefits_per_even() == 0.0
        assert t.balance_updates() == {"Bilbo": 30.0, "Frodo": -10.0, "Gimli": -20.0}

    def test_fully_specified_with_evens_gives_zero_share(self):
        t = Transaction.new([("Bilbo", 30.0)], [("Frodo", Sum(30.0)), ("Gimli", EVEN)])
        assert t.benefits_per_even() == 0.0
        assert t.balance_updates()["Gimli"] == 0.0

    def test_excess_benefits(self):
        t = Transaction.new([("Bilbo", 10.0)], [("Frodo", Sum(8.0)), ("Gimli", Sum(4.0))])

        with pytest.raises(ExcessBenefits) as info:
            t.balance_updates()

        assert info.value.specified == 12.0
        assert info.value.spent == 10.0
        assert "too many benefits specified" in str(info.value)

    def test_insufficient_benefits(self):
        t = Transaction.new([("Bilbo", 10.0)], [("Frodo", Sum(8.0))])

        with pytest.raises(InsufficientBenefits) as info:
            t.balance_updates()

        assert info.value.specified == 8.0
        assert info.value.spent == 10.0
        assert "too few benefits specified" in str(info.value)

    def test_excess_reported_even_with_evens(self):
        t = Transaction.new([("Bilbo", 10.0)], [("Frodo", Sum(11.0)), ("Gimli", EVEN)])
        with pytest.raises(ExcessBenefits):
            t.benefits_per_even()

    def test_duplicate_contributors_accumulate(self):
        t = Transaction.new(
            [("Bilbo", 10.0), ("Bilbo", 20.0)],
            [("Frodo", EVEN), ("Gimli", EVEN)],
        )
        assert t.balance_updates() == {"Bilbo": 30.0, "Frodo": -15.0, "Gimli": -15.0}

    def test_duplicate_beneficiaries_accumulate(self):
        t = Transaction.new(
            [("Bilbo", 30.0)],
            [("Frodo", EVEN), ("Frodo", Sum(6.0)), ("Gimli", EVEN)],
        )
        assert t.balance_updates() == {"Bilbo": 30.0, "Frodo": -18.0, "Gimli": -12.0}

    def test_contributor_also_beneficiary(self):
        t = Transaction.new([("Bilbo", 60.0)], [("Bilbo", EVEN), ("Frodo", EVEN), ("Legolas", EVEN)])
        assert t.balance_updates() == {"Bilbo": 40.0, "Frodo": -20.0, "Legolas": -20.0}

    def test_uneven_division_uses_float_division(self):
        t = Transaction.new([("Bilbo", 10.0)], [("Frodo", EVEN), ("Gimli", EVEN), ("Merry", EVEN)])
        assert t.benefits_per_even() == 10.0 / 3

    def test_rounding_noise_is_not_an_error(self):
        # 0.1 + 0.2 != 0.3 in floating point
        t = Transaction.new([("Bilbo", 0.1), ("Frodo", 0.2)], [("Gimli", Sum(0.3))])
        updates = t.balance_updates()
        assert updates["Gimli"] == -0.3

    def test_large_excess_is_not_rounding_noise(self):
        t = Transaction.new([("Bilbo", 1e9)], [("Frodo", Sum(1e9 + 0.5))])

        with pytest.raises(ExcessBenefits) as info:
            t.balance_updates()

        assert info.value.specified == 1e9 + 0.5
        assert info.value.spent == 1e9

    def test_large_shortfall_is_not_rounding_noise(self):
        t = Transaction.new([("Bilbo", 1e9 + 0.5)], [("Frodo", Sum(1e9))])

        with pytest.raises(InsufficientBenefits):
            t.balance_updates()

    def test_cent_gap_at_a_million_is_rejected(self):
        t = Transaction.new([("Bilbo", 1_000_000.0)], [("Frodo", Sum(1_000_000.01))])

        with pytest.raises(ExcessBenefits):
            t.balance_updates()


# ==============================================================================
# UNIT TESTS: Reversal
# ==============================================================================

class TestReverse:
    """Tests for reverse()."""

    def test_reverse_swaps_roles(self, fellowship_transaction):
        reversed_t = fellowship_transaction.reverse()

        assert reversed_t.contributions == (("Legolas", 17.0), ("Frodo", 17.0), ("Gimli", 10.0))
        assert reversed_t.benefits == (("Bilbo", Sum(32.0)), ("Frodo", Sum(12.0)))

    def test_reverse_metadata(self, fellowship_transaction):
        reversed_t = fellowship_transaction.reverse()

        assert reversed_t.id == 0
        assert reversed_t.is_direct is False
        assert reversed_t.description == "Undo 3"
        assert reversed_t.timestamp > fellowship_transaction.timestamp

    def test_reverse_of_transfer_is_not_direct(self):
        t = Transaction.new([("Bilbo", 5.0)], [("Frodo", Sum(5.0))], is_direct=True)
        assert t.reverse().is_direct is False

    def test_reverse_negates_deltas(self, fellowship_transaction):
        original = fellowship_transaction.balance_updates()
        reverted = fellowship_transaction.reverse().balance_updates()

        assert set(original) == set(reverted)
        for name, delta in original.items():
            assert reverted[name] == -delta

    def test_reverse_invalid_transaction_raises(self):
        t = Transaction.new([("Bilbo", 10.0)], [("Frodo", Sum(8.0))])
        with pytest.raises(InsufficientBenefits):
            t.reverse()

    def test_reverse_of_tenths_stays_valid(self):
        # ten shares of 0.1 do not add back up to exactly 1.0
        hobbits = [f"Hobbit{i}" for i in range(10)]
        t = Transaction.new([("Bilbo", 1.0)], [(name, EVEN) for name in hobbits])
        reverted = t.reverse().balance_updates()
        assert reverted["Bilbo"] == pytest.approx(-1.0)

    def test_reverse_of_large_even_split_stays_valid(self):
        t = Transaction.new([("Bilbo", 1e9)], [("Frodo", EVEN), ("Merry", EVEN), ("Pippin", EVEN)])
        reverted = t.reverse().balance_updates()
        assert reverted["Bilbo"] == pytest.approx(-1e9)


# ==============================================================================
# UNIT TESTS: Serialization and display
# ==============================================================================

class TestSerialization:
    """Tests for to_dict/from_dict and benefit encoding."""

    def test_to_dict(self, fellowship_transaction):
        assert fellowship_transaction.to_dict() == {
            "id": 3,
            "contributions": [["Bilbo", 32.0], ["Frodo", 12.0]],
            "benefits": [
                ["Legolas", "Even"],
                ["Frodo", "Even"],
                ["Gimli", {"Sum": 10.0}],
            ],
            "is_direct": False,
            "description": "",
            "datetime": "2022-05-01T11:00:00+00:00",
        }

    def test_from_dict(self, fellowship_transaction):
        parsed = Transaction.from_dict(fellowship_transaction.to_dict())

        assert parsed == fellowship_transaction
        assert parsed.balance_updates() == fellowship_transaction.balance_updates()

    def test_from_dict_null_id(self, fellowship_transaction):
        data = fellowship_transaction.to_dict()
        data["id"] = None
        assert Transaction.from_dict(data).id == 0

    def test_from_dict_utc_suffix(self):
        data = {
            "datetime": "2022-05-01T11:00:00Z",
            "contributions": [["Bilbo", 1]],
            "benefits": [["Frodo", "Even"]],
            "is_direct": False,
            "description": "",
        }
        t = Transaction.from_dict(data)
        assert t.timestamp == datetime(2022, 5, 1, 11, tzinfo=timezone.utc)
        assert t.contributions == (("Bilbo", 1.0),)

    def test_time_stored_to_the_second(self):
        t = Transaction.new(
            [("Bilbo", 1.0)],
            [("Frodo", EVEN)],
            time=datetime(2022, 5, 1, 11, 0, 0, 123456, tzinfo=timezone.utc),
        )

        assert t.timestamp == datetime(2022, 5, 1, 11, tzinfo=timezone.utc)
        assert t.to_dict()["datetime"] == "2022-05-01T11:00:00+00:00"

    def test_naive_time_taken_as_utc(self):
        t = Transaction.new([("Bilbo", 1.0)], [("Frodo", EVEN)], time=datetime(2022, 5, 1, 11, 0, 30))
        assert t.to_dict()["datetime"] == "2022-05-01T11:00:30+00:00"

    def test_aware_time_converted_to_utc(self):
        cest = timezone(timedelta(hours=2))
        t = Transaction.new([("Bilbo", 1.0)], [("Frodo", EVEN)], time=datetime(2022, 5, 1, 13, 0, tzinfo=cest))

        assert t.timestamp.tzinfo == timezone.utc
        assert t.to_dict()["datetime"] == "2022-05-01T11:00:00+00:00"

    def test_benefit_encoding(self):
        assert dump_benefit(EVEN) == "Even"
        assert dump_benefit(Sum(2.5)) == {"Sum": 2.5}
        assert load_benefit("Even") == Even()
        assert load_benefit({"Sum": 4}) == Sum(4.0)

    def test_malformed_benefit(self):
        with pytest.raises(ValueError):
            load_benefit({"Share": 4})
        with pytest.raises(ValueError):
            load_benefit("Odd")

    def test_display(self, fellowship_transaction):
        t = Transaction.new(
            fellowship_transaction.contributions,
            fellowship_transaction.benefits,
            "Second breakfast",
            id=3,
            time=fellowship_transaction.timestamp,
        )
        line = str(t)

        assert "3" in line
        assert "2022-05-01 11:00" in line
        assert "Bilbo: 32" in line
        assert "Gimli: 10" in line
        assert "Legolas: Even" in line
        assert "Second breakfast" in line

    def test_user_equality_by_name(self):
        assert User("Bilbo") == User("Bilbo")
        assert len({User("Bilbo"), User("Bilbo"), User("Frodo")}) == 2


# ==============================================================================
# PROPERTY-BASED TESTS (Hypothesis)
# ==============================================================================

class TestSplitProperties:
    """Invariants of the split calculation for arbitrary transactions."""

    @given(t=exact_sums_strategy())
    @settings(max_examples=300)
    def test_exact_sums_balance_to_zero(self, t: Transaction):
        """
        PROPERTY: Sum-only benefits matching the spending never fail,
        and the deltas form a closed system.
        """
        updates = t.balance_updates()
        assert sum(updates.values()) == pytest.approx(0.0, abs=1e-6)

    @given(
        contributions=contributions_strategy(),
        extra=st.integers(min_value=1, max_value=100_000),
        with_even=st.booleans(),
    )
    @settings(max_examples=300)
    def test_excess_always_rejected(self, contributions, extra: int, with_even: bool):
        spending = sum(amount for _, amount in contributions)
        benefits = [("Frodo", Sum(spending + extra))]
        if with_even:
            benefits.append(("Gimli", EVEN))
        t = Transaction.new(contributions, benefits)

        with pytest.raises(ExcessBenefits) as info:
            t.balance_updates()

        assert info.value.specified == t.specified_benefits()
        assert info.value.spent == t.total_spending()

    @given(
        contributions=contributions_strategy(),
        fraction=st.floats(min_value=0.0, max_value=0.9),
    )
    @settings(max_examples=300)
    def test_leftover_without_evens_rejected(self, contributions, fraction: float):
        spending = sum(amount for _, amount in contributions)
        t = Transaction.new(contributions, [("Frodo", Sum(spending * fraction))])

        with pytest.raises(InsufficientBenefits):
            t.balance_updates()

    @given(t=valid_transaction_strategy())
    @settings(max_examples=300, suppress_health_check=[HealthCheck.too_slow])
    def test_valid_transactions_balance_to_zero(self, t: Transaction):
        updates = t.balance_updates()
        assert sum(updates.values()) == pytest.approx(0.0, abs=1e-6)

    @given(t=valid_transaction_strategy())
    @settings(max_examples=300, suppress_health_check=[HealthCheck.too_slow])
    def test_reverse_negates_every_delta(self, t: Transaction):
        """
        PROPERTY: for a valid T with deltas D, T.reverse() has deltas -D.
        """
        original = t.balance_updates()
        reverted = t.reverse().balance_updates()

        assert set(original) == set(reverted)
        for name, delta in original.items():
            assert reverted[name] == pytest.approx(-delta, abs=1e-6)
