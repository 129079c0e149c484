"""
cli.py — Command line front end

    divider trip.json new Bilbo Frodo Legolas Gimli
    divider trip.json add-expense -f Bilbo 32 Frodo 12 -t Legolas Frodo Gimli 10
    divider trip.json add-direct -f Bilbo -t Frodo -a 32
    divider trip.json balances
    divider trip.json list
    divider trip.json undo 2

Every mutating command reads the whole ledger, applies one operation and
saves it back. On error nothing is written.
"""

from __future__ import annotations
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence, Tuple
import argparse
import logging
import math
import sys

from .core import EVEN, Amount, Benefit, Sum, UserName
from .errors import DividerError
from .ledger import Ledger
from .store import JsonStore, LedgerStore


logger = logging.getLogger(__name__)

TIME_FORMAT = "%Y-%m-%d %H:%M"


# ==============================================================================
# ARGUMENT PARSING
# ==============================================================================

def _parse_number(token: str) -> Optional[Amount]:
    """The token as a finite float, or None if it is a name."""
    try:
        value = float(token)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def parse_contributors(arguments: Sequence[str]) -> List[Tuple[UserName, Amount]]:
    """
    Parse `name amount name amount ...`.

    Raises:
        ValueError: odd number of tokens, or an amount is not a number
    """
    if len(arguments) % 2:
        raise ValueError("Contributions must be pairs of name and amount")

    contributions = []
    for name, token in zip(arguments[::2], arguments[1::2]):
        amount = _parse_number(token)
        if amount is None:
            raise ValueError(f"Must be a number: {token}")
        contributions.append((name, amount))
    return contributions


def parse_beneficiaries(arguments: Sequence[str]) -> List[Tuple[UserName, Benefit]]:
    """
    Parse beneficiaries, each optionally followed by the amount it owes.

    `Ben 14 George Mike` -> Ben owes 14, George and Mike split the rest.

    Raises:
        ValueError: a number without a name before it
    """
    beneficiaries: List[Tuple[UserName, Benefit]] = []
    pending: Optional[UserName] = None

    for token in arguments:
        amount = _parse_number(token)
        if amount is None:
            if pending is not None:
                beneficiaries.append((pending, EVEN))
            pending = token
            continue

        if pending is None:
            raise ValueError(f"Expected a user before {token}")
        beneficiaries.append((pending, Sum(amount)))
        pending = None

    if pending is not None:
        beneficiaries.append((pending, EVEN))
    return beneficiaries


def parse_time(arg: str) -> datetime:
    """Parse local `YYYY-MM-DD HH:MM` into a UTC datetime."""
    try:
        local = datetime.strptime(arg, TIME_FORMAT)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(
            f"invalid time {arg!r}, expected format like \"2022-05-01 12:21\""
        ) from exc
    return local.astimezone(timezone.utc)


def parse_id(arg: str) -> int:
    try:
        return int(arg, 0)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid transaction id {arg!r}") from exc


# ==============================================================================
# COMMANDS
# ==============================================================================

def format_balances(ledger: Ledger) -> List[str]:
    return [f"{name}: {balance:.2f}" for name, balance in ledger.get_balances().items()]


def cmd_new(args: argparse.Namespace, store: LedgerStore) -> None:
    store.save(Ledger(args.names))


def cmd_balances(args: argparse.Namespace, store: LedgerStore) -> None:
    for line in format_balances(store.read()):
        print(line)


def cmd_list(args: argparse.Namespace, store: LedgerStore) -> None:
    for transaction in store.read().get_transactions():
        print(transaction)


def cmd_add_user(args: argparse.Namespace, store: LedgerStore) -> None:
    ledger = store.read()
    ledger.add_user(args.name)
    store.save(ledger)


def cmd_add_direct(args: argparse.Namespace, store: LedgerStore) -> None:
    ledger = store.read()
    ledger.add_transfer(args.from_user, args.to_user, args.amount, args.description, args.time)
    store.save(ledger)


def cmd_add_expense(args: argparse.Namespace, store: LedgerStore) -> None:
    contributions = parse_contributors(args.contributors)
    benefits = parse_beneficiaries(args.beneficiaries)
    ledger = store.read()
    ledger.add_expense(contributions, benefits, args.description, args.time)
    store.save(ledger)


def cmd_undo(args: argparse.Namespace, store: LedgerStore) -> None:
    ledger = store.read()
    ledger.reverse_by_id(args.id)
    store.save(ledger)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="divider", description="Track shared expenses")
    p.add_argument("path", type=Path, help="ledger file to operate on")
    p.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    new = sub.add_parser("new", help="create a new ledger")
    new.add_argument("names", nargs="+", help="names of the users on the ledger")
    new.set_defaults(func=cmd_new)

    sub.add_parser("balances", help="display balances").set_defaults(func=cmd_balances)
    sub.add_parser("list", help="list all transactions").set_defaults(func=cmd_list)

    add_user = sub.add_parser("add-user", help="add a new user")
    add_user.add_argument("name")
    add_user.set_defaults(func=cmd_add_user)

    direct = sub.add_parser("add-direct", help="add a direct transfer")
    direct.add_argument("-f", "--from", dest="from_user", required=True, help="user that paid")
    direct.add_argument("-t", "--to", dest="to_user", required=True, help="user that got paid")
    direct.add_argument("-a", "--amount", type=float, required=True)
    direct.add_argument("-d", "--description", default="Transfer")
    direct.add_argument("-T", "--time", type=parse_time, default=None,
                        help='when it happened, e.g. "2022-05-01 12:21"; default now')
    direct.set_defaults(func=cmd_add_direct)

    expense = sub.add_parser("add-expense", help="add a new expense")
    expense.add_argument("-f", "--from", dest="contributors", nargs="+", required=True,
                         help="pairs of name and amount contributed, e.g. `Donald 5 Will 29`")
    expense.add_argument("-t", "--to", dest="beneficiaries", nargs="+", required=True,
                         help="beneficiaries, each optionally followed by the amount it owes; "
                              "the rest is split evenly, e.g. `Ben 14 George Mike`")
    expense.add_argument("-d", "--description", default="")
    expense.add_argument("-T", "--time", type=parse_time, default=None,
                         help='when it happened, e.g. "2022-05-01 12:21"; default now')
    expense.set_defaults(func=cmd_add_expense)

    undo = sub.add_parser("undo", help="undo an existing transaction")
    undo.add_argument("id", type=parse_id, help="id of the transaction, as shown by `list`")
    undo.set_defaults(func=cmd_undo)
    return p


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    logger.debug("Running %s on %s", args.command, args.path)

    try:
        args.func(args, JsonStore(args.path))
    except (DividerError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
