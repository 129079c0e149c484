"""
store.py — Whole-file ledger persistence

The ledger never talks to storage itself. Callers read a snapshot, run a
batch of operations, and save the whole snapshot back. There are no partial
writes and no locking; one file is one critical section for the caller.
"""

from __future__ import annotations
from pathlib import Path
from typing import Protocol, Union
import json
import logging

from .errors import StoreError
from .ledger import Ledger


logger = logging.getLogger(__name__)


class LedgerStore(Protocol):
    """Anything that can load and save a ledger snapshot."""

    def read(self) -> Ledger:
        ...

    def save(self, ledger: Ledger) -> None:
        ...


class JsonStore:
    """A ledger snapshot kept as one JSON document on disk."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def read(self) -> Ledger:
        """
        Load the snapshot.

        Raises:
            StoreError: the file is missing, unreadable, or not a ledger
        """
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError as exc:
            raise StoreError(self.path, "ledger file not found", not_found=True) from exc
        except OSError as exc:
            raise StoreError(self.path, f"failed to read ledger file ({exc.strerror})") from exc
        except json.JSONDecodeError as exc:
            raise StoreError(self.path, f"failed to parse ledger file ({exc.msg})") from exc

        try:
            ledger = Ledger.from_dict(data)
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise StoreError(self.path, f"malformed ledger snapshot ({exc})") from exc

        logger.debug("Read %r from %s", ledger, self.path)
        return ledger

    def save(self, ledger: Ledger) -> None:
        """
        Overwrite the file with the full snapshot.

        Raises:
            StoreError: the file cannot be written
        """
        try:
            with open(self.path, "w", encoding="utf-8") as f:
                f.write(ledger.to_json())
                f.write("\n")
        except OSError as exc:
            raise StoreError(self.path, f"failed to write ledger file ({exc.strerror})") from exc

        logger.debug("Saved %r to %s", ledger, self.path)

    def __repr__(self) -> str:
        return f"JsonStore({str(self.path)!r})"
