"""Unit of work for ledger mutations.

Every mutating ledger operation writes through a Journal. The journal
remembers how to undo each write and collects the external effects
(collateral transfers, events) the operation wants issued once its state
is final. The facade commits by executing the effects; if a check, a
write or an effect raises, it rolls the journal back instead.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Hashable, MutableMapping
from dataclasses import dataclass
from typing import Any

from ..core.events import LedgerEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Transfer:
    """Pending collateral movement."""

    source: str
    destination: str
    amount: int
    memo: str = ""


class Journal:
    """Undo log plus pending effects for one ledger operation."""

    def __init__(self) -> None:
        self._undo: list[Callable[[], None]] = []
        self._saved: set[int] = set()
        self.transfers: list[Transfer] = []
        self.executed: list[Transfer] = []
        self.events: list[LedgerEvent] = []

    def save(self, record: Any) -> None:
        """Snapshot a mutable record before its first write in this operation."""
        if id(record) in self._saved:
            return
        self._saved.add(id(record))
        state = copy.deepcopy(record.__dict__)

        def restore() -> None:
            record.__dict__.clear()
            record.__dict__.update(state)

        self._undo.append(restore)

    def insert(self, mapping: MutableMapping, key: Hashable, value: Any) -> None:
        """Insert a new key into a mapping."""
        mapping[key] = value
        self._undo.append(lambda: mapping.pop(key, None))

    def add(self, members: set, item: Hashable) -> None:
        """Add an item to a set."""
        members.add(item)
        self._undo.append(lambda: members.discard(item))

    def on_rollback(self, undo: Callable[[], None]) -> None:
        self._undo.append(undo)

    def transfer(self, source: str, destination: str, amount: int, memo: str = "") -> None:
        """Queue a collateral transfer. Zero amounts are dropped."""
        if amount > 0:
            self.transfers.append(Transfer(source, destination, amount, memo))

    def emit(self, event: LedgerEvent) -> None:
        self.events.append(event)

    def merge(self, child: Journal) -> None:
        """Adopt a committed nested operation so that rolling back undoes it too."""
        self._undo.extend(child._undo)
        self.executed.extend(child.executed)
        self.events.extend(child.events)

    def rollback(self) -> None:
        """Undo every write, newest first."""
        while self._undo:
            self._undo.pop()()
        self._saved.clear()
        self.transfers.clear()
        self.executed.clear()
        self.events.clear()
