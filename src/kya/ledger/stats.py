"""Protocol-wide aggregates.

The collateral custody balance is the one resource shared by every
identity. Each credit or debit to a stake record is mirrored here in the
same operation, and rolled back as a compensating delta so that concurrent
operations on other identities are never clobbered.
"""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass, fields
from typing import Any

from .journal import Journal


@dataclass
class StatsSnapshot:
    total_staked: int = 0
    total_slashed: int = 0
    total_fees: int = 0
    total_claims: int = 0
    open_claims: int = 0
    verified_identities: int = 0
    total_proofs: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class ProtocolStats:
    """Thread-safe counters updated through a journal."""

    def __init__(self, snapshot: StatsSnapshot | None = None) -> None:
        self._values = snapshot or StatsSnapshot()
        self._lock = threading.Lock()

    def _apply(self, deltas: dict[str, int]) -> None:
        with self._lock:
            for name, delta in deltas.items():
                setattr(self._values, name, getattr(self._values, name) + delta)

    def record(self, journal: Journal, **deltas: int) -> None:
        """Apply deltas now; subtract them again if the journal rolls back."""
        deltas = {k: v for k, v in deltas.items() if v}
        if not deltas:
            return
        self._apply(deltas)
        journal.on_rollback(lambda: self._apply({k: -v for k, v in deltas.items()}))

    def snapshot(self) -> StatsSnapshot:
        with self._lock:
            return StatsSnapshot(**{f.name: getattr(self._values, f.name) for f in fields(StatsSnapshot)})

    def to_dict(self) -> dict[str, Any]:
        return self.snapshot().to_dict()

    def load(self, data: dict[str, Any]) -> None:
        """Replace all counters with values from a snapshot."""
        known = {f.name for f in fields(StatsSnapshot)}
        with self._lock:
            self._values = StatsSnapshot(**{k: int(v) for k, v in data.items() if k in known})
