"""Ledger events and the in-process event bus.

Events are published only after the operation that produced them has
committed, so subscribers never observe state that might still roll back.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict, deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_SIZE = 1000


class EventKind(StrEnum):
    STAKED = "staked"
    UNSTAKE_REQUESTED = "unstake_requested"
    UNSTAKED = "unstaked"
    SLASHED = "slashed"
    CLAIM_SUBMITTED = "claim_submitted"
    CLAIM_CHALLENGED = "claim_challenged"
    CLAIM_RESOLVED = "claim_resolved"
    PROOF_VERIFIED = "proof_verified"
    REPUTATION_UPDATED = "reputation_updated"
    BADGE_AWARDED = "badge_awarded"


@dataclass(frozen=True)
class LedgerEvent:
    """Something that happened to the ledger."""

    kind: EventKind
    timestamp: datetime
    identity_id: int | None = None
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "timestamp": self.timestamp.isoformat(),
            "identity_id": self.identity_id,
            "data": self.data,
        }


Subscriber = Callable[[LedgerEvent], None]


class EventBus:
    """Synchronous publish/subscribe with a bounded history.

    Subscriber exceptions are logged and do not propagate: by the time an
    event is published the ledger state is already final.
    """

    def __init__(self, history_size: int = DEFAULT_HISTORY_SIZE) -> None:
        self._subscribers: dict[EventKind | None, list[Subscriber]] = defaultdict(list)
        self._history: deque[LedgerEvent] = deque(maxlen=history_size)
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber, kind: EventKind | None = None) -> None:
        """Register a callback for one event kind, or all kinds if None."""
        with self._lock:
            self._subscribers[kind].append(callback)

    def unsubscribe(self, callback: Subscriber, kind: EventKind | None = None) -> None:
        with self._lock:
            if callback in self._subscribers[kind]:
                self._subscribers[kind].remove(callback)

    def publish(self, event: LedgerEvent) -> None:
        with self._lock:
            self._history.append(event)
            callbacks = list(self._subscribers[event.kind]) + list(self._subscribers[None])
        for callback in callbacks:
            try:
                callback(event)
            except Exception:
                logger.exception("Event subscriber failed for %s", event.kind)

    def history(self, kind: EventKind | None = None) -> list[LedgerEvent]:
        with self._lock:
            if kind is None:
                return list(self._history)
            return [e for e in self._history if e.kind == kind]
