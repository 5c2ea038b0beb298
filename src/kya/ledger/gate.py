"""Ledger-wide shared/exclusive gate.

Ordinary operations hold the gate shared and serialize among themselves
on per-identity locks. Operations that read or rewrite every identity at
once (configuration swaps, reconciliation) hold it exclusively, so no
operation on any identity, including one staking for the first time, runs
alongside them.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager

from ..core.exceptions import KYAException


class OperationGate:
    """Reader-preferring shared/exclusive lock.

    Shared holders never queue behind a waiting exclusive holder, so a
    thread that re-enters the ledger from inside an operation cannot block
    on itself. The exclusive holder may also enter shared, and may
    re-enter exclusive.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._shared = 0
        self._owner: int | None = None
        self._depth = 0
        self._local = threading.local()

    def _shared_depth(self) -> int:
        return getattr(self._local, "depth", 0)

    @contextmanager
    def shared(self) -> Iterator[None]:
        me = threading.get_ident()
        with self._cond:
            while self._owner is not None and self._owner != me:
                self._cond.wait()
            self._shared += 1
        self._local.depth = self._shared_depth() + 1
        try:
            yield
        finally:
            self._local.depth -= 1
            with self._cond:
                self._shared -= 1
                self._cond.notify_all()

    @contextmanager
    def exclusive(self) -> Iterator[None]:
        """Wait until no operation is in progress, then hold off new ones.

        Raises:
            KYAException: the calling thread is itself inside an operation
        """
        me = threading.get_ident()
        if self._shared_depth():
            raise KYAException("Ledger-wide operation cannot run inside another ledger operation")
        with self._cond:
            if self._owner == me:
                self._depth += 1
            else:
                while self._owner is not None or self._shared:
                    self._cond.wait()
                self._owner = me
                self._depth = 1
        try:
            yield
        finally:
            with self._cond:
                self._depth -= 1
                if self._depth == 0:
                    self._owner = None
                self._cond.notify_all()
