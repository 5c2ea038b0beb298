"""Collateral custody collaborator.

Custody moves collateral tokens between addresses: from an identity's
wallet into the vault on stake, from the vault back on unstake, and from
the vault to claimants and the fee sink on slashing. The ledger treats
every transfer as a potentially reentrant external call and only issues
it after its own state is committed.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import Any, Protocol, runtime_checkable

from .exceptions import InsufficientFunds, InvalidAmount

logger = logging.getLogger(__name__)


@runtime_checkable
class Custody(Protocol):
    """Token transfer boundary."""

    def transfer(self, source: str, destination: str, amount: int) -> None: ...

    def balance_of(self, address: str) -> int: ...


class InMemoryCustody:
    """Dict-backed token balances for tests and the CLI.

    Transfers are atomic per call and fail with InsufficientFunds rather
    than overdrawing.
    """

    def __init__(self, balances: dict[str, int] | None = None) -> None:
        self._balances: dict[str, int] = defaultdict(int)
        self._balances.update(balances or {})
        self._lock = threading.Lock()

    def mint(self, address: str, amount: int) -> int:
        """Credit new tokens to an address. Returns the new balance."""
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmount(amount)
        with self._lock:
            self._balances[address] += amount
            return self._balances[address]

    def transfer(self, source: str, destination: str, amount: int) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmount(amount)
        with self._lock:
            available = self._balances[source]
            if available < amount:
                raise InsufficientFunds(source, amount, available)
            self._balances[source] = available - amount
            self._balances[destination] += amount
        logger.debug("Transferred %d from %s to %s", amount, source, destination)

    def balance_of(self, address: str) -> int:
        with self._lock:
            return self._balances.get(address, 0)

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            return {"balances": {k: v for k, v in self._balances.items() if v}}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InMemoryCustody:
        return cls({k: int(v) for k, v in data.get("balances", {}).items()})
