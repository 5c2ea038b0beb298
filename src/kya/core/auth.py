"""Role-based authorization for ledger callers.

Provers, adjudicators and admins are external callers identified by an
address. The ledger trusts role membership entirely: whatever address holds
the prover role may apply proofs, whatever address holds the adjudicator
role may resolve claims. Whether a role is held by one trusted caller or a
set of them is configuration, not code.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from enum import StrEnum
from typing import Any

from .exceptions import Unauthorized

logger = logging.getLogger(__name__)


class Role(StrEnum):
    ADMIN = "admin"
    PROVER = "prover"
    ADJUDICATOR = "adjudicator"
    SLASHER = "slasher"  # held only by the claim resolver


class AccessControl:
    """Thread-safe role -> addresses table.

    Args:
        grants: Optional initial mapping of role to addresses.
    """

    def __init__(self, grants: dict[Role | str, Iterable[str]] | None = None) -> None:
        self._members: dict[Role, set[str]] = {role: set() for role in Role}
        self._lock = threading.Lock()
        for role, addresses in (grants or {}).items():
            for address in addresses:
                self.grant(Role(role), address)

    def grant(self, role: Role, address: str) -> bool:
        """Grant a role. Returns False if the address already held it."""
        with self._lock:
            members = self._members[Role(role)]
            if address in members:
                return False
            members.add(address)
        logger.info("Granted %s to %s", role, address)
        return True

    def revoke(self, role: Role, address: str) -> bool:
        """Revoke a role. Returns False if the address did not hold it."""
        with self._lock:
            members = self._members[Role(role)]
            if address not in members:
                return False
            members.discard(address)
        logger.info("Revoked %s from %s", role, address)
        return True

    def has_role(self, role: Role, address: str) -> bool:
        with self._lock:
            return address in self._members[Role(role)]

    def members(self, role: Role) -> frozenset[str]:
        with self._lock:
            return frozenset(self._members[Role(role)])

    def require(self, role: Role, caller: str) -> None:
        """Raise Unauthorized unless caller holds role."""
        if not self.has_role(role, caller):
            logger.warning("Unauthorized %s call by %s", role, caller)
            raise Unauthorized(caller, f"role:{role}")

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            return {role.value: sorted(members) for role, members in self._members.items()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AccessControl:
        return cls({Role(role): addresses for role, addresses in data.items()})
