"""Collateral accounting per identity.

Each identity has at most one StakeRecord, created lazily by its first
stake and never deleted. The balance changes only through stake, unstake
and slash, can never go negative, and every change is mirrored in the
protocol-wide ``total_staked`` within the same journal.

Verified status is derived: an identity is verified while its balance is at
least the configured minimum stake. Verified identities may only withdraw
after the cooldown; unverified identities withdraw freely.

Cooldown reference points:
- stake: cooldown runs from the first stake (``staked_at``)
- request: cooldown runs from the pending unstake request
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ..core.auth import AccessControl, Role
from ..core.events import EventKind, LedgerEvent
from ..core.exceptions import (
    CooldownActive,
    IdentityNotFound,
    InsufficientBalance,
    InvalidAmount,
    Unauthorized,
)
from ..core.registry import IdentityRegistry
from .config import CooldownReference, LedgerConfig
from .journal import Journal
from .stats import ProtocolStats

logger = logging.getLogger(__name__)


def require_positive_amount(amount: Any, field: str = "amount") -> int:
    """Return amount if it is a positive int, else raise InvalidAmount."""
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmount(amount, field)
    return amount


@dataclass
class StakeRecord:
    """Collateral position of one identity."""

    identity_id: int
    amount: int
    staked_at: datetime
    verified: bool = False
    unstake_requested_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "identity_id": self.identity_id,
            "amount": self.amount,
            "staked_at": self.staked_at.isoformat(),
            "verified": self.verified,
            "unstake_requested_at": self.unstake_requested_at.isoformat() if self.unstake_requested_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StakeRecord:
        requested = data.get("unstake_requested_at")
        updated = data.get("updated_at")
        return cls(
            identity_id=int(data["identity_id"]),
            amount=int(data["amount"]),
            staked_at=datetime.fromisoformat(data["staked_at"]),
            verified=bool(data.get("verified", False)),
            unstake_requested_at=datetime.fromisoformat(requested) if requested else None,
            updated_at=datetime.fromisoformat(updated) if updated else None,
        )


class StakeLedger:
    """Per-identity collateral balances and unstake cooldowns."""

    def __init__(
        self,
        config: LedgerConfig,
        registry: IdentityRegistry,
        access: AccessControl,
        stats: ProtocolStats | None = None,
    ) -> None:
        self.config = config
        self._registry = registry
        self._access = access
        self._stats = stats or ProtocolStats()
        self._records: dict[int, StakeRecord] = {}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, identity_id: int) -> StakeRecord | None:
        return self._records.get(identity_id)

    def balance_of(self, identity_id: int) -> int:
        record = self._records.get(identity_id)
        return record.amount if record else 0

    def is_verified(self, identity_id: int) -> bool:
        record = self._records.get(identity_id)
        return bool(record and record.verified)

    def cooldown_ends_at(self, identity_id: int) -> datetime | None:
        """When a verified identity may next unstake, or None if it has no anchor yet."""
        record = self._records.get(identity_id)
        if record is None:
            return None
        if self.config.cooldown_reference == CooldownReference.REQUEST:
            if record.unstake_requested_at is None:
                return None
            return record.unstake_requested_at + self.config.cooldown_period
        return record.staked_at + self.config.cooldown_period

    def records(self) -> list[StakeRecord]:
        return list(self._records.values())

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_owner(self, caller: str, identity_id: int) -> str:
        if not self._registry.exists(identity_id):
            raise IdentityNotFound(identity_id)
        owner = self._registry.owner_wallet(identity_id)
        if caller != owner:
            logger.warning("Caller %s does not control identity %d", caller, identity_id)
            raise Unauthorized(caller, f"owner of identity {identity_id}")
        return owner

    def _set_amount(self, journal: Journal, record: StakeRecord, amount: int, now: datetime) -> None:
        """Write a new balance, recompute verified and mirror both in stats."""
        was_verified = record.verified
        delta = amount - record.amount
        record.amount = amount
        record.verified = amount >= self.config.minimum_stake
        record.updated_at = now
        verified_delta = int(record.verified) - int(was_verified)
        self._stats.record(journal, total_staked=delta, verified_identities=verified_delta)
        if verified_delta:
            logger.info(
                "Identity %d is now %s (balance %d)",
                record.identity_id,
                "verified" if record.verified else "unverified",
                amount,
            )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def stake(self, journal: Journal, caller: str, identity_id: int, amount: int, now: datetime) -> StakeRecord:
        """Credit collateral to an identity.

        The first stake creates the record and fixes ``staked_at``; later
        top-ups never move it. Queues a transfer of ``amount`` from the
        owner wallet into the vault.

        Raises:
            IdentityNotFound, InvalidAmount, Unauthorized
        """
        amount = require_positive_amount(amount)
        owner = self._require_owner(caller, identity_id)

        record = self._records.get(identity_id)
        if record is None:
            record = StakeRecord(identity_id=identity_id, amount=0, staked_at=now, updated_at=now)
            journal.insert(self._records, identity_id, record)
        else:
            journal.save(record)

        self._set_amount(journal, record, record.amount + amount, now)
        journal.transfer(owner, self.config.vault_address, amount, f"stake:{identity_id}")
        journal.emit(LedgerEvent(EventKind.STAKED, now, identity_id, {"amount": amount, "balance": record.amount}))
        return record

    def request_unstake(self, journal: Journal, caller: str, identity_id: int, now: datetime) -> StakeRecord | None:
        """Start the unstake cooldown for a verified identity.

        Idempotent: an existing request keeps its original timestamp. A
        no-op for identities without verified stake, since no cooldown
        applies to them.
        """
        self._require_owner(caller, identity_id)
        record = self._records.get(identity_id)
        if record is None or not record.verified:
            logger.debug("Unstake request for unverified identity %d ignored", identity_id)
            return record
        if record.unstake_requested_at is not None:
            return record

        journal.save(record)
        record.unstake_requested_at = now
        record.updated_at = now
        journal.emit(LedgerEvent(EventKind.UNSTAKE_REQUESTED, now, identity_id, {"amount": record.amount}))
        return record

    def unstake(self, journal: Journal, caller: str, identity_id: int, amount: int, now: datetime) -> StakeRecord:
        """Withdraw collateral back to the owner wallet.

        Raises:
            InvalidAmount, IdentityNotFound, Unauthorized
            InsufficientBalance: amount exceeds the balance
            CooldownActive: identity is verified and the cooldown has not elapsed
        """
        amount = require_positive_amount(amount)
        owner = self._require_owner(caller, identity_id)

        record = self._records.get(identity_id)
        balance = record.amount if record else 0
        if record is None or amount > balance:
            raise InsufficientBalance(identity_id, amount, balance)

        if record.verified:
            ends_at = self.cooldown_ends_at(identity_id)
            if ends_at is None or now < ends_at:
                raise CooldownActive(identity_id, ends_at)

        journal.save(record)
        self._set_amount(journal, record, balance - amount, now)
        record.unstake_requested_at = None
        journal.transfer(self.config.vault_address, owner, amount, f"unstake:{identity_id}")
        journal.emit(LedgerEvent(EventKind.UNSTAKED, now, identity_id, {"amount": amount, "balance": record.amount}))
        return record

    def slash(self, journal: Journal, caller: str, identity_id: int, amount: int, now: datetime) -> int:
        """Forcibly debit up to ``amount``; returns what was actually taken.

        Only the claim resolver (role ``slasher``) may slash. The debit is
        capped at the balance so the balance never goes negative. Funds stay
        in the vault; the resolver routes them.
        """
        self._access.require(Role.SLASHER, caller)
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
            raise InvalidAmount(amount)

        record = self._records.get(identity_id)
        if record is None:
            return 0
        slashed = min(amount, record.amount)
        if slashed == 0:
            return 0

        journal.save(record)
        self._set_amount(journal, record, record.amount - slashed, now)
        self._stats.record(journal, total_slashed=slashed)
        journal.emit(
            LedgerEvent(
                EventKind.SLASHED,
                now,
                identity_id,
                {"requested": amount, "amount": slashed, "balance": record.amount},
            )
        )
        logger.warning("Slashed %d from identity %d (requested %d)", slashed, identity_id, amount)
        return slashed

    def rederive_verified(self, journal: Journal, now: datetime) -> int:
        """Recompute verified flags after the minimum stake changed.

        Returns:
            Number of records whose status flipped.
        """
        flipped = 0
        for record in list(self._records.values()):
            if (record.amount >= self.config.minimum_stake) != record.verified:
                journal.save(record)
                self._set_amount(journal, record, record.amount, now)
                flipped += 1
        return flipped

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {"records": [r.to_dict() for r in self._records.values()]}

    def load(self, data: dict[str, Any]) -> None:
        self._records = {}
        for item in data.get("records", []):
            record = StakeRecord.from_dict(item)
            self._records[record.identity_id] = record
