"""Claim lifecycle against staked identities.

A counter-party files a claim against an identity with verified stake. The
target may challenge it while the challenge window is open. An adjudicator
then resolves it exactly once:

- approved: slash min(requested, current balance), pay the claimant the
  slashed amount minus the protocol fee, pay the fee to the fee sink
- rejected: no funds move

The payout is capped at whatever balance remains at resolution time, and
the fee is computed on the amount actually slashed.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any

from ..core.auth import AccessControl, Role
from ..core.events import EventKind, LedgerEvent
from ..core.exceptions import (
    ChallengePeriodActive,
    ChallengeWindowClosed,
    ClaimAlreadyResolved,
    ClaimNotChallengeable,
    ClaimNotFound,
    IdentityNotFound,
    StakeNotVerified,
    Unauthorized,
)
from ..core.registry import IdentityRegistry
from .config import LedgerConfig
from .journal import Journal
from .stake import StakeLedger, require_positive_amount
from .stats import ProtocolStats

logger = logging.getLogger(__name__)

RESOLVER_ADDRESS = "kya:claim-resolver"


class ClaimStatus(StrEnum):
    PENDING = "pending"
    CHALLENGED = "challenged"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in (ClaimStatus.APPROVED, ClaimStatus.REJECTED)


def claim_id_for(counter: int, target_identity: int, claimant: str, submitted_at: datetime) -> str:
    """Unique claim identifier from the submission counter and its context."""
    canonical = json.dumps(
        [counter, target_identity, claimant, submitted_at.isoformat()],
        separators=(",", ":"),
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass
class Claim:
    """A request to slash a target identity's stake."""

    id: str
    target_identity: int
    claimant: str
    amount_requested: int
    reason: str
    submitted_at: datetime
    challenge_deadline: datetime
    status: ClaimStatus = ClaimStatus.PENDING
    challenged_at: datetime | None = None
    resolved_at: datetime | None = None
    resolver: str | None = None
    slashed_amount: int = 0
    fee: int = 0
    payout: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "target_identity": self.target_identity,
            "claimant": self.claimant,
            "amount_requested": self.amount_requested,
            "reason": self.reason,
            "submitted_at": self.submitted_at.isoformat(),
            "challenge_deadline": self.challenge_deadline.isoformat(),
            "status": self.status.value,
            "challenged_at": self.challenged_at.isoformat() if self.challenged_at else None,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "resolver": self.resolver,
            "slashed_amount": self.slashed_amount,
            "fee": self.fee,
            "payout": self.payout,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Claim:
        def _dt(key: str) -> datetime | None:
            value = data.get(key)
            return datetime.fromisoformat(value) if value else None

        return cls(
            id=data["id"],
            target_identity=int(data["target_identity"]),
            claimant=data["claimant"],
            amount_requested=int(data["amount_requested"]),
            reason=data.get("reason", ""),
            submitted_at=datetime.fromisoformat(data["submitted_at"]),
            challenge_deadline=datetime.fromisoformat(data["challenge_deadline"]),
            status=ClaimStatus(data["status"]),
            challenged_at=_dt("challenged_at"),
            resolved_at=_dt("resolved_at"),
            resolver=data.get("resolver"),
            slashed_amount=int(data.get("slashed_amount", 0)),
            fee=int(data.get("fee", 0)),
            payout=int(data.get("payout", 0)),
        )


class ClaimResolver:
    """Append-only claim table plus the submit/challenge/resolve transitions.

    The resolver slashes through StakeLedger under its own principal
    (``RESOLVER_ADDRESS``), which must hold the slasher role.
    """

    def __init__(
        self,
        config: LedgerConfig,
        registry: IdentityRegistry,
        access: AccessControl,
        stakes: StakeLedger,
        stats: ProtocolStats | None = None,
        address: str = RESOLVER_ADDRESS,
    ) -> None:
        self.config = config
        self.address = address
        self._registry = registry
        self._access = access
        self._stakes = stakes
        self._stats = stats or ProtocolStats()
        self._claims: dict[str, Claim] = {}
        self._counter = 0
        self._counter_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find(self, claim_id: str) -> Claim | None:
        return self._claims.get(claim_id)

    def get(self, claim_id: str) -> Claim:
        claim = self._claims.get(claim_id)
        if claim is None:
            raise ClaimNotFound(claim_id)
        return claim

    def claims_for(self, identity_id: int) -> list[Claim]:
        return sorted(
            (c for c in list(self._claims.values()) if c.target_identity == identity_id),
            key=lambda c: c.submitted_at,
        )

    def open_claims(self) -> list[Claim]:
        return sorted(
            (c for c in list(self._claims.values()) if not c.status.is_terminal),
            key=lambda c: c.submitted_at,
        )

    def all_claims(self) -> list[Claim]:
        return list(self._claims.values())

    def _next_counter(self) -> int:
        # Gaps left by rejected submissions are harmless; IDs only need to be unique
        with self._counter_lock:
            self._counter += 1
            return self._counter

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def submit_claim(
        self,
        journal: Journal,
        caller: str,
        target_identity: int,
        amount: int,
        reason: str,
        now: datetime,
    ) -> Claim:
        """File a claim against an identity with verified stake.

        Raises:
            InvalidAmount, IdentityNotFound
            StakeNotVerified: target has no verified stake
        """
        amount = require_positive_amount(amount)
        if not self._registry.exists(target_identity):
            raise IdentityNotFound(target_identity)
        if not self._stakes.is_verified(target_identity):
            raise StakeNotVerified(target_identity)

        claim = Claim(
            id=claim_id_for(self._next_counter(), target_identity, caller, now),
            target_identity=target_identity,
            claimant=caller,
            amount_requested=amount,
            reason=reason,
            submitted_at=now,
            challenge_deadline=now + self.config.challenge_period,
        )
        journal.insert(self._claims, claim.id, claim)
        self._stats.record(journal, total_claims=1, open_claims=1)
        journal.emit(
            LedgerEvent(
                EventKind.CLAIM_SUBMITTED,
                now,
                target_identity,
                {"claim_id": claim.id, "claimant": caller, "amount": amount},
            )
        )
        logger.info("Claim %s filed by %s against identity %d for %d", claim.id[:12], caller, target_identity, amount)
        return claim

    def challenge_claim(self, journal: Journal, caller: str, claim_id: str, now: datetime) -> Claim:
        """Contest a pending claim before its challenge deadline.

        Raises:
            ClaimNotFound
            Unauthorized: caller does not control the target's wallet
            ClaimNotChallengeable: claim is not pending
            ChallengeWindowClosed: deadline has passed
        """
        claim = self.get(claim_id)
        if caller != self._registry.owner_wallet(claim.target_identity):
            raise Unauthorized(caller, f"owner of identity {claim.target_identity}")
        if claim.status != ClaimStatus.PENDING:
            raise ClaimNotChallengeable(claim_id, claim.status.value)
        if now >= claim.challenge_deadline:
            raise ChallengeWindowClosed(claim_id, claim.challenge_deadline)

        journal.save(claim)
        claim.status = ClaimStatus.CHALLENGED
        claim.challenged_at = now
        journal.emit(LedgerEvent(EventKind.CLAIM_CHALLENGED, now, claim.target_identity, {"claim_id": claim_id}))
        logger.info("Claim %s challenged by owner of identity %d", claim_id[:12], claim.target_identity)
        return claim

    def resolve_claim(
        self,
        journal: Journal,
        caller: str,
        claim_id: str,
        approved: bool,
        now: datetime,
        waive_challenge_period: bool = False,
    ) -> Claim:
        """Resolve a claim exactly once.

        Pending and challenged claims resolve the same way; any arbitration
        a challenge calls for happens before the adjudicator calls this.

        Raises:
            Unauthorized: caller is not an adjudicator
            ClaimNotFound
            ClaimAlreadyResolved: claim is already approved or rejected
            ChallengePeriodActive: window still open and not waived
        """
        self._access.require(Role.ADJUDICATOR, caller)
        claim = self.get(claim_id)
        if claim.status.is_terminal:
            raise ClaimAlreadyResolved(claim_id, claim.status.value)
        if not waive_challenge_period and now < claim.challenge_deadline:
            raise ChallengePeriodActive(claim_id, claim.challenge_deadline)

        journal.save(claim)
        claim.resolved_at = now
        claim.resolver = caller

        if approved:
            requested = min(claim.amount_requested, self._stakes.balance_of(claim.target_identity))
            slashed = self._stakes.slash(journal, self.address, claim.target_identity, requested, now)
            fee = self.config.fee_for(slashed)
            payout = slashed - fee
            claim.status = ClaimStatus.APPROVED
            claim.slashed_amount = slashed
            claim.fee = fee
            claim.payout = payout
            self._stats.record(journal, total_fees=fee)
            journal.transfer(self.config.vault_address, claim.claimant, payout, f"claim:{claim_id}")
            journal.transfer(self.config.vault_address, self.config.fee_sink, fee, f"fee:{claim_id}")
            if slashed < claim.amount_requested:
                logger.info(
                    "Claim %s capped at %d of %d requested",
                    claim_id[:12],
                    slashed,
                    claim.amount_requested,
                )
        else:
            claim.status = ClaimStatus.REJECTED

        self._stats.record(journal, open_claims=-1)
        journal.emit(
            LedgerEvent(
                EventKind.CLAIM_RESOLVED,
                now,
                claim.target_identity,
                {
                    "claim_id": claim_id,
                    "approved": approved,
                    "slashed_amount": claim.slashed_amount,
                    "fee": claim.fee,
                    "payout": claim.payout,
                },
            )
        )
        logger.info("Claim %s resolved: %s", claim_id[:12], claim.status.value)
        return claim

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "counter": self._counter,
            "claims": [c.to_dict() for c in self._claims.values()],
        }

    def load(self, data: dict[str, Any]) -> None:
        self._claims = {}
        for item in data.get("claims", []):
            claim = Claim.from_dict(item)
            self._claims[claim.id] = claim
        self._counter = int(data.get("counter", len(self._claims)))
