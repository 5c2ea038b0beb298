"""Reputation scores, tiers and badges.

Reputation only ever grows: each verified proof adds its configured score
increment, bumps the verified-proof count, may award a one-time badge and
may lift the identity into a higher tier. There is no decay and no
reversal in this ledger.

Tiers (ordinal, by fixed ascending thresholds):
- NONE: below the first threshold
- BRONZE, SILVER, GOLD, PLATINUM: successive thresholds
- WHALE: at or above the last threshold
"""

from __future__ import annotations

import logging
from bisect import bisect_right
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import Any

from ..core.auth import AccessControl, Role
from ..core.config import DEFAULT_TIER_THRESHOLDS
from ..core.events import EventKind, LedgerEvent
from ..core.exceptions import IdentityNotFound, InvalidProofType
from ..core.registry import IdentityRegistry
from .config import LedgerConfig
from .journal import Journal
from .proofs import ProofLedger, proof_fingerprint
from .stats import ProtocolStats

logger = logging.getLogger(__name__)


class Tier(IntEnum):
    NONE = 0
    BRONZE = 1
    SILVER = 2
    GOLD = 3
    PLATINUM = 4
    WHALE = 5


def get_tier(score: int, thresholds: Sequence[int] = DEFAULT_TIER_THRESHOLDS) -> Tier:
    """Map a score to its tier.

    A score exactly equal to a threshold belongs to that threshold's tier.

    Examples:
        >>> get_tier(99)
        <Tier.NONE: 0>
        >>> get_tier(100)
        <Tier.BRONZE: 1>
    """
    return Tier(bisect_right(list(thresholds), score))


@dataclass
class ReputationUpdate:
    """One score change caused by one proof."""

    old_score: int
    new_score: int
    old_tier: Tier
    new_tier: Tier
    proof_type: str
    timestamp: datetime
    metadata: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "old_score": self.old_score,
            "new_score": self.new_score,
            "old_tier": self.old_tier.name,
            "new_tier": self.new_tier.name,
            "proof_type": self.proof_type,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReputationUpdate:
        return cls(
            old_score=int(data["old_score"]),
            new_score=int(data["new_score"]),
            old_tier=Tier[data["old_tier"]],
            new_tier=Tier[data["new_tier"]],
            proof_type=data["proof_type"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            metadata=data.get("metadata", ""),
        )


@dataclass
class ReputationRecord:
    """Reputation state of one identity."""

    identity_id: int
    score: int = 0
    tier: Tier = Tier.NONE
    verified_proof_count: int = 0
    badges: set[str] = field(default_factory=set)
    history: list[ReputationUpdate] = field(default_factory=list)

    def to_dict(self, include_history: bool = True) -> dict[str, Any]:
        result: dict[str, Any] = {
            "identity_id": self.identity_id,
            "score": self.score,
            "tier": self.tier.name,
            "verified_proof_count": self.verified_proof_count,
            "badges": sorted(self.badges),
        }
        if include_history:
            result["history"] = [u.to_dict() for u in self.history]
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReputationRecord:
        return cls(
            identity_id=int(data["identity_id"]),
            score=int(data["score"]),
            tier=Tier[data["tier"]],
            verified_proof_count=int(data["verified_proof_count"]),
            badges=set(data.get("badges", [])),
            history=[ReputationUpdate.from_dict(u) for u in data.get("history", [])],
        )


@dataclass(frozen=True)
class ProofResult:
    """Outcome of a successful apply_proof call."""

    identity_id: int
    proof_type: str
    fingerprint: str
    score_delta: int
    new_score: int
    tier: Tier
    previous_tier: Tier
    badge_awarded: str | None = None

    @property
    def tier_changed(self) -> bool:
        return self.tier != self.previous_tier

    def to_dict(self) -> dict[str, Any]:
        return {
            "identity_id": self.identity_id,
            "proof_type": self.proof_type,
            "fingerprint": self.fingerprint,
            "score_delta": self.score_delta,
            "new_score": self.new_score,
            "tier": self.tier.name,
            "previous_tier": self.previous_tier.name,
            "badge_awarded": self.badge_awarded,
        }


class ReputationLedger:
    """Applies proofs to per-identity reputation records."""

    def __init__(
        self,
        config: LedgerConfig,
        registry: IdentityRegistry,
        access: AccessControl,
        proofs: ProofLedger | None = None,
        stats: ProtocolStats | None = None,
    ) -> None:
        self.config = config
        self._registry = registry
        self._access = access
        self.proofs = proofs or ProofLedger()
        self._stats = stats or ProtocolStats()
        self._records: dict[int, ReputationRecord] = {}

    def get(self, identity_id: int) -> ReputationRecord | None:
        return self._records.get(identity_id)

    def _get_or_create(self, journal: Journal, identity_id: int) -> ReputationRecord:
        record = self._records.get(identity_id)
        if record is None:
            record = ReputationRecord(identity_id=identity_id)
            journal.insert(self._records, identity_id, record)
        else:
            journal.save(record)
        return record

    def apply_proof(
        self,
        journal: Journal,
        caller: str,
        identity_id: int,
        proof_type: str,
        proof_payload: bytes | str,
        metadata: str,
        now: datetime,
    ) -> ProofResult:
        """Apply one attestation to an identity's reputation.

        Raises:
            Unauthorized: caller is not a prover
            IdentityNotFound: registry does not know the identity
            InvalidProofType: proof type has no configured score
            ValidationException: payload is neither bytes nor str
            ProofAlreadyVerified: identical attestation already applied
        """
        self._access.require(Role.PROVER, caller)
        if not self._registry.exists(identity_id):
            raise IdentityNotFound(identity_id)
        rule = self.config.proof_types.get(proof_type)
        if rule is None:
            raise InvalidProofType(proof_type)

        fingerprint = proof_fingerprint(identity_id, proof_type, proof_payload)
        self.proofs.record(journal, identity_id, fingerprint)

        record = self._get_or_create(journal, identity_id)
        old_score, old_tier = record.score, record.tier
        record.score += rule.score_increment
        record.verified_proof_count += 1
        # max() keeps the tier monotonic even if thresholds are reconfigured upward
        record.tier = max(record.tier, get_tier(record.score, self.config.tier_thresholds))
        record.history.append(
            ReputationUpdate(
                old_score=old_score,
                new_score=record.score,
                old_tier=old_tier,
                new_tier=record.tier,
                proof_type=proof_type,
                timestamp=now,
                metadata=metadata,
            )
        )

        self._stats.record(journal, total_proofs=1)

        badge_awarded = None
        if rule.badge and rule.badge not in record.badges:
            record.badges.add(rule.badge)
            badge_awarded = rule.badge

        journal.emit(
            LedgerEvent(
                EventKind.PROOF_VERIFIED,
                now,
                identity_id,
                {"proof_type": proof_type, "score_increase": rule.score_increment, "fingerprint": fingerprint},
            )
        )
        journal.emit(
            LedgerEvent(
                EventKind.REPUTATION_UPDATED,
                now,
                identity_id,
                {
                    "old_score": old_score,
                    "new_score": record.score,
                    "old_tier": old_tier.name,
                    "new_tier": record.tier.name,
                },
            )
        )
        if badge_awarded:
            journal.emit(LedgerEvent(EventKind.BADGE_AWARDED, now, identity_id, {"badge": badge_awarded}))

        if record.tier != old_tier:
            logger.info("Identity %d reached tier %s (score %d)", identity_id, record.tier.name, record.score)

        return ProofResult(
            identity_id=identity_id,
            proof_type=proof_type,
            fingerprint=fingerprint,
            score_delta=rule.score_increment,
            new_score=record.score,
            tier=record.tier,
            previous_tier=old_tier,
            badge_awarded=badge_awarded,
        )

    def is_proof_applied(self, identity_id: int, proof_type: str, proof_payload: bytes | str) -> bool:
        return self.proofs.contains(identity_id, proof_fingerprint(identity_id, proof_type, proof_payload))

    def records(self) -> list[ReputationRecord]:
        return list(self._records.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "records": [r.to_dict() for r in self._records.values()],
            "proofs": self.proofs.to_dict(),
        }

    def load(self, data: dict[str, Any]) -> None:
        self._records = {}
        for item in data.get("records", []):
            record = ReputationRecord.from_dict(item)
            self._records[record.identity_id] = record
        self.proofs = ProofLedger.from_dict(data.get("proofs", {}))
