"""Stake, claim and reputation ledgers behind the KYALedger facade."""

from .claims import RESOLVER_ADDRESS, Claim, ClaimResolver, ClaimStatus
from .config import MAX_FEE_BPS, CooldownReference, LedgerConfig, ProofTypeRule
from .gate import OperationGate
from .journal import Journal, Transfer
from .ledger import KYALedger
from .proofs import ProofLedger, proof_fingerprint
from .reputation import ProofResult, ReputationLedger, ReputationRecord, ReputationUpdate, Tier, get_tier
from .stake import StakeLedger, StakeRecord
from .stats import ProtocolStats, StatsSnapshot
from .store import LedgerState, load_snapshot, save_snapshot

__all__ = [
    "KYALedger",
    # Config
    "LedgerConfig",
    "CooldownReference",
    "ProofTypeRule",
    "MAX_FEE_BPS",
    # Stake
    "StakeLedger",
    "StakeRecord",
    # Claims
    "Claim",
    "ClaimResolver",
    "ClaimStatus",
    "RESOLVER_ADDRESS",
    # Reputation
    "ReputationLedger",
    "ReputationRecord",
    "ReputationUpdate",
    "ProofResult",
    "ProofLedger",
    "Tier",
    "get_tier",
    "proof_fingerprint",
    # Plumbing
    "Journal",
    "OperationGate",
    "Transfer",
    "ProtocolStats",
    "StatsSnapshot",
    # Persistence
    "LedgerState",
    "load_snapshot",
    "save_snapshot",
]
