"""KYA Core - shared primitives for the ledger."""

from .auth import AccessControl, Role
from .clock import Clock, ManualClock, SystemClock
from .config import CoreSettings, clear_config_cache, get_config
from .custody import Custody, InMemoryCustody
from .events import EventBus, EventKind, LedgerEvent
from .exceptions import (
    ChallengePeriodActive,
    ChallengeWindowClosed,
    ClaimAlreadyResolved,
    ClaimNotChallengeable,
    ClaimNotFound,
    ConfigException,
    CooldownActive,
    CustodyError,
    IdentityNotFound,
    InsufficientBalance,
    InsufficientFunds,
    InvalidAmount,
    InvalidProofType,
    KYAException,
    NotFoundError,
    ProofAlreadyVerified,
    ReconciliationError,
    StakeNotVerified,
    Unauthorized,
    ValidationException,
)
from .logging import (
    OperationLogger,
    configure_logging,
    operation_logger,
)
from .registry import IdentityInfo, IdentityRegistry, IdentityStatus, InMemoryIdentityRegistry

__all__ = [
    # Access control
    "AccessControl",
    "Role",
    # Time
    "Clock",
    "ManualClock",
    "SystemClock",
    # Config
    "CoreSettings",
    "clear_config_cache",
    "get_config",
    # Collaborators
    "Custody",
    "InMemoryCustody",
    "IdentityInfo",
    "IdentityRegistry",
    "IdentityStatus",
    "InMemoryIdentityRegistry",
    # Events
    "EventBus",
    "EventKind",
    "LedgerEvent",
    # Exceptions
    "KYAException",
    "ValidationException",
    "ConfigException",
    "NotFoundError",
    "IdentityNotFound",
    "ClaimNotFound",
    "InvalidAmount",
    "InsufficientBalance",
    "CooldownActive",
    "StakeNotVerified",
    "ProofAlreadyVerified",
    "InvalidProofType",
    "ClaimAlreadyResolved",
    "ClaimNotChallengeable",
    "ChallengeWindowClosed",
    "ChallengePeriodActive",
    "Unauthorized",
    "CustodyError",
    "InsufficientFunds",
    "ReconciliationError",
    # Logging
    "configure_logging",
    "OperationLogger",
    "operation_logger",
]
