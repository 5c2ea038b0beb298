# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Custom exception hierarchy for the KYA ledger.

Every ledger rejection is a subclass of KYAException. All of them are
raised synchronously by the operation that detected the problem, and the
ledger rolls back any writes made before the raise.
"""

from __future__ import annotations

from typing import Any


class KYAException(Exception):  # noqa: N818
    """Base exception for all KYA errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ValidationException(KYAException):
    """Exception for validation errors.

    Raised when:
    - Input validation fails
    - Field values are out of range
    """

    def __init__(self, message: str, field: str | None = None, value: Any = None):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, details)
        self.field = field
        self.value = value


class ConfigException(KYAException):
    """Exception for configuration errors.

    Raised when:
    - A ledger parameter is out of range (e.g. fee above the 10% cap)
    - Tier thresholds are not strictly ascending
    - A proof type has a non-positive score increment
    """

    def __init__(self, message: str, setting: str | None = None):
        details = {}
        if setting:
            details["setting"] = setting
        super().__init__(message, details)
        self.setting = setting


class NotFoundError(KYAException):
    """Exception for resource not found errors."""

    def __init__(self, resource_type: str, resource_id: str):
        message = f"{resource_type} not found: {resource_id}"
        details = {
            "resource_type": resource_type,
            "resource_id": resource_id,
        }
        super().__init__(message, details)
        self.resource_type = resource_type
        self.resource_id = resource_id


# ============================================================================
# Ledger rejections
# ============================================================================


class IdentityNotFound(NotFoundError):
    """The identity registry does not recognize the identity."""

    def __init__(self, identity_id: int):
        super().__init__("Identity", str(identity_id))
        self.identity_id = identity_id


class ClaimNotFound(NotFoundError):
    """No claim exists under the given claim ID."""

    def __init__(self, claim_id: str):
        super().__init__("Claim", claim_id)
        self.claim_id = claim_id


class InvalidAmount(ValidationException):
    """Zero, negative or non-integer amount."""

    def __init__(self, amount: Any, field: str = "amount"):
        super().__init__(f"Invalid amount: {amount!r}", field, amount)


class InsufficientBalance(KYAException):
    """Debit exceeds the collateral available to the identity."""

    def __init__(self, identity_id: int, requested: int, available: int):
        super().__init__(
            f"Identity {identity_id} has {available} staked, cannot debit {requested}",
            {"identity_id": identity_id, "requested": requested, "available": available},
        )
        self.identity_id = identity_id
        self.requested = requested
        self.available = available


class CooldownActive(KYAException):
    """Unstake attempted by a verified identity before the cooldown ended."""

    def __init__(self, identity_id: int, ends_at: Any = None):
        details: dict[str, Any] = {"identity_id": identity_id}
        if ends_at is not None:
            details["ends_at"] = ends_at.isoformat()
            message = f"Unstake cooldown for identity {identity_id} active until {ends_at.isoformat()}"
        else:
            message = f"Unstake for identity {identity_id} requires a prior unstake request"
        super().__init__(message, details)
        self.identity_id = identity_id
        self.ends_at = ends_at


class StakeNotVerified(KYAException):
    """Claim submitted against an identity without verified stake."""

    def __init__(self, identity_id: int):
        super().__init__(
            f"Identity {identity_id} has no verified stake",
            {"identity_id": identity_id},
        )
        self.identity_id = identity_id


class ProofAlreadyVerified(KYAException):
    """The proof fingerprint has already been applied."""

    def __init__(self, identity_id: int, fingerprint: str):
        super().__init__(
            f"Proof already applied for identity {identity_id}",
            {"identity_id": identity_id, "fingerprint": fingerprint},
        )
        self.identity_id = identity_id
        self.fingerprint = fingerprint


class InvalidProofType(ValidationException):
    """Proof type has no configured score increment."""

    def __init__(self, proof_type: str):
        super().__init__(f"Unknown proof type: {proof_type}", "proof_type", proof_type)
        self.proof_type = proof_type


class ClaimAlreadyResolved(KYAException):
    """Resolution attempted on a claim in a terminal state."""

    def __init__(self, claim_id: str, status: str):
        super().__init__(
            f"Claim {claim_id} already resolved ({status})",
            {"claim_id": claim_id, "status": status},
        )
        self.claim_id = claim_id
        self.status = status


class ClaimNotChallengeable(KYAException):
    """Challenge attempted on a claim that is no longer pending."""

    def __init__(self, claim_id: str, status: str):
        super().__init__(
            f"Claim {claim_id} cannot be challenged ({status})",
            {"claim_id": claim_id, "status": status},
        )
        self.claim_id = claim_id
        self.status = status


class ChallengeWindowClosed(KYAException):
    """Challenge attempted at or after the claim's challenge deadline."""

    def __init__(self, claim_id: str, deadline: Any):
        super().__init__(
            f"Challenge window for claim {claim_id} closed at {deadline.isoformat()}",
            {"claim_id": claim_id, "deadline": deadline.isoformat()},
        )
        self.claim_id = claim_id
        self.deadline = deadline


class ChallengePeriodActive(KYAException):
    """Resolution attempted before the challenge window elapsed."""

    def __init__(self, claim_id: str, deadline: Any):
        super().__init__(
            f"Challenge period for claim {claim_id} runs until {deadline.isoformat()}",
            {"claim_id": claim_id, "deadline": deadline.isoformat()},
        )
        self.claim_id = claim_id
        self.deadline = deadline


class Unauthorized(KYAException):
    """Caller lacks the role or wallet control the operation requires."""

    def __init__(self, caller: str, required: str):
        super().__init__(
            f"{caller} is not authorized: requires {required}",
            {"caller": caller, "required": required},
        )
        self.caller = caller
        self.required = required


# ============================================================================
# Collaborator errors
# ============================================================================


class CustodyError(KYAException):
    """A collateral transfer could not be executed."""

    pass


class InsufficientFunds(CustodyError):
    """Source wallet cannot cover a transfer."""

    def __init__(self, address: str, requested: int, available: int):
        super().__init__(
            f"{address} holds {available}, cannot transfer {requested}",
            {"address": address, "requested": requested, "available": available},
        )
        self.address = address
        self.requested = requested
        self.available = available


class ReconciliationError(KYAException):
    """Custody balance and ledger aggregates disagree."""

    pass
