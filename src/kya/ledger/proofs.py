"""Replay guard for externally supplied proofs.

Every applied attestation leaves a fingerprint: the SHA-256 of the
canonical JSON encoding of ``[identity, proof_type, payload_hex]``. A
fingerprint is recorded at most once and never expires; its presence is
the only replay check.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from typing import Any

from ..core.exceptions import ProofAlreadyVerified, ValidationException
from .journal import Journal

logger = logging.getLogger(__name__)


def _payload_bytes(payload: bytes | bytearray | str) -> bytes:
    if isinstance(payload, (bytes, bytearray)):
        return bytes(payload)
    if isinstance(payload, str):
        return payload.encode("utf-8")
    raise ValidationException("proof payload must be bytes or str", "proof_payload", type(payload).__name__)


def proof_fingerprint(identity_id: int, proof_type: str, payload: bytes | bytearray | str) -> str:
    """Deterministic fingerprint of one attestation."""
    canonical = json.dumps(
        [identity_id, proof_type, _payload_bytes(payload).hex()],
        separators=(",", ":"),
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class ProofLedger:
    """Per-identity sets of applied proof fingerprints."""

    def __init__(self) -> None:
        self._applied: dict[int, set[str]] = {}
        self._lock = threading.Lock()

    def _bucket(self, identity_id: int) -> set[str]:
        with self._lock:
            return self._applied.setdefault(identity_id, set())

    def contains(self, identity_id: int, fingerprint: str) -> bool:
        with self._lock:
            return fingerprint in self._applied.get(identity_id, ())

    def record(self, journal: Journal, identity_id: int, fingerprint: str) -> None:
        """Insert a fingerprint, or raise ProofAlreadyVerified if present."""
        bucket = self._bucket(identity_id)
        if fingerprint in bucket:
            logger.warning("Replayed proof %s for identity %d", fingerprint[:12], identity_id)
            raise ProofAlreadyVerified(identity_id, fingerprint)
        journal.add(bucket, fingerprint)

    def count(self, identity_id: int | None = None) -> int:
        with self._lock:
            if identity_id is not None:
                return len(self._applied.get(identity_id, ()))
            return sum(len(b) for b in self._applied.values())

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            return {str(k): sorted(v) for k, v in self._applied.items() if v}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProofLedger:
        ledger = cls()
        for identity_id, fingerprints in data.items():
            ledger._applied[int(identity_id)] = set(fingerprints)
        return ledger
