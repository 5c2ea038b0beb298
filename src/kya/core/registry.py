"""Identity registry collaborator.

The ledger never issues or transfers identities. It only asks the registry
whether an identity exists, which wallet currently controls it, when it
was created and what its lifecycle status is.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Protocol, runtime_checkable

from .exceptions import IdentityNotFound

logger = logging.getLogger(__name__)


class IdentityStatus(StrEnum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    REVOKED = "revoked"


@runtime_checkable
class IdentityRegistry(Protocol):
    """Read-only view of identity ownership used by the ledger."""

    def exists(self, identity_id: int) -> bool: ...

    def owner_wallet(self, identity_id: int) -> str: ...

    def created_at(self, identity_id: int) -> datetime: ...

    def status(self, identity_id: int) -> IdentityStatus: ...


@dataclass
class IdentityInfo:
    """One registered identity."""

    identity_id: int
    owner: str
    created_at: datetime
    status: IdentityStatus = IdentityStatus.ACTIVE

    def to_dict(self) -> dict[str, Any]:
        return {
            "identity_id": self.identity_id,
            "owner": self.owner,
            "created_at": self.created_at.isoformat(),
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IdentityInfo:
        return cls(
            identity_id=int(data["identity_id"]),
            owner=data["owner"],
            created_at=datetime.fromisoformat(data["created_at"]),
            status=IdentityStatus(data.get("status", IdentityStatus.ACTIVE.value)),
        )


class InMemoryIdentityRegistry:
    """Dict-backed registry for tests and the CLI.

    Each identity has exactly one controlling wallet at any time;
    transfer() replaces it.
    """

    def __init__(self) -> None:
        self._identities: dict[int, IdentityInfo] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def register(
        self,
        owner: str,
        created_at: datetime | None = None,
        identity_id: int | None = None,
    ) -> int:
        """Register a new identity and return its ID."""
        with self._lock:
            if identity_id is None:
                identity_id = self._next_id
            elif identity_id in self._identities:
                raise ValueError(f"Identity {identity_id} already registered")
            self._identities[identity_id] = IdentityInfo(
                identity_id=identity_id,
                owner=owner,
                created_at=created_at or datetime.now(UTC),
            )
            self._next_id = max(self._next_id, identity_id + 1)
        logger.info("Registered identity %d for %s", identity_id, owner)
        return identity_id

    def transfer(self, identity_id: int, new_owner: str) -> None:
        with self._lock:
            self._get(identity_id).owner = new_owner

    def set_status(self, identity_id: int, status: IdentityStatus) -> None:
        with self._lock:
            self._get(identity_id).status = IdentityStatus(status)

    def _get(self, identity_id: int) -> IdentityInfo:
        info = self._identities.get(identity_id)
        if info is None:
            raise IdentityNotFound(identity_id)
        return info

    def exists(self, identity_id: int) -> bool:
        with self._lock:
            return identity_id in self._identities

    def owner_wallet(self, identity_id: int) -> str:
        with self._lock:
            return self._get(identity_id).owner

    def created_at(self, identity_id: int) -> datetime:
        with self._lock:
            return self._get(identity_id).created_at

    def status(self, identity_id: int) -> IdentityStatus:
        with self._lock:
            return self._get(identity_id).status

    def get(self, identity_id: int) -> IdentityInfo:
        with self._lock:
            return self._get(identity_id)

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            return {
                "next_id": self._next_id,
                "identities": [info.to_dict() for info in self._identities.values()],
            }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InMemoryIdentityRegistry:
        registry = cls()
        for item in data.get("identities", []):
            info = IdentityInfo.from_dict(item)
            registry._identities[info.identity_id] = info
        registry._next_id = int(data.get("next_id", len(registry._identities) + 1))
        return registry
