"""JSON state file for a ledger and its in-memory collaborators.

The file holds one document:

    {"version": 1, "ledger": {...}, "registry": {...}, "custody": {...}, "access": {...}}

Writes go to a temporary file in the same directory and are moved into
place, so a crash never leaves a half-written state file behind.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..core.auth import AccessControl
from ..core.clock import Clock
from ..core.custody import InMemoryCustody
from ..core.events import EventBus
from ..core.exceptions import ConfigException
from ..core.registry import InMemoryIdentityRegistry
from .ledger import SNAPSHOT_VERSION, KYALedger

logger = logging.getLogger(__name__)


@dataclass
class LedgerState:
    """A ledger together with the collaborators it was saved with."""

    ledger: KYALedger
    registry: InMemoryIdentityRegistry
    custody: InMemoryCustody

    @property
    def access(self) -> AccessControl:
        return self.ledger.access


def _require_serializable(ledger: KYALedger) -> None:
    for name, value, expected in (
        ("registry", ledger.registry, InMemoryIdentityRegistry),
        ("custody", ledger.custody, InMemoryCustody),
    ):
        if not isinstance(value, expected):
            raise ConfigException(f"Cannot snapshot a ledger whose {name} is {type(value).__name__}", name)


def save_snapshot(path: str | Path, ledger: KYALedger) -> Path:
    """Write the ledger and its in-memory collaborators to ``path``.

    Raises:
        ConfigException: registry or custody is not an in-memory implementation
    """
    _require_serializable(ledger)
    path = Path(path)
    document: dict[str, Any] = {
        "version": SNAPSHOT_VERSION,
        "ledger": ledger.to_dict(),
        "registry": ledger.registry.to_dict(),
        "custody": ledger.custody.to_dict(),
        "access": ledger.access.to_dict(),
    }

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2, sort_keys=True)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    logger.debug("Saved ledger state to %s", path)
    return path


def load_snapshot(
    path: str | Path,
    clock: Clock | None = None,
    events: EventBus | None = None,
) -> LedgerState:
    """Rebuild a ledger and its collaborators from a state file.

    Raises:
        FileNotFoundError: no state file at ``path``
        ConfigException: file is not valid JSON or has an unknown version
    """
    path = Path(path)
    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigException(f"Corrupt state file {path}: {e}", "state_path") from e

    version = document.get("version")
    if version != SNAPSHOT_VERSION:
        raise ConfigException(f"Unsupported state file version: {version}", "state_path")

    registry = InMemoryIdentityRegistry.from_dict(document.get("registry", {}))
    custody = InMemoryCustody.from_dict(document.get("custody", {}))
    access = AccessControl.from_dict(document.get("access", {}))
    ledger = KYALedger.from_dict(document["ledger"], registry, custody, access, clock, events)
    logger.debug("Loaded ledger state from %s", path)
    return LedgerState(ledger=ledger, registry=registry, custody=custody)
